"""Builders shared by the SplitSmart tests."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from splitsmart.domain.allocation import Allocation
from splitsmart.domain.receipt import DietaryTags, Receipt, ReceiptItem, build_receipt
from splitsmart.receipt.extraction import CommandResult, ParsedReceipt
from splitsmart.runtime.ai_client import AIServiceError


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 5, 1, 19, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


def sequential_ids(prefix: str = "s") -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


def make_item(item_id: int, name: str, price: str, *people: str, **weights: int) -> ReceiptItem:
    return ReceiptItem(
        id=item_id,
        name=name,
        price=Decimal(price),
        assigned_to=tuple(people),
        assignment_weights={person: weights.get(person, 1) for person in people},
    )


def sample_receipt() -> Receipt:
    return build_receipt(
        [
            ReceiptItem(id=0, name="Caesar Salad", price=Decimal("12.50")),
            ReceiptItem(id=0, name="Margherita Pizza", price=Decimal("18.00")),
            ReceiptItem(id=0, name="Lemonade", price=Decimal("4.50"), quantity=2),
        ],
        tax=Decimal("3.50"),
        tip=Decimal("0"),
    )


class FakeAIClient:
    """Stand-in for AIServiceClient with canned answers.

    ``before_reply`` runs while the call is "in flight", which lets tests
    switch sessions between the request and its result.
    """

    def __init__(
        self,
        *,
        parsed: Receipt | None = None,
        command: CommandResult | None = None,
        tags: list[DietaryTags] | None = None,
        roast_text: str = "You ordered like royalty.",
        fail: bool = False,
    ) -> None:
        self.parsed = parsed or sample_receipt()
        self.command = command or CommandResult(updates=(), reply="Got it!")
        self.tags = tags or []
        self.roast_text = roast_text
        self.fail = fail
        self.before_reply: Callable[[], None] | None = None
        self.calls: list[str] = []

    async def _answer(self, name: str) -> None:
        self.calls.append(name)
        await asyncio.sleep(0)
        if self.before_reply is not None:
            self.before_reply()
        if self.fail:
            raise AIServiceError("AI service error: 503")

    async def parse_receipt(self, image_bytes: bytes, filename: str = "receipt.jpg") -> ParsedReceipt:
        await self._answer("parse_receipt")
        return ParsedReceipt(receipt=self.parsed)

    async def interpret_command(self, items: Sequence[ReceiptItem], message: str) -> CommandResult:
        await self._answer("interpret_command")
        return self.command

    async def tag_dietary(self, items: Sequence[ReceiptItem]) -> list[DietaryTags]:
        await self._answer("tag_dietary")
        return self.tags

    async def roast(self, receipt: Receipt, allocation: Allocation) -> str:
        await self._answer("roast")
        return self.roast_text
