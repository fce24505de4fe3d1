"""HTTP client for the external AI inference service.

The service does the heavy lifting (receipt-image extraction, chat command
interpretation, dietary tagging, bill roasts). This module only moves bytes
and JSON; validation of the answers lives in ``splitsmart.receipt.extraction``.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import httpx

from splitsmart.domain.allocation import Allocation
from splitsmart.domain.receipt import DietaryTags, Receipt, ReceiptItem
from splitsmart.receipt.extraction import (
    CommandResult,
    ExtractionError,
    ParsedReceipt,
    command_result_from_payload,
    dietary_tags_from_payload,
    receipt_from_parser_payload,
)
from splitsmart.receipt.image import MAX_IMAGE_DIMENSION, resize_image_bytes
from splitsmart.runtime.config import DEFAULT_AI_TIMEOUT, AppConfig
from splitsmart.runtime.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ROAST = "Wow, big spenders!"


class AIServiceError(RuntimeError):
    """Raised when the AI service cannot be reached or returns an unusable answer."""


def _money(amount: Decimal) -> str:
    return str(amount)


class AIServiceClient:
    """Async client for the AI service endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_AI_TIMEOUT,
        max_image_dimension: int = MAX_IMAGE_DIMENSION,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_image_dimension = max_image_dimension
        self._transport = transport

    @classmethod
    def from_config(cls, config: AppConfig) -> AIServiceClient:
        return cls(
            config.ai.service_url,
            timeout=config.ai.timeout,
            max_image_dimension=config.ai.max_image_dimension,
        )

    async def _post(self, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, **kwargs)
        except httpx.RequestError as e:
            logger.error("Failed to connect to AI service at %s: %s", url, e)
            raise AIServiceError(f"Failed to connect to AI service: {e}") from e
        logger.info("AI service %s returned %s in %.2f seconds", path, response.status_code, time.time() - start_time)

        if response.status_code != 200:
            # Response bodies may echo receipt contents; keep them out of INFO logs.
            logger.debug("AI service error body: %s", response.text)
            raise AIServiceError(f"AI service error: {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise AIServiceError(f"AI service returned invalid JSON: {e}") from e

    async def parse_receipt(self, image_bytes: bytes, filename: str = "receipt.jpg") -> ParsedReceipt:
        """Send a receipt photo to the image parser and normalize its answer."""
        try:
            upload = resize_image_bytes(image_bytes, max_dimension=self.max_image_dimension)
        except Exception as e:
            # Pillow raises a range of errors for unreadable input.
            raise AIServiceError(f"Could not read image {filename}: {e}") from e

        payload = await self._post(
            "/receipts/parse",
            files={"file": (filename, upload, "image/jpeg")},
        )
        try:
            parsed = receipt_from_parser_payload(payload)
        except ExtractionError as e:
            raise AIServiceError(f"Unusable receipt payload: {e}") from e

        for warning in parsed.warnings:
            logger.warning("Receipt parser: %s", warning)
        logger.info("Parsed %d item(s) from %s", len(parsed.receipt.items), filename)
        return parsed

    async def interpret_command(self, items: Sequence[ReceiptItem], message: str) -> CommandResult:
        """Ask the command interpreter which assignments a chat message changes."""
        payload = await self._post(
            "/assignments/interpret",
            json={
                "items": [
                    {
                        "id": item.id,
                        "name": item.name,
                        "price": _money(item.price),
                        "current_assignees": list(item.assigned_to),
                    }
                    for item in items
                ],
                "message": message,
            },
        )
        try:
            return command_result_from_payload(payload)
        except ExtractionError as e:
            raise AIServiceError(f"Unusable command payload: {e}") from e

    async def tag_dietary(self, items: Sequence[ReceiptItem]) -> list[DietaryTags]:
        """Ask for dietary tags (Vegan, Gluten-Free, Spicy, Alcohol, Nuts, Dairy)."""
        payload = await self._post(
            "/items/dietary-tags",
            json={"items": [{"id": item.id, "name": item.name} for item in items]},
        )
        try:
            return dietary_tags_from_payload(payload)
        except ExtractionError as e:
            raise AIServiceError(f"Unusable dietary payload: {e}") from e

    async def roast(self, receipt: Receipt, allocation: Allocation) -> str:
        """Ask for a short, lighthearted roast of the group's spending."""
        payload = await self._post(
            "/summary/roast",
            json={
                "currency": receipt.currency,
                "total": _money(receipt.total),
                "breakdown": [
                    {
                        "name": person.name,
                        "total": _money(person.final_total),
                        "items": list(person.items),
                    }
                    for person in allocation.people
                ],
            },
        )
        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str) or not text.strip():
            return DEFAULT_ROAST
        return text
