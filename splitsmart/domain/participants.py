"""Known participant names: everyone assigned to an item plus the friends list."""

from __future__ import annotations

from collections.abc import Sequence

from splitsmart.domain.receipt import Receipt


def known_participants(receipt: Receipt | None, friends: Sequence[str]) -> list[str]:
    people: set[str] = set(friends)
    if receipt is not None:
        for item in receipt.items:
            people.update(item.assigned_to)
    return sorted(people)


def add_friend(friends: Sequence[str], name: str) -> tuple[list[str], str | None]:
    """Add a trimmed name to the friends list.

    Returns:
        Tuple of (updated friends, cleaned name). The name is None when blank.
    """
    clean_name = name.strip()
    if not clean_name:
        return list(friends), None
    if clean_name in friends:
        return list(friends), clean_name
    return [*friends, clean_name], clean_name


def remove_friend(friends: Sequence[str], name: str) -> list[str]:
    return [friend for friend in friends if friend != name]
