"""Pivotal project members and their Linear counterparts."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from typing import Any

from .models import Person

logger: logging.Logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"<(.+)>")


class PersonDirectory:
    """Lookup of Pivotal people by id, built from the project memberships."""

    def __init__(self, people: Iterable[Person] = ()) -> None:
        self._people: dict[int, Person] = {p.id: p for p in people}

    @classmethod
    def from_memberships(cls, memberships: Iterable[dict[str, Any]]) -> PersonDirectory:
        people = []
        for membership in memberships:
            person = membership.get("person") or {}
            if "id" not in person:
                logger.warning(f"Membership without person: {membership}")
                continue
            people.append(Person(id=person["id"], name=person.get("name", ""), email=person.get("email", "")))
        return cls(people)

    def __len__(self) -> int:
        return len(self._people)

    def get(self, person_id: int | None) -> Person | None:
        if person_id is None:
            return None
        return self._people.get(person_id)

    def describe(self, person_id: int | None) -> str:
        """Render a person as "Name <email>", with a placeholder for unknown ids."""
        person = self.get(person_id)
        if person is None:
            logger.warning(f"Could not find person information for person_id: {person_id}")
            return f"Unknown Author (ID: {person_id})"
        return person.describe()

    def owner_text(self, owner_ids: Sequence[int]) -> str | None:
        """The last listed owner as "Name <email>", or None if there is none to show."""
        if not owner_ids:
            return None
        owner = self.get(owner_ids[-1])
        return owner.describe() if owner else None


def parse_person_text(text: str) -> tuple[str, str | None]:
    """Split "Name <email>" into its parts. Plain names have no email."""
    match = _EMAIL_PATTERN.search(text)
    email = match.group(1) if match else None
    name = text.split(" <", 1)[0].strip()
    return name, email


def find_matching_user(text: str | None, members: Sequence[dict[str, Any]]) -> dict[str, Any] | None:
    """Find the Linear member for a Pivotal person text, by email first, then by name."""
    if not text:
        return None

    name, email = parse_person_text(text)
    if email:
        for member in members:
            if member.get("email") == email:
                return member
    for member in members:
        if member.get("name") == name:
            return member
    return None
