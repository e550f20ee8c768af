"""Tests for Pivotal people lookup and Linear user matching."""

from __future__ import annotations

import pytest

from pivotal_to_linear_migrator.models import Person
from pivotal_to_linear_migrator.people import PersonDirectory, find_matching_user, parse_person_text


@pytest.mark.unit
class TestPersonDirectory:
    def setup_method(self) -> None:
        self.people = PersonDirectory.from_memberships(
            [
                {"person": {"id": 1, "name": "Jane Doe", "email": "jane@example.com"}},
                {"person": {"id": 2, "name": "Bob", "email": "bob@example.com"}},
                {"role": "viewer"},
            ]
        )

    def test_from_memberships_skips_entries_without_person(self) -> None:
        assert len(self.people) == 2
        assert self.people.get(1) == Person(id=1, name="Jane Doe", email="jane@example.com")

    def test_describe(self) -> None:
        assert self.people.describe(2) == "Bob <bob@example.com>"

    def test_describe_unknown_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        assert self.people.describe(99) == "Unknown Author (ID: 99)"
        assert "person_id: 99" in caplog.text

    def test_owner_text_uses_last_owner(self) -> None:
        assert self.people.owner_text([1, 2]) == "Bob <bob@example.com>"
        assert self.people.owner_text([]) is None
        assert self.people.owner_text([42]) is None


@pytest.mark.unit
class TestUserMatching:
    MEMBERS: list[dict[str, str]] = [
        {"id": "u1", "name": "Jane Doe", "email": "jane@corp.com"},
        {"id": "u2", "name": "Bob", "email": "bob@example.com"},
    ]

    def test_parse_person_text(self) -> None:
        assert parse_person_text("Bob <bob@example.com>") == ("Bob", "bob@example.com")
        assert parse_person_text("Jane Doe") == ("Jane Doe", None)

    def test_email_match_wins(self) -> None:
        assert find_matching_user("Robert <bob@example.com>", self.MEMBERS) == self.MEMBERS[1]

    def test_falls_back_to_name(self) -> None:
        assert find_matching_user("Jane Doe <jane@home.org>", self.MEMBERS) == self.MEMBERS[0]
        assert find_matching_user("Jane Doe", self.MEMBERS) == self.MEMBERS[0]

    def test_no_match(self) -> None:
        assert find_matching_user("Nobody <no@where>", self.MEMBERS) is None
        assert find_matching_user(None, self.MEMBERS) is None
