"""
Label resolution for Linear issues.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .linear_client import LinearClient

logger: logging.Logger = logging.getLogger(__name__)


class LabelResolver:
    """Finds or creates Linear labels by name.

    Matching is case-insensitive, as Linear treats "Bug" and "bug" as the
    same label. Ids are cached for the run so each name costs at most one
    create.
    """

    _client: LinearClient
    _ids: dict[str, str]

    def __init__(self, client: LinearClient) -> None:
        self._client = client
        self._ids = {}

    def refresh(self) -> None:
        """Reload existing labels (lowercase name -> id) from Linear."""
        self._ids = {label["name"].lower(): label["id"] for label in self._client.fetch_labels()}
        logger.debug(f"Loaded {len(self._ids)} labels from Linear")

    def resolve(self, name: str) -> str:
        key = name.lower()
        label_id = self._ids.get(key)
        if label_id is not None:
            return label_id

        label_id = self._client.create_label(name)
        self._ids[key] = label_id
        logger.info(f"Created label: {name}")
        return label_id

    def resolve_all(self, names: Iterable[str]) -> list[str]:
        ids: list[str] = []
        for name in names:
            label_id = self.resolve(name)
            if label_id not in ids:
                ids.append(label_id)
        return ids
