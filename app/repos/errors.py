from __future__ import annotations

from typing import Any


class RecordNotFound(KeyError):
    pass


class DuplicateActiveAttempt(Exception):
    """The (quiz, student) pair already has an in-progress submission."""

    def __init__(self, existing: Any) -> None:
        super().__init__("in-progress submission already exists")
        self.existing = existing
