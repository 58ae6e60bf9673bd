from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class UserStats:
    """Per-student quiz aggregates.

    Keyed by the token subject; the profile itself lives with the identity
    provider, so a stats row is created on the student's first submission.
    """

    user_id: str
    total_quizzes: int = 0
    average_score: float = 0.0
    last_active: datetime | None = None
