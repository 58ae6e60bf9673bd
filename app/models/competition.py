from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4


class CompetitionStatus(str, Enum):
    DRAFT = "draft"
    REGISTRATION_OPEN = "registration-open"
    REGISTRATION_CLOSED = "registration-closed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipantStatus(str, Enum):
    REGISTERED = "registered"
    PARTICIPATED = "participated"
    DISQUALIFIED = "disqualified"


@dataclass(frozen=True, slots=True)
class Participant:
    user_id: str
    registered_at: datetime
    status: ParticipantStatus = ParticipantStatus.REGISTERED


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    user_id: str
    submission_id: str
    score: float
    percentage: int
    completion_time: int  # seconds
    completed_at: datetime | None = None
    rank: int | None = None


@dataclass(frozen=True, slots=True)
class CompetitionSchedule:
    registration_start: datetime
    registration_end: datetime
    competition_start: datetime
    competition_end: datetime
    timezone: str = "UTC"


@dataclass(frozen=True, slots=True)
class CompetitionSettings:
    is_public: bool = False
    allow_late_submission: bool = False
    show_leaderboard: bool = True
    instant_results: bool = False


@dataclass(frozen=True, slots=True)
class CompetitionStatistics:
    total_registrations: int = 0
    total_participants: int = 0
    average_score: float = 0.0


@dataclass(frozen=True, slots=True)
class Competition:
    id: str
    title: str
    quiz_id: str
    created_by: str
    schedule: CompetitionSchedule
    description: str = ""
    type: str = "class"  # class|inter-class|inter-college|public
    status: CompetitionStatus = CompetitionStatus.DRAFT
    max_participants: int | None = None
    participants: tuple[Participant, ...] = ()
    leaderboard: tuple[LeaderboardEntry, ...] = ()
    settings: CompetitionSettings = field(default_factory=CompetitionSettings)
    statistics: CompetitionStatistics = field(default_factory=CompetitionStatistics)
    version: int = 1

    @staticmethod
    def new(
        *,
        title: str,
        quiz_id: str,
        created_by: str,
        schedule: CompetitionSchedule,
        **kwargs,
    ) -> Competition:
        return Competition(
            id=str(uuid4()),
            title=title,
            quiz_id=quiz_id,
            created_by=created_by,
            schedule=schedule,
            **kwargs,
        )

    def participant(self, user_id: str) -> Participant | None:
        return next((p for p in self.participants if p.user_id == user_id), None)

    def entry_for(self, user_id: str) -> LeaderboardEntry | None:
        return next((e for e in self.leaderboard if e.user_id == user_id), None)

    def can_register(self, now: datetime) -> bool:
        if self.status is not CompetitionStatus.REGISTRATION_OPEN:
            return False
        if not (
            self.schedule.registration_start <= now <= self.schedule.registration_end
        ):
            return False
        return (
            self.max_participants is None
            or len(self.participants) < self.max_participants
        )

    def is_active(self, now: datetime) -> bool:
        return (
            self.status is CompetitionStatus.ACTIVE
            and self.schedule.competition_start <= now <= self.schedule.competition_end
        )


@dataclass(frozen=True, slots=True)
class LeaderboardSnapshot:
    """What a leaderboard read needs, cached apart from the full competition."""

    competition_id: str
    created_by: str
    show_leaderboard: bool
    leaderboard: tuple[LeaderboardEntry, ...]
    version: int

    @staticmethod
    def of(competition: Competition) -> LeaderboardSnapshot:
        return LeaderboardSnapshot(
            competition_id=competition.id,
            created_by=competition.created_by,
            show_leaderboard=competition.settings.show_leaderboard,
            leaderboard=competition.leaderboard,
            version=competition.version,
        )
