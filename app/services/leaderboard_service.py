"""Competitions and their ranked leaderboards.

Every leaderboard change is one ``CompetitionRepo.update`` call: the
mutation loads the competition, upserts the student's entry, recomputes
ranks and statistics, and the repo writes the result back atomically.
Concurrent ``record_entry`` calls on one competition therefore serialize
and never lose each other's entry.

Ranking order is (score desc, completion_time asc, user_id asc).  The
user id only breaks exact ties so that ranks are a total order and
recomputing an unchanged board is a no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime

from app.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from app.core.metrics import CACHE_OPERATIONS, LEADERBOARD_WRITES
from app.db.documents import dump_snapshot_json, load_snapshot_json
from app.models.competition import (
    Competition,
    CompetitionSchedule,
    CompetitionStatus,
    LeaderboardEntry,
    LeaderboardSnapshot,
    Participant,
    ParticipantStatus,
)
from app.models.principal import Principal
from app.models.submission import Submission
from app.repos.competition_repo import CompetitionRepo
from app.repos.quiz_repo import QuizRepo
from app.repos.submission_repo import SubmissionRepo
from app.services.attempt_service import Clock, utcnow
from app.services.cache import CacheService, leaderboard_key

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = frozenset({CompetitionStatus.COMPLETED, CompetitionStatus.CANCELLED})


def _rank_key(entry: LeaderboardEntry) -> tuple[float, int, str]:
    return (-entry.score, entry.completion_time, entry.user_id)


def recompute_ranking(
    entries: Sequence[LeaderboardEntry],
) -> tuple[LeaderboardEntry, ...]:
    """Sort the board and assign ranks 1..N with no gaps."""
    ordered = sorted(entries, key=_rank_key)
    return tuple(replace(e, rank=i) for i, e in enumerate(ordered, start=1))


def upsert_entry(
    entries: Sequence[LeaderboardEntry], candidate: LeaderboardEntry
) -> tuple[tuple[LeaderboardEntry, ...], str]:
    """Insert ``candidate`` or replace the user's entry if strictly better.

    Returns the new entries and the outcome: inserted, improved or kept.
    """
    existing = next((e for e in entries if e.user_id == candidate.user_id), None)
    if existing is None:
        return (*entries, candidate), "inserted"
    if candidate.percentage > existing.percentage:
        return (
            tuple(candidate if e.user_id == candidate.user_id else e for e in entries),
            "improved",
        )
    return tuple(entries), "kept"


def _refresh_statistics(competition: Competition) -> Competition:
    board = competition.leaderboard
    participated = sum(
        1 for p in competition.participants if p.status is ParticipantStatus.PARTICIPATED
    )
    average = sum(e.percentage for e in board) / len(board) if board else 0.0
    return replace(
        competition,
        statistics=replace(
            competition.statistics,
            total_participants=participated,
            average_score=average,
        ),
    )


class LeaderboardEngine:
    def __init__(
        self,
        competitions: CompetitionRepo,
        quizzes: QuizRepo,
        submissions: SubmissionRepo,
        cache: CacheService,
        *,
        cache_ttl: int = 60,
        clock: Clock = utcnow,
    ) -> None:
        self._competitions = competitions
        self._quizzes = quizzes
        self._submissions = submissions
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._clock = clock

    async def _load(self, competition_id: str) -> Competition:
        competition = await self._competitions.get(competition_id)
        if competition is None:
            raise NotFoundError("Competition not found")
        return competition

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_competition(
        self,
        creator: Principal,
        *,
        title: str,
        quiz_id: str,
        schedule: CompetitionSchedule,
        **kwargs,
    ) -> Competition:
        quiz = await self._quizzes.get(quiz_id)
        if quiz is None or not quiz.is_active:
            raise NotFoundError("Quiz not found")
        if not creator.owns_or_admin(quiz.created_by):
            raise AuthorizationError(
                "You can only create competitions for your own quizzes"
            )
        if schedule.registration_start > schedule.registration_end:
            raise ValidationError("registration_end must not precede registration_start")
        if schedule.competition_start >= schedule.competition_end:
            raise ValidationError("competition_end must be after competition_start")

        competition = Competition.new(
            title=title,
            quiz_id=quiz_id,
            created_by=creator.user_id,
            schedule=schedule,
            **kwargs,
        )
        await self._competitions.add(competition)
        logger.info(
            "Competition created status=%s",
            competition.status.value,
            extra={"competition_id": competition.id, "quiz_id": quiz_id},
        )
        return competition

    async def set_status(
        self, competition_id: str, principal: Principal, status: CompetitionStatus
    ) -> Competition:
        current = await self._load(competition_id)
        if not principal.owns_or_admin(current.created_by):
            raise AuthorizationError("Not authorized to update this competition")

        def transition(comp: Competition) -> Competition:
            if comp.status in _TERMINAL_STATUSES:
                raise PolicyError(f"Competition is already {comp.status.value}")
            return replace(comp, status=status)

        competition = await self._competitions.update(competition_id, transition)
        await self._write_through(competition)
        logger.info(
            "Competition status -> %s",
            status.value,
            extra={"competition_id": competition_id, "user_id": principal.user_id},
        )
        return competition

    async def register(self, competition_id: str, student_id: str) -> Competition:
        await self._load(competition_id)
        now = self._clock()

        def add_participant(comp: Competition) -> Competition:
            if comp.participant(student_id) is not None:
                raise ConflictError("You are already registered for this competition")
            if not comp.can_register(now):
                raise PolicyError("Registration is not available for this competition")
            return replace(
                comp,
                participants=(
                    *comp.participants,
                    Participant(user_id=student_id, registered_at=now),
                ),
                statistics=replace(
                    comp.statistics,
                    total_registrations=comp.statistics.total_registrations + 1,
                ),
            )

        try:
            competition = await self._competitions.update(
                competition_id, add_participant
            )
        except (ConflictError, PolicyError) as exc:
            logger.warning(
                "Registration rejected: %s",
                exc.message,
                extra={"competition_id": competition_id, "user_id": student_id},
            )
            raise
        logger.info(
            "Participant registered",
            extra={"competition_id": competition_id, "user_id": student_id},
        )
        return competition

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def _load_entry_submission(
        self, competition: Competition, student_id: str, submission_id: str
    ) -> Submission:
        submission = await self._submissions.get(submission_id)
        if submission is None or submission.student_id != student_id:
            raise NotFoundError("Submission not found")
        if submission.quiz_id != competition.quiz_id:
            raise ValidationError("Submission is for a different quiz")
        if not submission.is_finalized:
            raise PolicyError("Submission has not been submitted yet")
        return submission

    async def record_entry(
        self, competition_id: str, student_id: str, submission_id: str
    ) -> Competition:
        log_ctx = {
            "competition_id": competition_id,
            "user_id": student_id,
            "submission_id": submission_id,
        }
        competition = await self._load(competition_id)
        submission = await self._load_entry_submission(
            competition, student_id, submission_id
        )
        candidate = LeaderboardEntry(
            user_id=student_id,
            submission_id=submission.id,
            score=submission.score.total,
            percentage=submission.score.percentage,
            completion_time=submission.timing.total_time or 0,
            completed_at=submission.timing.end_time,
        )
        now = self._clock()
        outcome = "kept"

        def apply_entry(comp: Competition) -> Competition:
            nonlocal outcome
            if not comp.is_active(now):
                raise PolicyError("Competition is not active")
            participant = comp.participant(student_id)
            if participant is None or participant.status is ParticipantStatus.DISQUALIFIED:
                raise AuthorizationError("You are not registered for this competition")

            entries, outcome = upsert_entry(comp.leaderboard, candidate)
            updated = replace(
                comp,
                leaderboard=recompute_ranking(entries),
                participants=tuple(
                    replace(p, status=ParticipantStatus.PARTICIPATED)
                    if p.user_id == student_id
                    else p
                    for p in comp.participants
                ),
            )
            return _refresh_statistics(updated)

        try:
            competition = await self._competitions.update(competition_id, apply_entry)
        except (PolicyError, AuthorizationError) as exc:
            LEADERBOARD_WRITES.labels(result="rejected").inc()
            logger.warning("Entry rejected: %s", exc.message, extra=log_ctx)
            raise

        LEADERBOARD_WRITES.labels(result=outcome).inc()
        await self._write_through(competition)
        entry = competition.entry_for(student_id)
        logger.info(
            "Leaderboard entry %s percentage=%s rank=%s",
            outcome,
            entry.percentage if entry else None,
            entry.rank if entry else None,
            extra=log_ctx,
        )
        return competition

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_competitions(
        self, principal: Principal, *, status: CompetitionStatus | None = None
    ) -> list[Competition]:
        """Public competitions plus the caller's own; admins see every one.

        Students' own are those they registered for, teachers' those they
        created.  Latest competition window first.
        """
        visible = [
            c
            for c in await self._competitions.list_all()
            if (
                principal.is_admin()
                or c.settings.is_public
                or c.created_by == principal.user_id
                or c.participant(principal.user_id) is not None
            )
            and (status is None or c.status is status)
        ]
        visible.sort(key=lambda c: c.schedule.competition_start, reverse=True)
        return visible

    async def get_leaderboard(
        self, competition_id: str, principal: Principal
    ) -> tuple[LeaderboardEntry, ...]:
        key = leaderboard_key(competition_id)
        cached = await self._cache.get(key)
        if cached is not None:
            CACHE_OPERATIONS.labels(operation="hit").inc()
            snapshot = load_snapshot_json(cached)
        else:
            CACHE_OPERATIONS.labels(operation="miss").inc()
            snapshot = await self._write_through(await self._load(competition_id))

        if not snapshot.show_leaderboard and not principal.owns_or_admin(
            snapshot.created_by
        ):
            raise AuthorizationError("Leaderboard is not public for this competition")
        return snapshot.leaderboard

    async def _write_through(self, competition: Competition) -> LeaderboardSnapshot:
        snapshot = LeaderboardSnapshot.of(competition)
        stored = await self._cache.set(
            leaderboard_key(competition.id),
            dump_snapshot_json(snapshot),
            self._cache_ttl,
            version=competition.version,
        )
        if not stored:
            logger.debug(
                "Cached leaderboard is newer than version=%s",
                competition.version,
                extra={"competition_id": competition.id},
            )
        return snapshot
