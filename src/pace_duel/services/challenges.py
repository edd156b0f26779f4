"""Request-facing challenge operations.

Every read runs the lazy status check first, so callers always see a status
that matches today's date.
"""

import logging
import secrets
from datetime import date
from pathlib import Path

import aiosqlite

from ..clients.base import ActivitySource
from ..config import get_settings
from ..db.repositories import (
    ChallengeRepository,
    DailyProgressRepository,
    ParticipantRepository,
    UserRepository,
    WeekResultRepository,
)
from ..exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..models.challenge import (
    Challenge,
    ChallengeStatus,
    ChallengeView,
    Participant,
    SportType,
    union_sport_types,
)
from ..models.progress import ChallengeProgress, ParticipantProgress, WeekResult
from ..models.user import User
from ..timeutils import is_valid_timezone, seconds_until_end_of, today_in
from .goal_progress import calculate_progress
from .notifications import NotificationSink
from .state_machine import TransitionEngine, Trigger, for_trigger, joined_trigger
from .sync import SyncOrchestrator

logger = logging.getLogger(__name__)

INVITE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_ATTEMPTS = 10


def generate_invite_code(length: int) -> str:
    """Random code without easily confused characters (0/O, 1/I)."""
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(length))


def validate_goals(goals: dict[SportType, float] | None) -> dict[SportType, float]:
    """Check a goal mapping: at least one sport, every distance positive."""
    if not goals:
        raise ValidationError("At least one sport goal is required", field="goals")
    cleaned: dict[SportType, float] = {}
    for sport, km in goals.items():
        if km is None or km <= 0:
            raise ValidationError(
                f"Goal for {sport.value} must be greater than 0",
                field="goals",
                details={"sport": sport.value},
            )
        cleaned[sport] = float(km)
    return cleaned


class ChallengeService:
    """Create, join, leave, finish, delete and read challenges."""

    def __init__(
        self,
        db_path: Path | None = None,
        sink: NotificationSink | None = None,
        sources: dict[str, ActivitySource] | None = None,
    ):
        self.settings = get_settings()
        self.challenge_repo = ChallengeRepository(db_path)
        self.participant_repo = ParticipantRepository(db_path)
        self.user_repo = UserRepository(db_path)
        self.progress_repo = DailyProgressRepository(db_path)
        self.week_repo = WeekResultRepository(db_path)
        self.engine = TransitionEngine(db_path, sink=sink)
        self.notifications = self.engine.notifications
        self.sync = SyncOrchestrator(db_path, sources=sources)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_challenge(
        self,
        creator_id: int,
        name: str | None,
        start_date: date,
        end_date: date,
        goals: dict[SportType, float],
        timezone: str | None = None,
    ) -> ChallengeView:
        """Create a PENDING challenge with the creator as first participant.

        Args:
            creator_id: User creating the challenge
            name: Display name (defaults to "Challenge")
            start_date: First counted day, not before today
            end_date: Last counted day, after ``start_date``
            goals: Creator's goals in km per sport
            timezone: IANA timezone; stored on the creator when given

        Raises:
            ValidationError: On bad dates, goals or timezone
            NotFoundError: If the creator does not exist
        """
        creator = await self._require_user(creator_id)

        if timezone and not is_valid_timezone(timezone):
            raise ValidationError(f"Unknown timezone: {timezone}", field="timezone")

        today = today_in(timezone or creator.timezone or self.settings.default_timezone)
        if start_date < today:
            raise ValidationError("Start date cannot be in the past", field="start_date")
        if end_date <= start_date:
            raise ValidationError("End date must be after start date", field="end_date")
        goals = validate_goals(goals)

        if timezone and creator.timezone != timezone:
            creator.timezone = timezone
            await self.user_repo.update(creator)

        invite_code = await self._unique_invite_code()
        challenge = Challenge(
            creator_id=creator_id,
            name=(name or "").strip() or "Challenge",
            invite_code=invite_code,
            start_date=start_date,
            end_date=end_date,
            sport_types=set(goals),
        )
        challenge_id = await self.challenge_repo.create(
            challenge, Participant(challenge_id=0, user_id=creator_id, goals=goals)
        )
        logger.info(f"User {creator_id} created challenge {challenge_id} ({invite_code})")
        return await self._view(await self._require_challenge(challenge_id))

    async def join_challenge(
        self, user_id: int, invite_code: str, goals: dict[SportType, float]
    ) -> ChallengeView:
        """Join a PENDING challenge by invite code.

        Raises:
            NotFoundError: Unknown user or invite code
            ConflictError: Already joined, full, not open, or ended
            ValidationError: Bad goals
        """
        await self._require_user(user_id)
        goals = validate_goals(goals)

        challenge = await self.challenge_repo.get_by_invite_code(invite_code.strip())
        if challenge is None:
            raise NotFoundError("Challenge", invite_code, message="Invalid invite code")
        challenge = await self.engine.advance(challenge)

        if challenge.status != ChallengeStatus.PENDING:
            raise ConflictError(
                f"Challenge is {challenge.status.value} and not open for joining",
                details={"status": challenge.status.value},
            )
        today = self.engine.today_for(challenge)
        if today > challenge.end_date:
            raise ConflictError("Challenge has already ended")

        participants = await self.participant_repo.list_for_challenge(challenge.id)
        if any(p.user_id == user_id for p in participants):
            raise ConflictError("You have already joined this challenge")

        try:
            added = await self.participant_repo.add(
                Participant(challenge_id=challenge.id, user_id=user_id, goals=goals),
                max_participants=self.settings.max_participants,
            )
        except aiosqlite.IntegrityError as e:
            raise ConflictError("You have already joined this challenge") from e
        if added is None:
            raise ConflictError("Challenge is full")

        participants = await self.participant_repo.list_for_challenge(challenge.id)
        challenge.sport_types = union_sport_types(participants)
        await self.challenge_repo.update_sport_types(challenge.id, challenge.sport_types)

        transition = for_trigger(ChallengeStatus.PENDING, joined_trigger(challenge, today))
        await self.engine.apply(challenge, transition, participants, actor_id=user_id)
        challenge = await self.engine.advance(challenge)
        logger.info(f"User {user_id} joined challenge {challenge.id}")

        if challenge.status == ChallengeStatus.ACTIVE:
            await self.sync.sync_challenge(challenge, only_user_id=user_id)

        return await self._view(challenge)

    async def leave_challenge(self, challenge_id: int, user_id: int) -> ChallengeView:
        """Leave a SCHEDULED challenge, or forfeit an ACTIVE one.

        Raises:
            NotFoundError: Unknown challenge, or the user is not a participant
            ConflictError: Leaving is not possible in the current state
        """
        challenge = await self.engine.advance(await self._require_challenge(challenge_id))
        participant = await self.participant_repo.get(challenge_id, user_id)
        if participant is None:
            raise NotFoundError(
                "Participant", user_id, message="You are not a participant in this challenge"
            )

        if challenge.status == ChallengeStatus.SCHEDULED:
            if user_id == challenge.creator_id:
                raise ConflictError(
                    "The creator cannot leave a challenge; delete it instead"
                )
            transition = for_trigger(challenge.status, Trigger.OPPONENT_LEFT)
            moved = await self.engine.apply(
                challenge, transition, actor_id=user_id, remove_user_id=user_id
            )
            if not moved:
                raise ConflictError("Challenge changed while leaving, try again")
            remaining = await self.participant_repo.list_for_challenge(challenge_id)
            challenge.sport_types = union_sport_types(remaining)
            await self.challenge_repo.update_sport_types(challenge_id, challenge.sport_types)
            logger.info(f"User {user_id} left challenge {challenge_id}")

        elif challenge.status == ChallengeStatus.ACTIVE:
            if participant.has_forfeited:
                raise ConflictError("You have already forfeited this challenge")
            if not await self.participant_repo.mark_forfeited(challenge_id, user_id):
                raise ConflictError("You have already forfeited this challenge")
            logger.info(f"User {user_id} forfeited challenge {challenge_id}")
            participants = await self.participant_repo.list_for_challenge(challenge_id)
            await self.notifications.opponent_forfeited(challenge, participant, participants)
            challenge = await self.engine.advance(challenge)

        else:
            raise ConflictError(
                f"Cannot leave a {challenge.status.value} challenge",
                details={"status": challenge.status.value},
            )

        return await self._view(challenge)

    async def finish_challenge(self, challenge_id: int, user_id: int) -> ChallengeView:
        """Complete an ACTIVE challenge early once every opponent has forfeited.

        The acting participant wins regardless of their own progress.
        """
        challenge = await self.engine.advance(await self._require_challenge(challenge_id))
        transition = for_trigger(challenge.status, Trigger.FINISHED_EARLY)

        participants = await self.participant_repo.list_for_challenge(challenge_id)
        actor = next((p for p in participants if p.user_id == user_id), None)
        if actor is None:
            raise NotFoundError(
                "Participant", user_id, message="You are not a participant in this challenge"
            )
        if actor.has_forfeited:
            raise ConflictError("You have forfeited this challenge")
        others = [p for p in participants if p.user_id != user_id]
        if not others or not all(p.has_forfeited for p in others):
            raise ConflictError("You can only finish early after your opponent forfeits")

        if not await self.engine.apply(challenge, transition, participants, actor_id=user_id):
            raise ConflictError("Challenge was already finished")
        return await self._view(challenge)

    async def delete_challenge(self, challenge_id: int, user_id: int) -> None:
        """Delete a challenge. Only its creator may, and never while ACTIVE."""
        challenge = await self.engine.advance(await self._require_challenge(challenge_id))
        if challenge.creator_id != user_id:
            raise PermissionDeniedError("Only the creator can delete a challenge")
        if challenge.status == ChallengeStatus.ACTIVE:
            raise ConflictError("Cannot delete an active challenge")

        deleted = await self.challenge_repo.delete(
            challenge_id, forbid_status=ChallengeStatus.ACTIVE
        )
        if not deleted:
            raise ConflictError("Challenge became active and cannot be deleted")
        logger.info(f"User {user_id} deleted challenge {challenge_id}")

    async def update_challenge(
        self, challenge_id: int, user_id: int, name: str | None = None
    ) -> ChallengeView:
        """Rename a challenge. Only its creator may; status does not matter."""
        challenge = await self.engine.advance(await self._require_challenge(challenge_id))
        if challenge.creator_id != user_id:
            raise PermissionDeniedError("Only the creator can rename a challenge")

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Challenge name cannot be empty", field="name")
            await self.challenge_repo.update_name(challenge_id, name)
            challenge.name = name
            logger.info(f"User {user_id} renamed challenge {challenge_id}")
        return await self._view(challenge)

    async def sync_and_get_progress(
        self, challenge_id: int, user_id: int
    ) -> ChallengeProgress:
        """Pull the acting user's activities now, then report progress.

        Only ACTIVE challenges are synced; others just report what is stored.
        """
        challenge = await self.engine.advance(await self._require_challenge(challenge_id))
        if challenge.status == ChallengeStatus.ACTIVE:
            report = await self.sync.sync_challenge(challenge, only_user_id=user_id)
            logger.info(report.summary())
        return await self.get_progress(challenge_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_challenge(self, challenge_id: int, sync: bool | None = None) -> ChallengeView:
        """Load a challenge, bringing its status (and optionally progress) up to date."""
        if sync is None:
            sync = self.settings.sync_on_read
        challenge = await self.engine.advance(await self._require_challenge(challenge_id))
        if sync and challenge.status == ChallengeStatus.ACTIVE:
            await self.sync.sync_challenge(challenge)
        return await self._view(challenge)

    async def get_challenge_by_invite_code(self, invite_code: str) -> ChallengeView:
        """Preview a challenge before joining."""
        challenge = await self.challenge_repo.get_by_invite_code(invite_code.strip())
        if challenge is None:
            raise NotFoundError("Challenge", invite_code, message="Invalid invite code")
        return await self._view(await self.engine.advance(challenge))

    async def get_progress(self, challenge_id: int) -> ChallengeProgress:
        """Per-participant goals and progress from each one's latest record."""
        challenge = await self.engine.advance(await self._require_challenge(challenge_id))
        participants = await self.participant_repo.list_for_challenge(challenge_id)

        rows: list[ParticipantProgress] = []
        for participant in participants:
            latest = await self.progress_repo.get_latest(challenge_id, participant.user_id)
            breakdown = calculate_progress(
                latest.distances if latest else {},
                participant.goals,
                sports=challenge.sport_types,
            )
            rows.append(
                ParticipantProgress(
                    user_id=participant.user_id,
                    username=participant.username,
                    goals=participant.goals,
                    breakdown=breakdown,
                    forfeited=participant.has_forfeited,
                )
            )

        if challenge.status.is_terminal:
            remaining = 0
        else:
            remaining = seconds_until_end_of(
                challenge.end_date,
                tz_name=challenge.creator_timezone or self.settings.default_timezone,
            )

        return ChallengeProgress(
            challenge_id=challenge_id,
            status=challenge.status,
            sport_types=challenge.sport_types,
            start_date=challenge.start_date,
            end_date=challenge.end_date,
            seconds_remaining=remaining,
            participants=rows,
        )

    async def list_user_challenges(
        self, user_id: int, status: ChallengeStatus | None = None
    ) -> list[ChallengeView]:
        """The user's challenges, newest first, each with an up-to-date status."""
        views = []
        for challenge in await self.challenge_repo.list_for_user(user_id):
            challenge = await self.engine.advance(challenge)
            if status is not None and challenge.status != status:
                continue
            views.append(await self._view(challenge))
        return views

    async def list_week_results(self, challenge_id: int) -> list[WeekResult]:
        await self._require_challenge(challenge_id)
        return await self.week_repo.list_for_challenge(challenge_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_user(self, user_id: int) -> User:
        user = await self.user_repo.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def _require_challenge(self, challenge_id: int) -> Challenge:
        challenge = await self.challenge_repo.get(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", challenge_id)
        return challenge

    async def _unique_invite_code(self) -> str:
        for _ in range(INVITE_ATTEMPTS):
            code = generate_invite_code(self.settings.invite_code_length)
            if not await self.challenge_repo.invite_code_exists(code):
                return code
        raise ConflictError("Could not generate a unique invite code, try again")

    async def _view(self, challenge: Challenge) -> ChallengeView:
        participants = await self.participant_repo.list_for_challenge(challenge.id)
        return ChallengeView(challenge=challenge, participants=participants)
