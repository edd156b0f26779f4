"""Challenge lifecycle: the transition table and the engine that applies it.

Deciding a transition is pure (``evaluate_transition``). Applying one is the
only place a challenge's status is written, through a compare-and-set on the
status column. Whoever wins the compare-and-set dispatches the side effects;
everyone else does nothing. Read paths and the periodic sweeps both go
through ``TransitionEngine.advance`` so they always agree.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path

from ..config import get_settings
from ..db.repositories import ChallengeRepository, ParticipantRepository
from ..exceptions import ConflictError
from ..models.challenge import Challenge, ChallengeStatus, Participant
from ..timeutils import today_in
from .notifications import NotificationService, NotificationSink
from .winner import WinnerResolver

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    """Conditions that move a challenge from one status to another."""

    END_PASSED_WITHOUT_OPPONENT = "end_passed_without_opponent"
    OPPONENT_JOINED_BEFORE_START = "opponent_joined_before_start"
    OPPONENT_JOINED_AFTER_START = "opponent_joined_after_start"
    START_REACHED = "start_reached"
    OPPONENT_LEFT = "opponent_left"
    END_PASSED = "end_passed"
    ALL_FORFEITED = "all_forfeited"
    FINISHED_EARLY = "finished_early"


class Effect(str, Enum):
    """Side effects run once a transition has been persisted."""

    NOTIFY_EXPIRED = "notify_expired"
    NOTIFY_JOINED = "notify_joined"
    NOTIFY_STARTED = "notify_started"
    RESOLVE_WINNER = "resolve_winner"
    WINNER_IS_ACTOR = "winner_is_actor"
    NOTIFY_RESULT = "notify_result"


@dataclass(frozen=True)
class Transition:
    source: ChallengeStatus
    trigger: Trigger
    target: ChallengeStatus
    effects: tuple[Effect, ...] = ()


_S = ChallengeStatus

TRANSITIONS: dict[tuple[ChallengeStatus, Trigger], Transition] = {
    (t.source, t.trigger): t
    for t in (
        Transition(_S.PENDING, Trigger.END_PASSED_WITHOUT_OPPONENT, _S.EXPIRED,
                   (Effect.NOTIFY_EXPIRED,)),
        Transition(_S.PENDING, Trigger.OPPONENT_JOINED_BEFORE_START, _S.SCHEDULED,
                   (Effect.NOTIFY_JOINED,)),
        Transition(_S.PENDING, Trigger.OPPONENT_JOINED_AFTER_START, _S.ACTIVE,
                   (Effect.NOTIFY_JOINED, Effect.NOTIFY_STARTED)),
        Transition(_S.SCHEDULED, Trigger.START_REACHED, _S.ACTIVE,
                   (Effect.NOTIFY_STARTED,)),
        Transition(_S.SCHEDULED, Trigger.OPPONENT_LEFT, _S.PENDING),
        Transition(_S.ACTIVE, Trigger.END_PASSED, _S.COMPLETED,
                   (Effect.RESOLVE_WINNER, Effect.NOTIFY_RESULT)),
        # Nobody left to win: cancelled, not completed without a winner.
        # No one is notified since every participant chose to leave.
        Transition(_S.ACTIVE, Trigger.ALL_FORFEITED, _S.CANCELLED),
        Transition(_S.ACTIVE, Trigger.FINISHED_EARLY, _S.COMPLETED,
                   (Effect.WINNER_IS_ACTOR, Effect.NOTIFY_RESULT)),
    )
}


def for_trigger(status: ChallengeStatus, trigger: Trigger) -> Transition:
    """Look up the transition for an explicit action.

    Raises:
        ConflictError: If the trigger does not apply in ``status``
    """
    transition = TRANSITIONS.get((status, trigger))
    if transition is None:
        raise ConflictError(
            f"Cannot {trigger.value.replace('_', ' ')} while challenge is {status.value}",
            details={"status": status.value},
        )
    return transition


def joined_trigger(challenge: Challenge, today: date) -> Trigger:
    """Which join transition applies once the second participant is in."""
    if today < challenge.start_date:
        return Trigger.OPPONENT_JOINED_BEFORE_START
    return Trigger.OPPONENT_JOINED_AFTER_START


def evaluate_transition(
    challenge: Challenge, participants: list[Participant], today: date
) -> Transition | None:
    """The date- and membership-driven transition due now, if any.

    Pure: depends only on the challenge, its participants and ``today``
    (the calendar date where the creator lives).
    """
    status = challenge.status
    if status.is_terminal:
        return None

    if status == ChallengeStatus.PENDING:
        if len(participants) >= 2:
            return TRANSITIONS[(status, joined_trigger(challenge, today))]
        if today > challenge.end_date:
            return TRANSITIONS[(status, Trigger.END_PASSED_WITHOUT_OPPONENT)]
        return None

    if status == ChallengeStatus.SCHEDULED:
        if today >= challenge.start_date:
            return TRANSITIONS[(status, Trigger.START_REACHED)]
        return None

    if status == ChallengeStatus.ACTIVE:
        if participants and all(p.has_forfeited for p in participants):
            return TRANSITIONS[(status, Trigger.ALL_FORFEITED)]
        if today > challenge.end_date:
            return TRANSITIONS[(status, Trigger.END_PASSED)]
    return None


class TransitionEngine:
    """Applies transitions with compare-and-set and runs their side effects."""

    def __init__(
        self,
        db_path: Path | None = None,
        sink: NotificationSink | None = None,
    ):
        self.challenge_repo = ChallengeRepository(db_path)
        self.participant_repo = ParticipantRepository(db_path)
        self.winner_resolver = WinnerResolver(db_path)
        self.notifications = NotificationService(sink=sink, db_path=db_path)

    def today_for(self, challenge: Challenge) -> date:
        return today_in(challenge.creator_timezone or get_settings().default_timezone)

    async def apply(
        self,
        challenge: Challenge,
        transition: Transition,
        participants: list[Participant] | None = None,
        actor_id: int | None = None,
        remove_user_id: int | None = None,
    ) -> bool:
        """Persist ``transition`` if the challenge is still in its source status.

        ``remove_user_id`` drops that participant in the same write (the
        leave path). Returns True if this call moved the challenge; False if
        another writer already did, in which case no side effects run.
        """
        if participants is None:
            participants = await self.participant_repo.list_for_challenge(challenge.id)

        winner_id = None
        if Effect.RESOLVE_WINNER in transition.effects:
            winner_id = await self.winner_resolver.resolve(challenge.id, participants)
        elif Effect.WINNER_IS_ACTOR in transition.effects:
            winner_id = actor_id

        moved = await self.challenge_repo.compare_and_set_status(
            challenge.id,
            transition.source,
            transition.target,
            winner_id=winner_id,
            remove_user_id=remove_user_id,
        )
        if not moved:
            logger.debug(
                f"Challenge {challenge.id}: {transition.source.value} -> "
                f"{transition.target.value} already applied elsewhere"
            )
            return False

        logger.info(
            f"Challenge {challenge.id}: {transition.source.value} -> "
            f"{transition.target.value} ({transition.trigger.value})"
        )
        challenge.status = transition.target
        challenge.winner_id = winner_id
        await self._dispatch(challenge, transition, participants, winner_id, actor_id)
        return True

    async def advance(self, challenge: Challenge, today: date | None = None) -> Challenge:
        """Apply due transitions until the challenge is stable.

        Safe to call any number of times from any number of places.
        """
        for _ in range(len(ChallengeStatus)):
            current_day = today or self.today_for(challenge)
            participants = await self.participant_repo.list_for_challenge(challenge.id)
            transition = evaluate_transition(challenge, participants, current_day)
            if transition is None:
                break
            if not await self.apply(challenge, transition, participants):
                reloaded = await self.challenge_repo.get(challenge.id)
                if reloaded is None:
                    break
                challenge = reloaded
        return challenge

    async def _dispatch(
        self,
        challenge: Challenge,
        transition: Transition,
        participants: list[Participant],
        winner_id: int | None,
        actor_id: int | None,
    ) -> None:
        # The status change is committed; a failing sink must not undo it
        try:
            for effect in transition.effects:
                if effect == Effect.NOTIFY_EXPIRED:
                    await self.notifications.challenge_expired(challenge)
                elif effect == Effect.NOTIFY_JOINED:
                    opponent = self._joiner(challenge, participants, actor_id)
                    if opponent is not None:
                        await self.notifications.opponent_joined(challenge, opponent)
                elif effect == Effect.NOTIFY_STARTED:
                    await self.notifications.challenge_started(challenge, participants)
                elif effect == Effect.NOTIFY_RESULT:
                    await self.notifications.challenge_completed(
                        challenge, participants, winner_id
                    )
        except Exception:
            logger.exception(f"Challenge {challenge.id}: failed to send notifications")

    @staticmethod
    def _joiner(
        challenge: Challenge, participants: list[Participant], actor_id: int | None
    ) -> Participant | None:
        for participant in reversed(participants):
            if actor_id is not None and participant.user_id == actor_id:
                return participant
            if actor_id is None and participant.user_id != challenge.creator_id:
                return participant
        return None
