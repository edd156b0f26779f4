"""Notification sink and the messages sent on challenge events."""

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..db.repositories import NotificationRepository
from ..models.challenge import Challenge, Participant
from ..models.user import Notification, NotificationKind

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSink(Protocol):
    """Receives every notification the engine decides to send."""

    async def notify(
        self,
        user_id: int,
        kind: NotificationKind,
        challenge: Challenge | None,
        message: str,
    ) -> None:
        ...


class StoredNotificationSink:
    """Sink that stores notifications for users to read later."""

    def __init__(self, db_path: Path | None = None):
        self.repo = NotificationRepository(db_path)

    async def notify(
        self,
        user_id: int,
        kind: NotificationKind,
        challenge: Challenge | None,
        message: str,
    ) -> None:
        await self.repo.create(
            Notification(
                user_id=user_id,
                kind=kind,
                message=message,
                challenge_id=challenge.id if challenge else None,
            )
        )
        logger.info(f"Notified user {user_id}: {kind.value} ({message})")


def _title(challenge: Challenge) -> str:
    return challenge.name or "Challenge"


class NotificationService:
    """Builds event messages and hands them to a sink."""

    def __init__(self, sink: NotificationSink | None = None, db_path: Path | None = None):
        self.sink = sink or StoredNotificationSink(db_path)
        self.repo = NotificationRepository(db_path)

    async def opponent_joined(self, challenge: Challenge, opponent: Participant) -> None:
        """Tell the creator someone joined."""
        who = opponent.username or f"User {opponent.user_id}"
        await self.sink.notify(
            challenge.creator_id,
            NotificationKind.OPPONENT_JOINED,
            challenge,
            f'{who} joined "{_title(challenge)}"',
        )

    async def challenge_started(
        self, challenge: Challenge, participants: list[Participant]
    ) -> None:
        for participant in participants:
            if participant.has_forfeited:
                continue
            await self.sink.notify(
                participant.user_id,
                NotificationKind.CHALLENGE_STARTED,
                challenge,
                f'"{_title(challenge)}" has started!',
            )

    async def challenge_completed(
        self,
        challenge: Challenge,
        participants: list[Participant],
        winner_id: int | None,
    ) -> None:
        """Send won/lost/tie to every participant who did not forfeit."""
        title = _title(challenge)
        for participant in participants:
            if participant.has_forfeited:
                continue
            if winner_id is None:
                kind, message = NotificationKind.CHALLENGE_TIE, f'"{title}" ended in a tie!'
            elif participant.user_id == winner_id:
                kind, message = NotificationKind.CHALLENGE_WON, f'You won "{title}"!'
            else:
                kind, message = (
                    NotificationKind.CHALLENGE_LOST,
                    f'"{title}" has ended. Better luck next time!',
                )
            await self.sink.notify(participant.user_id, kind, challenge, message)

    async def opponent_forfeited(
        self,
        challenge: Challenge,
        forfeiter: Participant,
        participants: list[Participant],
    ) -> None:
        """Tell the participants still in the challenge that someone forfeited."""
        who = forfeiter.username or f"User {forfeiter.user_id}"
        for participant in participants:
            if participant.user_id == forfeiter.user_id or participant.has_forfeited:
                continue
            await self.sink.notify(
                participant.user_id,
                NotificationKind.OPPONENT_FORFEITED,
                challenge,
                f'{who} forfeited "{_title(challenge)}". Finish it to claim the win.',
            )

    async def challenge_expired(self, challenge: Challenge) -> None:
        await self.sink.notify(
            challenge.creator_id,
            NotificationKind.CHALLENGE_EXPIRED,
            challenge,
            f'"{_title(challenge)}" expired: no one joined',
        )

    async def list_for_user(self, user_id: int, unread_only: bool = False) -> list[Notification]:
        return await self.repo.list_for_user(user_id, unread_only=unread_only)

    async def unread_count(self, user_id: int) -> int:
        return await self.repo.count_unread(user_id)

    async def mark_all_read(self, user_id: int) -> None:
        await self.repo.mark_all_read(user_id)
