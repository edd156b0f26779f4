"""Request dependencies."""

from fastapi import Header, HTTPException, Request

from ..services import ChallengeService, NotificationService


def get_challenge_service(request: Request) -> ChallengeService:
    return request.app.state.challenge_service


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.challenge_service.notifications


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> int:
    """Acting user from the ``X-User-Id`` header set by the fronting auth layer."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="X-User-Id must be an integer") from None
