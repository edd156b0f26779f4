"""Challenge routes."""

from datetime import date

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, field_validator

from ...models.challenge import ChallengeStatus, SportType, goals_from_dict
from ...services import ChallengeService
from ..deps import get_challenge_service, get_current_user_id

router = APIRouter(prefix="/challenges", tags=["challenges"])


class GoalsBody(BaseModel):
    goals: dict[SportType, float]

    @field_validator("goals", mode="before")
    @classmethod
    def parse_sport_names(cls, value):
        if isinstance(value, dict):
            return goals_from_dict(value)
        return value


class CreateChallengeRequest(GoalsBody):
    name: str | None = None
    start_date: date
    end_date: date
    timezone: str | None = None


class JoinChallengeRequest(GoalsBody):
    invite_code: str


class RenameChallengeRequest(BaseModel):
    name: str


@router.post("", status_code=201)
async def create_challenge(
    body: CreateChallengeRequest,
    user_id: int = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    view = await service.create_challenge(
        user_id,
        body.name,
        body.start_date,
        body.end_date,
        body.goals,
        timezone=body.timezone,
    )
    return view.to_dict()


@router.post("/join")
async def join_challenge(
    body: JoinChallengeRequest,
    user_id: int = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    view = await service.join_challenge(user_id, body.invite_code, body.goals)
    return view.to_dict()


@router.get("")
async def list_challenges(
    status: ChallengeStatus | None = None,
    user_id: int = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    """The current user's challenges, newest first."""
    views = await service.list_user_challenges(user_id, status)
    return {"challenges": [v.to_dict() for v in views]}


@router.get("/invite/{invite_code}")
async def preview_challenge(
    invite_code: str,
    service: ChallengeService = Depends(get_challenge_service),
):
    view = await service.get_challenge_by_invite_code(invite_code)
    return view.to_dict()


@router.get("/{challenge_id}")
async def get_challenge(
    challenge_id: int,
    sync: bool | None = None,
    service: ChallengeService = Depends(get_challenge_service),
):
    view = await service.get_challenge(challenge_id, sync=sync)
    return view.to_dict()


@router.get("/{challenge_id}/progress")
async def get_progress(
    challenge_id: int,
    service: ChallengeService = Depends(get_challenge_service),
):
    progress = await service.get_progress(challenge_id)
    return progress.to_dict()


@router.get("/{challenge_id}/weeks")
async def list_week_results(
    challenge_id: int,
    service: ChallengeService = Depends(get_challenge_service),
):
    results = await service.list_week_results(challenge_id)
    return {"weeks": [r.to_dict() for r in results]}


@router.patch("/{challenge_id}")
async def update_challenge(
    challenge_id: int,
    body: RenameChallengeRequest,
    user_id: int = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    view = await service.update_challenge(challenge_id, user_id, name=body.name)
    return view.to_dict()


@router.post("/{challenge_id}/sync")
async def sync_challenge(
    challenge_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Pull the current user's activities, then return fresh progress."""
    progress = await service.sync_and_get_progress(challenge_id, user_id)
    return progress.to_dict()


@router.post("/{challenge_id}/leave")
async def leave_challenge(
    challenge_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Leave a scheduled challenge or forfeit an active one."""
    view = await service.leave_challenge(challenge_id, user_id)
    return view.to_dict()


@router.post("/{challenge_id}/finish")
async def finish_challenge(
    challenge_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    view = await service.finish_challenge(challenge_id, user_id)
    return view.to_dict()


@router.delete("/{challenge_id}", status_code=204)
async def delete_challenge(
    challenge_id: int,
    user_id: int = Depends(get_current_user_id),
    service: ChallengeService = Depends(get_challenge_service),
):
    await service.delete_challenge(challenge_id, user_id)
    return Response(status_code=204)
