"""Leaderboard API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.auth.dependencies import Caller, get_current_user, require_service
from campus_connect.database import get_session
from campus_connect.db.models import User
from campus_connect.dependencies import get_redis_dep
from campus_connect.leaderboard.leaderboard_service import (
    ALL_TIME,
    get_leaderboard,
    get_top_performers,
    get_user_rank,
    get_user_rankings,
    rebuild_all,
    rebuild_leaderboard,
)
from campus_connect.leaderboard.schemas import (
    LeaderboardResponse,
    MyRankingsResponse,
    RebuildRequest,
    RebuildResponse,
    TopPerformersResponse,
    UserRankResponse,
)

router = APIRouter(prefix="/api/v1/leaderboards", tags=["Leaderboards"])


@router.get("/top-performers", response_model=TopPerformersResponse)
async def top_performers(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Top entries of the projects, contributions and mentorship boards."""
    return await get_top_performers(db, limit)


@router.get("/me", response_model=MyRankingsResponse)
async def my_rankings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """The current user's rank on every all-time board."""
    rankings = await get_user_rankings(db, user.id)
    return MyRankingsResponse(
        user_id=user.id,
        rankings={
            type_: UserRankResponse(
                user_id=user.id,
                type=type_,
                period=ALL_TIME,
                rank=entry["rank"] if entry else None,
                score=entry["score"] if entry else None,
            )
            for type_, entry in rankings.items()
        },
    )


@router.post("/rebuild", response_model=RebuildResponse)
async def rebuild(
    body: RebuildRequest,
    _service: Caller = Depends(require_service),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Rebuild one board (type + period) or, with an empty body, all of them. Service tokens only."""
    if body.type is None:
        return RebuildResponse(rebuilt=await rebuild_all(db, redis))
    period = body.period or ALL_TIME
    try:
        rankings = await rebuild_leaderboard(db, redis, body.type, period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return RebuildResponse(rebuilt={f"{body.type}/{period}": len(rankings)})


@router.get("/{type_}", response_model=LeaderboardResponse)
async def read_leaderboard(
    type_: str,
    period: str = Query(ALL_TIME),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Read a stored board."""
    try:
        return await get_leaderboard(db, type_, period, limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/{type_}/users/{user_id}", response_model=UserRankResponse)
async def read_user_rank(
    type_: str,
    user_id: int,
    period: str = Query(ALL_TIME),
    db: AsyncSession = Depends(get_session),
):
    """A user's rank and score on a board (rank is null when unranked)."""
    try:
        entry = await get_user_rank(db, user_id, type_, period)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return UserRankResponse(
        user_id=user_id,
        type=type_,
        period=period,
        rank=entry["rank"] if entry else None,
        score=entry["score"] if entry else None,
    )
