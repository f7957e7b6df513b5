# src/clubrank/api/match.py

"""API endpoints for reporting matches and driving their validation."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clubrank.api.deps import (
    get_admin_check,
    get_clock,
    get_current_player_id,
    get_engine,
    get_notifier,
)
from clubrank.clock import Clock
from clubrank.config import Settings, get_settings
from clubrank.db.models import Match, MatchStatus
from clubrank.db.session import get_db
from clubrank.notifications import Notifier
from clubrank.rating.elo_engine import EloEngine
from clubrank.schemas import match as match_schema
from clubrank.schemas.pagination import MatchSortField, PaginatedResponse, SortOrder
from clubrank.services import validation_service
from clubrank.services.validation_service import AdminCheck, TransitionResult

# Create an APIRouter instance for matches
router = APIRouter(prefix="/matches", tags=["Matches"])


def _transition_response(result: TransitionResult) -> match_schema.TransitionRead:
    return match_schema.TransitionRead(
        outcome=result.outcome,
        changed=result.changed,
        match=match_schema.MatchRead.model_validate(result.match),
    )


@router.get("/", response_model=PaginatedResponse[match_schema.MatchRead])
async def read_matches(
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    sort_by: MatchSortField = Query(MatchSortField.PLAYED_AT, description="Sort field"),
    sort_order: SortOrder = Query(SortOrder.DESC, description="Sort direction"),
    club_id: int | None = Query(None, description="Filter by club"),
    player_id: int | None = Query(None, description="Filter by player"),
    match_status: MatchStatus | None = Query(
        None, alias="status", description="Filter by validation status"
    ),
    played_after: datetime | None = Query(None, description="After this date"),
    played_before: datetime | None = Query(None, description="Before this date"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[match_schema.MatchRead]:
    """
    Retrieve a paginated list of matches with filtering options.

    - **skip**: Number of records to skip (for pagination)
    - **limit**: Maximum number of records to return (1-100)
    - **sort_by**: Field to sort by (id, played_at, created_at, finalized_at)
    - **sort_order**: Sort direction (asc, desc)
    - **club_id**: Filter by club
    - **player_id**: Filter by player participation
    - **status**: Filter by validation status
    - **played_after**: Filter matches played after this datetime
    - **played_before**: Filter matches played before this datetime
    """
    base_query = select(Match)

    if club_id is not None:
        base_query = base_query.where(Match.club_id == club_id)

    if player_id is not None:
        base_query = base_query.where(
            or_(Match.player1_id == player_id, Match.player2_id == player_id)
        )

    if match_status is not None:
        base_query = base_query.where(Match.status == match_status.value)

    if played_after is not None:
        base_query = base_query.where(Match.played_at >= played_after)

    if played_before is not None:
        base_query = base_query.where(Match.played_at <= played_before)

    count_query = select(func.count()).select_from(base_query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    sort_column = getattr(Match, sort_by.value)
    if sort_order == SortOrder.DESC:
        sort_column = sort_column.desc()

    query = base_query.order_by(sort_column, Match.id).offset(skip).limit(limit)
    result = await db.execute(query)
    items = list(result.scalars().all())

    return PaginatedResponse.from_page(items, total, skip, limit)  # type: ignore[return-value]


@router.post(
    "/", response_model=match_schema.MatchRead, status_code=status.HTTP_201_CREATED
)
async def report_match(
    match_in: match_schema.MatchReport,
    reporter_id: int = Depends(get_current_player_id),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> Match:
    """
    Report the result of a match played against a club member.

    The match waits for the opponent's confirmation and auto-validates after
    the confirmation window.

    Raises:
        401: If the caller is not identified
        404: If the opponent doesn't exist
        422: If the score, date or opponent is not acceptable
    """
    return await validation_service.report_match(
        db,
        reporter_id,
        match_in.opponent_id,
        match_in.score,
        match_in.format,
        match_in.played_at,
        match_in.winner_id,
        clock=clock,
        notifier=notifier,
        settings=settings,
    )


@router.get("/{match_id}", response_model=match_schema.MatchRead)
async def read_match(match_id: int, db: AsyncSession = Depends(get_db)) -> Match:
    """
    Retrieve a single match, including its rating snapshots and breakdown.
    """
    return await validation_service.get_match(db, match_id)


@router.get("/{match_id}/validation", response_model=match_schema.MatchValidationRead)
async def read_match_validation(
    match_id: int,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> validation_service.ValidationStatus:
    """
    Countdown until auto-validation and the contestation deadline.
    """
    return await validation_service.get_pending_validation(
        db, match_id, clock=clock, settings=settings
    )


@router.post("/{match_id}/confirm", response_model=match_schema.TransitionRead)
async def confirm_match(
    match_id: int,
    actor_id: int = Depends(get_current_player_id),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
    engine: EloEngine = Depends(get_engine),
) -> match_schema.TransitionRead:
    """
    Confirm a result reported by the opponent and apply the rating change.

    A confirmation that arrives after the match was already finalized
    returns 200 with ``outcome = "already_finalized"``.

    Raises:
        403: If the caller reported the match
        409: If the match is contested or resolved
    """
    result = await validation_service.confirm_match(
        db,
        match_id,
        actor_id,
        clock=clock,
        notifier=notifier,
        settings=settings,
        engine=engine,
    )
    return _transition_response(result)


@router.post("/{match_id}/contest", response_model=match_schema.TransitionRead)
async def contest_match(
    match_id: int,
    contest_in: match_schema.ContestRequest | None = None,
    actor_id: int = Depends(get_current_player_id),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> match_schema.TransitionRead:
    """
    Contest a result.

    Raises:
        403: If the reporter contests a pending match, or the monthly limit
            is reached
        409: If the contestation window has closed or the match is already
            contested or resolved
    """
    result = await validation_service.contest_match(
        db,
        match_id,
        actor_id,
        contest_in.reason if contest_in else None,
        clock=clock,
        notifier=notifier,
        settings=settings,
    )
    return _transition_response(result)


@router.post("/{match_id}/resolve", response_model=match_schema.TransitionRead)
async def resolve_match(
    match_id: int,
    resolve_in: match_schema.ResolveRequest,
    admin_id: int = Depends(get_current_player_id),
    db: AsyncSession = Depends(get_db),
    is_admin: AdminCheck | None = Depends(get_admin_check),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
    engine: EloEngine = Depends(get_engine),
) -> match_schema.TransitionRead:
    """
    Resolve a contested match as a club administrator.

    - **resolution**: ``reinstated`` puts the result and its rating change
      back; ``reverted`` leaves the result cancelled.

    Raises:
        403: If the caller is not an administrator
        409: If the match is not contested
    """
    result = await validation_service.resolve_contested_match(
        db,
        match_id,
        admin_id,
        resolve_in.resolution,
        is_admin=is_admin,
        clock=clock,
        notifier=notifier,
        settings=settings,
        engine=engine,
    )
    return _transition_response(result)
