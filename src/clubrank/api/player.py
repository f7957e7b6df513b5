# src/clubrank/api/player.py

"""API endpoints for players and their rating history."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clubrank.api.deps import get_clock
from clubrank.clock import Clock
from clubrank.config import Settings, get_settings
from clubrank.db.models import Player, RatingChangeReason, RatingHistory
from clubrank.db.session import get_db
from clubrank.exceptions import PlayerNotFoundError
from clubrank.schemas import player as player_schema
from clubrank.schemas.pagination import PaginatedResponse, PlayerSortField, SortOrder
from clubrank.schemas.rating_history import RatingHistoryRead
from clubrank.services import rating_store

# Create an APIRouter instance for players
# - prefix="/players": All routes here will be prefixed with /players
# - tags=["Players"]: Groups these endpoints under "Players" in the API docs
router = APIRouter(prefix="/players", tags=["Players"])


def to_player_read(player: Player, now: datetime) -> player_schema.PlayerRead:
    """Serialize a player with the streak as it stands at ``now``."""
    return player_schema.PlayerRead.model_validate(player).model_copy(
        update={"current_streak": rating_store.effective_streak(player, now)}
    )


@router.post(
    "/",
    response_model=player_schema.PlayerRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_player(
    player_in: player_schema.PlayerCreate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Player:
    """
    Create a new player with the default rating.

    - **name**: The unique name for the player.
    - **club_id**: The club the player belongs to.
    - **is_admin**: Whether the player administers the club.

    Raises:
        409 Conflict: If a player with the same name already exists.
    """
    new_player = Player(
        current_rating=settings.default_rating, **player_in.model_dump()
    )

    try:
        db.add(new_player)
        await db.commit()
        await db.refresh(new_player)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Player with name '{player_in.name}' already exists",
        )

    return new_player


@router.get("/", response_model=PaginatedResponse[player_schema.PlayerRead])
async def read_players(
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    sort_by: PlayerSortField = Query(PlayerSortField.ID, description="Sort field"),
    sort_order: SortOrder = Query(SortOrder.ASC, description="Sort direction"),
    club_id: int | None = Query(None, description="Filter by club"),
    include_inactive: bool = Query(False, description="Include inactive players"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> PaginatedResponse[player_schema.PlayerRead]:
    """
    Retrieve a paginated list of players.

    - **skip**: Number of records to skip (for pagination)
    - **limit**: Maximum number of records to return (1-100)
    - **sort_by**: Field to sort by (id, name, created_at, current_rating)
    - **sort_order**: Sort direction (asc, desc)
    - **club_id**: Only players of this club
    - **include_inactive**: Whether to include inactive players (default: false)
    """
    base_query = select(Player)
    if club_id is not None:
        base_query = base_query.where(Player.club_id == club_id)
    if not include_inactive:
        base_query = base_query.where(Player.is_active.is_(True))

    count_query = select(func.count()).select_from(base_query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    sort_column = getattr(Player, sort_by.value)
    if sort_order == SortOrder.DESC:
        sort_column = sort_column.desc()

    query = base_query.order_by(sort_column, Player.id).offset(skip).limit(limit)
    result = await db.execute(query)
    now = clock.now()
    items = [to_player_read(player, now) for player in result.scalars().all()]

    return PaginatedResponse.from_page(items, total, skip, limit)  # type: ignore[return-value]


@router.get("/{player_id}", response_model=player_schema.PlayerRead)
async def read_player(
    player_id: int,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> player_schema.PlayerRead:
    """
    Retrieve a single player and their rating record.
    """
    player = await db.get(Player, player_id)
    if not player:
        raise PlayerNotFoundError(player_id)
    return to_player_read(player, clock.now())


@router.get(
    "/{player_id}/rating-history",
    response_model=PaginatedResponse[RatingHistoryRead],
)
async def read_rating_history(
    player_id: int,
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    reason: RatingChangeReason | None = Query(None, description="Filter by reason"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[RatingHistoryRead]:
    """
    Get the rating ledger of a player, newest entry first.

    - **player_id**: The ID of the player
    - **reason**: Only entries with this reason (match_result, reversal, ...)
    """
    player = await db.get(Player, player_id)
    if not player:
        raise PlayerNotFoundError(player_id)

    base_query = select(RatingHistory).where(RatingHistory.player_id == player_id)
    if reason is not None:
        base_query = base_query.where(RatingHistory.reason == reason.value)

    count_query = select(func.count()).select_from(base_query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    query = base_query.order_by(RatingHistory.id.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    items = list(result.scalars().all())

    return PaginatedResponse.from_page(items, total, skip, limit)  # type: ignore[return-value]
