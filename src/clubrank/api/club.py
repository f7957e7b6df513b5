# src/clubrank/api/club.py

"""API endpoints scoped to a club."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clubrank.api.deps import get_clock
from clubrank.api.player import to_player_read
from clubrank.clock import Clock
from clubrank.db.models import Player
from clubrank.db.session import get_db
from clubrank.schemas.leaderboard import LeaderboardEntry
from clubrank.schemas.pagination import PaginatedResponse

router = APIRouter(prefix="/clubs", tags=["Clubs"])


@router.get(
    "/{club_id}/leaderboard",
    response_model=PaginatedResponse[LeaderboardEntry],
)
async def get_leaderboard(
    club_id: int,
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    min_matches: int = Query(0, ge=0, description="Minimum finalized matches"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> PaginatedResponse[LeaderboardEntry]:
    """
    Get player rankings for a club.

    Returns active players ranked by current rating (highest first). Ties
    are broken by player id.

    - **club_id**: The club to rank
    - **skip**: Number of records to skip (for pagination)
    - **limit**: Maximum number of records to return (1-100)
    - **min_matches**: Hide players with fewer finalized matches
    """
    base_query = select(Player).where(
        Player.club_id == club_id,
        Player.is_active.is_(True),
        Player.matches_played >= min_matches,
    )

    count_query = select(func.count()).select_from(base_query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    query = (
        base_query.order_by(Player.current_rating.desc(), Player.id)
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(query)
    players = list(result.scalars().all())

    now = clock.now()
    # Rank is global, so offset by skip
    items = [
        LeaderboardEntry(
            rank=skip + index + 1,
            player=to_player_read(player, now),
            win_rate=(
                player.wins / player.matches_played if player.matches_played else 0.0
            ),
        )
        for index, player in enumerate(players)
    ]

    return PaginatedResponse.from_page(items, total, skip, limit)  # type: ignore[return-value]
