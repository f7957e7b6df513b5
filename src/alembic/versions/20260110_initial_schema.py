"""Initial schema: players, matches and the rating ledger

Revision ID: 20260110_initial
Revises:
Create Date: 2026-01-10

Creates:
- players: club membership plus the live rating record
- matches: reported results with validation state and rating snapshots
- rating_history: append-only ledger of every rating change
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20260110_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the three tables and their indexes."""
    # === PLAYERS ===
    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("club_id", sa.Integer(), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("current_rating", sa.Integer(), nullable=False, server_default="1200"),
        sa.Column("best_rating", sa.Integer(), nullable=False, server_default="1200"),
        sa.Column("lowest_rating", sa.Integer(), nullable=False, server_default="1200"),
        sa.Column("matches_played", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("wins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("losses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_match_at", sa.DateTime(), nullable=True),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active_week", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_players_club_id", "players", ["club_id"])
    op.create_index("ix_players_is_active", "players", ["is_active"])
    op.create_index("ix_players_last_match_at", "players", ["last_match_at"])

    # === MATCHES ===
    op.create_table(
        "matches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("club_id", sa.Integer(), nullable=False),
        sa.Column("player1_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("player2_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("reported_by", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("winner_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("score", sa.JSON(), nullable=False),
        sa.Column("score_text", sa.String(), nullable=False),
        sa.Column("format", sa.String(), nullable=False),
        sa.Column("played_at", sa.DateTime(), nullable=False),
        sa.Column(
            "status",
            sa.String(),
            nullable=False,
            server_default="pending_confirmation",
        ),
        sa.Column("reminder_sent_at", sa.DateTime(), nullable=True),
        sa.Column("auto_validate_at", sa.DateTime(), nullable=False),
        sa.Column(
            "rating_applied", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("finalized_at", sa.DateTime(), nullable=True),
        sa.Column("validated_by", sa.Integer(), nullable=True),
        sa.Column("player1_rating_before", sa.Integer(), nullable=True),
        sa.Column("player1_rating_after", sa.Integer(), nullable=True),
        sa.Column("player2_rating_before", sa.Integer(), nullable=True),
        sa.Column("player2_rating_after", sa.Integer(), nullable=True),
        sa.Column("rating_breakdown", sa.JSON(), nullable=True),
        sa.Column("contested_by", sa.Integer(), nullable=True),
        sa.Column("contested_at", sa.DateTime(), nullable=True),
        sa.Column("contest_reason", sa.String(), nullable=True),
        sa.Column("contested_from", sa.String(), nullable=True),
        sa.Column("resolved_by", sa.Integer(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolution", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_matches_club_id", "matches", ["club_id"])
    op.create_index("ix_matches_player1_id", "matches", ["player1_id"])
    op.create_index("ix_matches_player2_id", "matches", ["player2_id"])
    op.create_index("ix_matches_played_at", "matches", ["played_at"])
    op.create_index("ix_matches_contested_by", "matches", ["contested_by"])
    op.create_index(
        "ix_matches_status_auto_validate_at", "matches", ["status", "auto_validate_at"]
    )
    op.create_index("ix_matches_status_created_at", "matches", ["status", "created_at"])

    # === RATING_HISTORY ===
    op.create_table(
        "rating_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("match_id", sa.Integer(), sa.ForeignKey("matches.id"), nullable=True),
        sa.Column("rating_after", sa.Integer(), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_rating_history_player_id", "rating_history", ["player_id"])
    op.create_index("ix_rating_history_match_id", "rating_history", ["match_id"])
    op.create_index(
        "ix_rating_history_player_reason_created",
        "rating_history",
        ["player_id", "reason", "created_at"],
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("rating_history")
    op.drop_table("matches")
    op.drop_table("players")
