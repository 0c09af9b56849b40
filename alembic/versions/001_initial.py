"""Initial schema - users, tournaments, belts, coin ledger

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.String(64), unique=True, nullable=False),
        sa.Column("elo_rating", sa.Float, nullable=False, server_default="1200.0"),
        sa.Column("coins", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_username", "users", ["username"])

    # Tournaments
    op.create_table(
        "tournaments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("format", sa.String(20), nullable=False, server_default="BRACKET"),
        sa.Column("status", sa.String(20), nullable=False, server_default="UPCOMING"),
        sa.Column("current_round", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_rounds", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_participants", sa.Integer, nullable=False),
        sa.Column("reseed_after_round", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("reseed_method", sa.String(20), nullable=False, server_default="ELO_BASED"),
        sa.Column("elimination_percent", sa.Integer, nullable=False, server_default="25"),
        sa.Column("prize_pool", sa.Integer, nullable=False, server_default="0"),
        sa.Column("belt_cost", sa.Integer, nullable=False, server_default="0"),
        sa.Column("creator_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("champion_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tournaments_status", "tournaments", ["status"])

    # Participants
    op.create_table(
        "tournament_participants",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tournament_id", UUID(as_uuid=True), sa.ForeignKey("tournaments.id"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seed", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("selected_position", sa.String(8), nullable=True),
        sa.Column("cumulative_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("wins", sa.Integer, nullable=False, server_default="0"),
        sa.Column("losses", sa.Integer, nullable=False, server_default="0"),
        sa.Column("elo_at_start", sa.Float, nullable=False, server_default="1200.0"),
        sa.Column("elimination_round", sa.Integer, nullable=True),
        sa.Column("elimination_reason", sa.Text, nullable=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("tournament_id", "seed", name="uq_participant_seed"),
        sa.UniqueConstraint("tournament_id", "user_id", name="uq_participant_user"),
    )
    op.create_index("ix_tournament_participants_tournament_id", "tournament_participants", ["tournament_id"])
    op.create_index("ix_tournament_participants_user_id", "tournament_participants", ["user_id"])

    # Matches
    op.create_table(
        "tournament_matches",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("tournament_id", UUID(as_uuid=True), sa.ForeignKey("tournaments.id"), nullable=False),
        sa.Column("round", sa.Integer, nullable=False),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "participant1_id", UUID(as_uuid=True), sa.ForeignKey("tournament_participants.id"), nullable=True
        ),
        sa.Column(
            "participant2_id", UUID(as_uuid=True), sa.ForeignKey("tournament_participants.id"), nullable=True
        ),
        sa.Column("winner_id", UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="SCHEDULED"),
        sa.Column("participant1_score", sa.Float, nullable=True),
        sa.Column("participant2_score", sa.Float, nullable=True),
        sa.Column("participant1_breakdown", sa.JSON, nullable=True),
        sa.Column("participant2_breakdown", sa.JSON, nullable=True),
        sa.Column("judge_commentary", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tournament_matches_tournament_id", "tournament_matches", ["tournament_id"])
    op.create_index("ix_tournament_matches_status", "tournament_matches", ["status"])

    # Belts
    op.create_table(
        "belts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="VACANT"),
        sa.Column("holder_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("became_holder_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_defended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decline_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("coin_value", sa.Integer, nullable=False, server_default="0"),
        sa.Column("times_defended", sa.Integer, nullable=False, server_default="0"),
        sa.Column("successful_defenses", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_staked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("tournament_id", UUID(as_uuid=True), sa.ForeignKey("tournaments.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_belts_type", "belts", ["type"])
    op.create_index("ix_belts_status", "belts", ["status"])
    op.create_index("ix_belts_holder_id", "belts", ["holder_id"])

    # Belt challenges
    op.create_table(
        "belt_challenges",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("belt_id", UUID(as_uuid=True), sa.ForeignKey("belts.id"), nullable=False),
        sa.Column("challenger_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("holder_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("entry_fee", sa.Integer, nullable=False, server_default="0"),
        sa.Column("coin_reward", sa.Integer, nullable=False, server_default="0"),
        sa.Column("uses_free_challenge", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("free_consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("forced", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("winner_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_belt_challenges_belt_id", "belt_challenges", ["belt_id"])
    op.create_index("ix_belt_challenges_challenger_id", "belt_challenges", ["challenger_id"])
    op.create_index("ix_belt_challenges_status", "belt_challenges", ["status"])
    op.create_index("ix_belt_challenges_created_at", "belt_challenges", ["created_at"])

    # Belt settings, one row per belt type
    op.create_table(
        "belt_settings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("belt_type", sa.String(20), unique=True, nullable=False),
        sa.Column("defense_period_days", sa.Integer, nullable=False, server_default="30"),
        sa.Column("inactivity_days", sa.Integer, nullable=False, server_default="30"),
        sa.Column("mandatory_defense_days", sa.Integer, nullable=False, server_default="60"),
        sa.Column("grace_period_days", sa.Integer, nullable=False, server_default="30"),
        sa.Column("max_declines", sa.Integer, nullable=False, server_default="2"),
        sa.Column("challenge_cooldown_days", sa.Integer, nullable=False, server_default="7"),
        sa.Column("challenge_expiry_days", sa.Integer, nullable=False, server_default="3"),
        sa.Column("free_challenges_per_week", sa.Integer, nullable=False, server_default="1"),
        sa.Column("elo_range", sa.Integer, nullable=False, server_default="200"),
        sa.Column("entry_fee_base", sa.Integer, nullable=False, server_default="100"),
        sa.Column("entry_fee_multiplier", sa.Float, nullable=False, server_default="1.5"),
        sa.Column("winner_reward_percent", sa.Integer, nullable=False, server_default="60"),
        sa.Column("loser_consolation_percent", sa.Integer, nullable=False, server_default="30"),
        sa.Column("platform_fee_percent", sa.Integer, nullable=False, server_default="10"),
        sa.Column("tournament_belt_cost_small", sa.Integer, nullable=False, server_default="500"),
        sa.Column("tournament_belt_cost_medium", sa.Integer, nullable=False, server_default="1000"),
        sa.Column("tournament_belt_cost_large", sa.Integer, nullable=False, server_default="2000"),
        sa.Column("require_coins_for_challenge", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Coin ledger
    op.create_table(
        "coin_transactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("balance_after", sa.Integer, nullable=False),
        sa.Column("description", sa.String(256), nullable=True),
        sa.Column("belt_id", UUID(as_uuid=True), nullable=True),
        sa.Column("challenge_id", UUID(as_uuid=True), nullable=True),
        sa.Column("tournament_id", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_coin_transactions_user_id", "coin_transactions", ["user_id"])
    op.create_index("ix_coin_transactions_type", "coin_transactions", ["type"])
    op.create_index("ix_coin_transactions_created_at", "coin_transactions", ["created_at"])


def downgrade() -> None:
    op.drop_table("coin_transactions")
    op.drop_table("belt_settings")
    op.drop_table("belt_challenges")
    op.drop_table("belts")
    op.drop_table("tournament_matches")
    op.drop_table("tournament_participants")
    op.drop_table("tournaments")
    op.drop_table("users")
