from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20260301_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=True, server_default="user"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=True),
    )

    op.create_table(
        "contests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cover_image", sa.Text(), nullable=True),
        sa.Column("start_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("submission_deadline", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("music_category", sa.String(length=80), nullable=True),
        sa.Column("prize_per_winner", sa.Numeric(12, 2), nullable=True),
        sa.Column("total_prize", sa.Numeric(12, 2), nullable=True),
        sa.Column("num_winners", sa.Integer(), nullable=True),
        sa.Column("prize_titles", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("guidelines", sa.Text(), nullable=True),
        sa.Column("rules", sa.Text(), nullable=True),
        sa.Column("hashtags", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_contests_created_by", "contests", ["created_by"])
    op.create_check_constraint("ck_contests_dates", "contests", "end_date > start_date")

    op.create_table(
        "contest_participants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("contest_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("joined_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.create_index("ix_contest_participants_contest_id", "contest_participants", ["contest_id"])
    op.create_index("ix_contest_participants_user_id", "contest_participants", ["user_id"])
    op.create_unique_constraint("uq_contest_participants_contest_user", "contest_participants", ["contest_id", "user_id"])

    op.create_table(
        "contest_links",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("contest_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("thumbnail", sa.Text(), nullable=True),
        sa.Column("username", sa.String(length=120), nullable=True),
        sa.Column("views", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("likes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("comments", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("shares", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("tiktok_video_id", sa.String(length=64), nullable=True),
        sa.Column("embed_code", sa.Text(), nullable=True),
        sa.Column("video_type", sa.String(length=16), nullable=False, server_default="tiktok"),
        sa.Column("is_contest_submission", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("last_stats_update", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("submission_date", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_contest_links_contest_id", "contest_links", ["contest_id"])
    op.create_index("ix_contest_links_created_by", "contest_links", ["created_by"])
    op.create_index("ix_contest_links_tiktok_video_id", "contest_links", ["tiktok_video_id"])
    op.create_unique_constraint("uq_contest_links_contest_creator", "contest_links", ["contest_id", "created_by"])

    op.create_table(
        "video_links",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("username", sa.String(length=120), nullable=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("thumbnail", sa.Text(), nullable=True),
        sa.Column("video_type", sa.String(length=16), nullable=False, server_default="upload"),
        sa.Column("storage_key", sa.Text(), nullable=True),
        sa.Column("thumbnail_key", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_video_links_created_by", "video_links", ["created_by"])

    op.create_table(
        "tiktok_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tiktok_user_id", sa.String(length=64), nullable=True),
        sa.Column("username", sa.String(length=120), nullable=True),
        sa.Column("display_name", sa.String(length=200), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_tiktok_profiles_user_id", "tiktok_profiles", ["user_id"])
    # at most one primary account per user
    op.create_index(
        "uq_tiktok_profiles_one_primary", "tiktok_profiles", ["user_id"],
        unique=True, postgresql_where=sa.text("is_primary"),
    )

def downgrade() -> None:
    op.drop_index("uq_tiktok_profiles_one_primary", table_name="tiktok_profiles")
    op.drop_index("ix_tiktok_profiles_user_id", table_name="tiktok_profiles")
    op.drop_table("tiktok_profiles")
    op.drop_index("ix_video_links_created_by", table_name="video_links")
    op.drop_table("video_links")
    op.drop_constraint("uq_contest_links_contest_creator", "contest_links", type_="unique")
    op.drop_index("ix_contest_links_tiktok_video_id", table_name="contest_links")
    op.drop_index("ix_contest_links_created_by", table_name="contest_links")
    op.drop_index("ix_contest_links_contest_id", table_name="contest_links")
    op.drop_table("contest_links")
    op.drop_constraint("uq_contest_participants_contest_user", "contest_participants", type_="unique")
    op.drop_index("ix_contest_participants_user_id", table_name="contest_participants")
    op.drop_index("ix_contest_participants_contest_id", table_name="contest_participants")
    op.drop_table("contest_participants")
    op.drop_constraint("ck_contests_dates", "contests", type_="check")
    op.drop_index("ix_contests_created_by", table_name="contests")
    op.drop_table("contests")
    op.drop_table("profiles")
