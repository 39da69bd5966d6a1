from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    clip_status_enum = sa.Enum("processing", "completed", "failed", name="clipstatus")
    source_kind_enum = sa.Enum("uploaded_file", "remote_url", name="sourcekind")

    op.create_table(
        "clips",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("source_kind", source_kind_enum, nullable=False),
        sa.Column("original_source_uri", sa.Text(), nullable=False),
        sa.Column("artifact_uri", sa.Text(), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("status", clip_status_enum, nullable=False, server_default="processing"),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("thumbnail_uri", sa.Text(), nullable=True),
        sa.Column("aspect_ratio", sa.String(length=16), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_clips_owner_id_created_at", "clips", ["owner_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_clips_owner_id_created_at", table_name="clips")
    op.drop_table("clips")

    sa.Enum(name="sourcekind").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="clipstatus").drop(op.get_bind(), checkfirst=True)
