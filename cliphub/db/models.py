from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cliphub.core.db import Base, UTCDateTime, utcnow


class ClipStatus(str, enum.Enum):
    processing = "processing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ClipStatus.processing


class SourceKind(str, enum.Enum):
    uploaded_file = "uploaded_file"
    remote_url = "remote_url"


class Clip(Base):
    __tablename__ = "clips"
    __table_args__ = (Index("ix_clips_owner_id_created_at", "owner_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    source_kind: Mapped[SourceKind] = mapped_column(Enum(SourceKind), nullable=False)
    original_source_uri: Mapped[str] = mapped_column(Text, nullable=False)
    artifact_uri: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ClipStatus] = mapped_column(Enum(ClipStatus), default=ClipStatus.processing, nullable=False)
    duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    thumbnail_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    aspect_ratio: Mapped[str | None] = mapped_column(String(16), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)


__all__ = ["Clip", "ClipStatus", "SourceKind"]
