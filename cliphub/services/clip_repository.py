from __future__ import annotations

from typing import Sequence
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cliphub.core.db import utcnow
from cliphub.core.errors import ClipNotFound, RepositoryWriteFailed
from cliphub.core.logging import get_logger
from cliphub.db.models import Clip, ClipStatus
from cliphub.ingest.state_machine import WorkerUpdate, validate_worker_update

from .realtime import ChangeEvent, ChangeFeed, ChangeType, Subscription


class ClipRepository:
    """Authoritative store of clip records, partitioned by owner.

    Every write is a single-record commit followed by a change-feed
    publish. Creation belongs to ingestion; terminal updates belong to the
    external worker through :meth:`apply_worker_update`.
    """

    def __init__(self, session: AsyncSession, feed: ChangeFeed):
        self.session = session
        self.feed = feed
        self.logger = get_logger(component="clip_repository")

    async def create(self, clip: Clip) -> str:
        if not clip.id:
            clip.id = uuid4().hex
        clip.status = ClipStatus.processing
        now = utcnow()
        clip.created_at = now
        clip.updated_at = now

        self.session.add(clip)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            self.logger.error("clip_insert_failed", owner_id=clip.owner_id, error=str(exc))
            raise RepositoryWriteFailed(f"could not store clip for {clip.owner_id}") from exc

        self.feed.publish(
            ChangeEvent(ChangeType.insert, clip_id=clip.id, owner_id=clip.owner_id, status=clip.status.value)
        )
        return clip.id

    async def list_by_owner(self, owner_id: str) -> Sequence[Clip]:
        stmt = (
            select(Clip)
            .where(Clip.owner_id == owner_id)
            .order_by(Clip.created_at.desc(), Clip.id.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get(self, owner_id: str, clip_id: str) -> Clip | None:
        stmt = select(Clip).where(Clip.id == clip_id, Clip.owner_id == owner_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_worker(self, clip_id: str) -> Clip | None:
        return await self.session.get(Clip, clip_id)

    async def count(self, owner_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(Clip)
        if owner_id is not None:
            stmt = stmt.where(Clip.owner_id == owner_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def apply_worker_update(self, clip_id: str, update: WorkerUpdate) -> Clip:
        clip = await self.get_for_worker(clip_id)
        if clip is None:
            raise ClipNotFound(clip_id)

        validate_worker_update(clip.status, update)

        for name, value in update.metadata().items():
            setattr(clip, name, value)
        if update.status is not None:
            clip.status = update.status
        if update.artifact_uri is not None:
            clip.artifact_uri = update.artifact_uri
        if update.failure_reason is not None:
            clip.failure_reason = update.failure_reason
        clip.updated_at = utcnow()

        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            self.logger.error("clip_update_failed", clip_id=clip_id, error=str(exc))
            raise RepositoryWriteFailed(f"could not update clip {clip_id}") from exc

        self.logger.info("clip_updated_by_worker", clip_id=clip_id, status=clip.status.value)
        self.feed.publish(
            ChangeEvent(ChangeType.update, clip_id=clip.id, owner_id=clip.owner_id, status=clip.status.value)
        )
        return clip

    def observe(self, owner_id: str) -> Subscription:
        return self.feed.subscribe(owner_id)


__all__ = ["ClipRepository"]
