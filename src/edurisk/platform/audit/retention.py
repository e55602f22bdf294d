"""
Audit log retention and archiving service.

Each record carries its own ``retention_period_days``; the global
``max_retention_days`` only caps it. The resulting deadline is stored in
``expires_at`` at write time, so a sweep is one range delete.
"""

import asyncio
import gzip
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import session_scope
from ..settings import settings
from .exceptions import store_errors
from .models import AuditEvent, AuditEventDetail, compute_expiry, ensure_utc, utcnow
from .schemas import RetentionStatistics, SweepResult

logger = structlog.get_logger(__name__)


def is_retained(record: Any, now: datetime | None = None) -> bool:
    """True while ``record`` is inside its retention window.

    Accepts a stored ``AuditEvent`` or any object with ``timestamp`` and
    ``retention_period_days``.
    """
    expires_at = getattr(record, "expires_at", None)
    if expires_at is None:
        expires_at = compute_expiry(record.timestamp, record.retention_period_days)
    return ensure_utc(now or utcnow()) < ensure_utc(expires_at)


class AuditRetentionService:
    """Service for deleting and optionally archiving expired audit events."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        archive_enabled: bool | None = None,
        archive_location: str | Path | None = None,
        batch_size: int = 1000,
    ):
        self._session_factory = session_factory
        self.archive_enabled = (
            settings.audit.archive_enabled if archive_enabled is None else archive_enabled
        )
        self.archive_location = Path(archive_location or settings.audit.archive_location)
        self.batch_size = batch_size

    def _get_session(self) -> Any:
        return session_scope(factory=self._session_factory)

    async def sweep(self, dry_run: bool = False, now: datetime | None = None) -> SweepResult:
        """
        Delete every event whose retention deadline has passed.

        Args:
            dry_run: Only count what would be deleted.
            now: Reference time, defaults to the current UTC time.

        Returns:
            Counts of deleted and archived events plus the cutoff used.
        """
        cutoff = ensure_utc(now or utcnow())
        expired = AuditEvent.expires_at <= cutoff
        result = SweepResult(cutoff=cutoff, dry_run=dry_run)

        with store_errors("retention_sweep"):
            async with self._get_session() as session:
                pending = await session.scalar(
                    select(func.count()).select_from(AuditEvent).where(expired)
                ) or 0

                if dry_run or pending == 0:
                    result.deleted = pending
                    logger.info("audit.retention.swept", cutoff=cutoff.isoformat(),
                                dry_run=dry_run, expired=pending)
                    return result

                try:
                    if self.archive_enabled:
                        result.archive_file, result.archived = await self._archive(
                            session, expired, cutoff
                        )

                    deleted = await session.execute(
                        delete(AuditEvent)
                        .where(expired)
                        .execution_options(synchronize_session=False)
                    )
                    await session.commit()
                except BaseException:
                    await session.rollback()
                    raise

                result.deleted = deleted.rowcount or 0

        logger.info(
            "audit.retention.swept",
            cutoff=cutoff.isoformat(),
            deleted=result.deleted,
            archived=result.archived,
            archive_file=str(result.archive_file) if result.archive_file else None,
        )
        return result

    async def _archive(self, session: AsyncSession, expired: Any, cutoff: datetime) -> tuple[Path, int]:
        """Write expired events to a gzip JSON-lines file before deletion."""
        self.archive_location.mkdir(parents=True, exist_ok=True)
        archive_file = self.archive_location / f"audit_{cutoff.strftime('%Y%m%d_%H%M%S')}.jsonl.gz"
        archived = 0

        query = select(AuditEvent).where(expired).order_by(AuditEvent.timestamp, AuditEvent.id)
        try:
            with gzip.open(archive_file, "wt", encoding="utf-8") as f:
                offset = 0
                while True:
                    batch = await session.execute(query.offset(offset).limit(self.batch_size))
                    records = batch.scalars().all()
                    if not records:
                        break
                    for record in records:
                        payload = AuditEventDetail.model_validate(record).model_dump(mode="json")
                        f.write(json.dumps(payload) + "\n")
                        archived += 1
                    offset += self.batch_size
        except BaseException:
            # Remove partial archive file
            if archive_file.exists():
                archive_file.unlink()
            raise

        return archive_file, archived

    async def retention_statistics(self, now: datetime | None = None) -> RetentionStatistics:
        """Size and age of the trail, and how much of it is already expired."""
        reference = ensure_utc(now or utcnow())

        with store_errors("retention_statistics"):
            async with self._get_session() as session:
                totals = await session.execute(
                    select(
                        func.count(AuditEvent.id),
                        func.min(AuditEvent.timestamp),
                        func.max(AuditEvent.timestamp),
                    )
                )
                total, oldest, newest = totals.one()

                expired = await session.scalar(
                    select(func.count()).select_from(AuditEvent).where(
                        AuditEvent.expires_at <= reference
                    )
                ) or 0
                next_expiry = await session.scalar(
                    select(func.min(AuditEvent.expires_at)).where(
                        AuditEvent.expires_at > reference
                    )
                )

        return RetentionStatistics(
            total_records=total or 0,
            expired_records=expired,
            oldest_record=ensure_utc(oldest) if oldest else None,
            newest_record=ensure_utc(newest) if newest else None,
            next_expiry=ensure_utc(next_expiry) if next_expiry else None,
            default_retention_days=settings.audit.default_retention_days,
            max_retention_days=settings.audit.max_retention_days,
        )


class RetentionSweeper:
    """Runs ``AuditRetentionService.sweep`` on a fixed interval."""

    def __init__(
        self,
        service: AuditRetentionService | None = None,
        interval_seconds: float | None = None,
    ):
        self.service = service or AuditRetentionService()
        self.interval_seconds = interval_seconds or settings.audit.sweep_interval_seconds
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._periodic_sweep())
        logger.info("audit.retention.sweeper_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("audit.retention.sweeper_stopped")

    async def _periodic_sweep(self) -> None:
        while self._running:
            try:
                await self.service.sweep()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("audit.retention.sweep_failed", error=str(e), exc_info=True)
            await asyncio.sleep(self.interval_seconds)


async def cleanup_audit_logs_task(dry_run: bool = False) -> SweepResult:
    """One-shot retention sweep, for schedulers and the command line."""
    logger.info("audit.retention.task_started", dry_run=dry_run)
    result = await AuditRetentionService().sweep(dry_run=dry_run)
    logger.info("audit.retention.task_completed", deleted=result.deleted, archived=result.archived)
    return result


if __name__ == "__main__":
    import sys

    from ..logging import setup_logging

    setup_logging()
    asyncio.run(cleanup_audit_logs_task(dry_run="--dry-run" in sys.argv[1:]))
