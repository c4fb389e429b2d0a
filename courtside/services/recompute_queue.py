"""
Per-group serialization point for match mutations and stats recomputation.

Every create/delete of a match and every manual recompute for a group runs
here, one at a time per group:
- Different groups proceed in parallel
- Lock acquisition is bounded (ConcurrencyTimeout when it expires)
- Mutation, recompute and job record commit in a single transaction
"""

import asyncio
import logging
import os
import zlib
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from sqlalchemy import and_, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database import db
from courtside.database.models import RecomputeJob, RecomputeJobStatus
from courtside.exceptions import ConcurrencyTimeout, DomainException
from courtside.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0

Mutation = Callable[[AsyncSession], Awaitable[Any]]
RecomputeCallback = Callable[[AsyncSession, Optional[int]], Awaitable[Any]]


def _scope_label(group_id: Optional[int]) -> str:
    return f"group {group_id}" if group_id is not None else "ungrouped scope"


def _consume_task_exception(task: "asyncio.Future") -> None:
    # Failures are logged and recorded in the critical section; a caller that
    # was cancelled while waiting never retrieves them.
    if not task.cancelled():
        task.exception()


class GroupRecomputeQueue:
    """In-process lock per group scope plus a database advisory lock on PostgreSQL."""

    def __init__(
        self,
        lock_timeout: Optional[float] = None,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        if lock_timeout is None:
            lock_timeout = float(
                os.getenv("RECOMPUTE_LOCK_TIMEOUT_SECONDS", DEFAULT_LOCK_TIMEOUT_SECONDS)
            )
        self.lock_timeout = lock_timeout
        self._session_factory = session_factory
        self._locks: Dict[Optional[int], asyncio.Lock] = {}
        self._in_flight: Dict[Optional[int], Dict] = {}
        self._recompute_callback: Optional[RecomputeCallback] = None

    def register_recompute_callback(self, callback: RecomputeCallback) -> None:
        """
        Register the function that rebuilds a group's snapshot.

        Must be called before any mutation is serialized, typically at
        application startup.

        Raises:
            TypeError: If callback is not callable
        """
        if not callable(callback):
            raise TypeError("recompute callback must be callable")
        if self._recompute_callback is not None:
            logger.warning("Re-registering recompute callback (previous callback will be replaced)")
        self._recompute_callback = callback
        logger.info("Recompute callback registered successfully")

    def _lock_for(self, group_id: Optional[int]) -> asyncio.Lock:
        lock = self._locks.get(group_id)
        if lock is None:
            lock = self._locks[group_id] = asyncio.Lock()
        return lock

    def _new_session(self) -> AsyncSession:
        # Resolved per call so a patched db.AsyncSessionLocal is picked up
        factory = self._session_factory or db.AsyncSessionLocal
        return factory()

    def is_running(self, group_id: Optional[int]) -> bool:
        return group_id in self._in_flight

    async def run_serialized(
        self,
        group_id: Optional[int],
        mutation: Optional[Mutation] = None,
        trigger: str = "manual",
    ) -> Tuple[Any, Any]:
        """
        Run ``mutation`` and a recompute of ``group_id`` under the group's lock.

        Args:
            group_id: Group scope to serialize on (None = ungrouped)
            mutation: Async function receiving the critical section's session
            trigger: Recorded on the job row ('match_created', 'match_deleted', 'manual')

        Returns:
            Tuple of (mutation result, recomputed snapshot)

        Raises:
            ConcurrencyTimeout: If the lock is not acquired within lock_timeout
        """
        lock = self._lock_for(group_id)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Timed out after {self.lock_timeout:g}s waiting for the recompute lock of "
                f"{_scope_label(group_id)}"
            )
            raise ConcurrencyTimeout(group_id, self.lock_timeout)

        # The critical section owns the lock from here on; a cancelled caller
        # stops waiting but never interrupts the transaction.
        task = asyncio.ensure_future(self._run_and_release(lock, group_id, mutation, trigger))
        task.add_done_callback(_consume_task_exception)
        return await asyncio.shield(task)

    async def _run_and_release(
        self,
        lock: asyncio.Lock,
        group_id: Optional[int],
        mutation: Optional[Mutation],
        trigger: str,
    ) -> Tuple[Any, Any]:
        try:
            return await self._run_critical_section(group_id, mutation, trigger)
        finally:
            self._in_flight.pop(group_id, None)
            lock.release()

    async def _run_critical_section(
        self,
        group_id: Optional[int],
        mutation: Optional[Mutation],
        trigger: str,
    ) -> Tuple[Any, Any]:
        if self._recompute_callback is None:
            raise RuntimeError(
                "Recompute callback not registered. "
                "Call register_recompute_callback() before serializing mutations."
            )

        started_at = utcnow()
        self._in_flight[group_id] = {"trigger": trigger, "started_at": started_at}
        session = self._new_session()
        try:
            await self._acquire_advisory_lock(session, group_id)

            result = await mutation(session) if mutation is not None else None
            snapshot = await self._recompute_callback(session, group_id)

            session.add(RecomputeJob(
                group_id=group_id,
                trigger=trigger,
                status=RecomputeJobStatus.COMPLETED,
                match_count=getattr(snapshot, "match_count", None),
                player_count=len(getattr(snapshot, "players", None) or {}),
                started_at=started_at,
                completed_at=utcnow(),
            ))
            await session.commit()
            logger.info(
                f"Recomputed {_scope_label(group_id)} ({trigger}): "
                f"{getattr(snapshot, 'match_count', 0)} matches"
            )
            return result, snapshot
        except Exception as e:
            await session.rollback()
            if not isinstance(e, DomainException):
                logger.error(f"Recompute of {_scope_label(group_id)} failed: {e}", exc_info=True)
                await self._record_failure(session, group_id, trigger, started_at, e)
            raise
        finally:
            await session.close()

    async def _acquire_advisory_lock(self, session: AsyncSession, group_id: Optional[int]) -> None:
        """Serialize across processes too; held until the transaction ends."""
        bind = getattr(session, "bind", None)
        if bind is None or bind.dialect.name != "postgresql":
            return
        key = zlib.crc32(f"courtside:recompute:{group_id}".encode("utf-8"))
        await session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})

    async def _record_failure(
        self,
        session: AsyncSession,
        group_id: Optional[int],
        trigger: str,
        started_at,
        error: Exception,
    ) -> None:
        try:
            session.add(RecomputeJob(
                group_id=group_id,
                trigger=trigger,
                status=RecomputeJobStatus.FAILED,
                started_at=started_at,
                completed_at=utcnow(),
                error_message=str(error),
            ))
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception(f"Could not record failed recompute job for {_scope_label(group_id)}")

    async def get_status(self, session: AsyncSession, group_id: Optional[int]) -> Dict:
        """Current in-flight state and recent jobs of one group scope."""
        scope = (
            RecomputeJob.group_id.is_(None) if group_id is None
            else RecomputeJob.group_id == group_id
        )

        result = await session.execute(
            select(RecomputeJob)
            .where(and_(scope, RecomputeJob.status == RecomputeJobStatus.COMPLETED))
            .order_by(RecomputeJob.completed_at.desc(), RecomputeJob.id.desc())
            .limit(10)
        )
        recent_completed = result.scalars().all()

        result = await session.execute(
            select(RecomputeJob)
            .where(and_(scope, RecomputeJob.status == RecomputeJobStatus.FAILED))
            .order_by(RecomputeJob.completed_at.desc(), RecomputeJob.id.desc())
            .limit(10)
        )
        recent_failed = result.scalars().all()

        in_flight = self._in_flight.get(group_id)
        return {
            "group_id": group_id,
            "running": {
                "trigger": in_flight["trigger"],
                "started_at": in_flight["started_at"].isoformat(),
            } if in_flight else None,
            "recent_completed": [
                {
                    "id": j.id,
                    "trigger": j.trigger,
                    "match_count": j.match_count,
                    "player_count": j.player_count,
                    "completed_at": j.completed_at.isoformat() if j.completed_at else None,
                }
                for j in recent_completed
            ],
            "recent_failed": [
                {
                    "id": j.id,
                    "trigger": j.trigger,
                    "error_message": j.error_message,
                    "completed_at": j.completed_at.isoformat() if j.completed_at else None,
                }
                for j in recent_failed
            ],
        }


# Global queue instance
_recompute_queue = GroupRecomputeQueue()


def get_recompute_queue() -> GroupRecomputeQueue:
    """Get the global recompute queue instance."""
    return _recompute_queue
