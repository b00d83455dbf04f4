"""
Scheduler for timed reversals (unban, unmute, voice unmute/undeafen and
thread messaging restore).

Jobs are persisted in ``scheduled_reversals`` before they are queued in
memory, so a restart reloads them with :meth:`ReversalScheduler.load`.
Delivery is at least once: a job whose handler fails is retried and a job
is only deleted from the store after its handler returned. Handlers must
therefore treat a repeated job as a no-op.
"""
import asyncio
import heapq
import math
import time
from typing import Awaitable, Callable, Dict, Optional, Tuple

from casekeeper.database.db_connection import ConnectionManager
from casekeeper.datatypes.punishment_datatypes import PunishmentType
from casekeeper.repositories.scheduled_reversal_repo import ReversalJob, ScheduledReversalRepo
from casekeeper.util.logger import get_logger

logger = get_logger("reversal_scheduler")

ReversalHandler = Callable[[ReversalJob], Awaitable[object]]
JobKey = Tuple[int, int, PunishmentType]

RETRY_DELAY_SECONDS = 60
MAX_ATTEMPTS = 5


class ReversalScheduler:
    """
    Central scheduler for delayed reversal jobs.

    Uses a min-heap to execute jobs at their ``run_at`` time. Scheduling the
    same (guild, member, type) again replaces the earlier job.

    Attributes:
        heap (list): Min-heap of (run_at, job_id, job) tuples.
        pending_keys (Dict): Maps (guild_id, victim_id, type) to job_id for quick lookup.
        cancelled_ids (set): Set of job IDs that have been cancelled.
        counter (int): Monotonically increasing job ID counter.
        runner_task (asyncio.Task | None): Background task processing the schedule.
        condition (asyncio.Condition): Coordination primitive for task wakeup.
    """

    def __init__(self, db: ConnectionManager, handler: Optional[ReversalHandler] = None) -> None:
        self.db = db
        self.handler = handler
        self.heap: list[tuple[float, int, ReversalJob]] = []
        self.pending_keys: Dict[JobKey, int] = {}
        self.cancelled_ids: set[int] = set()
        self.attempts: Dict[JobKey, int] = {}
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()

    def bind(self, handler: ReversalHandler) -> None:
        """Set the coroutine that performs a due job."""
        self.handler = handler

    def ensure_runner(self) -> None:
        """Create the background runner task if it's not already active."""
        loop = asyncio.get_running_loop()
        if self.runner_task is None or self.runner_task.done():
            self.runner_task = loop.create_task(self.run(), name="casekeeper-reversal-scheduler")

    def _push(self, job: ReversalJob, run_at: float) -> None:
        # Caller holds self.condition
        previous = self.pending_keys.get(job.key)
        if previous is not None:
            self.cancelled_ids.add(previous)

        self.counter += 1
        job_id = self.counter
        heapq.heappush(self.heap, (run_at, job_id, job))
        self.pending_keys[job.key] = job_id

    async def schedule(
        self,
        guild_id: int,
        victim_id: int,
        moderator_id: int,
        reversal_type: PunishmentType,
        delay_ms: int,
    ) -> ReversalJob:
        """
        Persist a reversal and queue it to run after ``delay_ms`` milliseconds.

        A pending job for the same member and reversal type is replaced.
        """
        due = time.time() + delay_ms / 1000
        run_at = math.ceil(due)
        job = ReversalJob(
            guild_id=guild_id,
            victim_id=victim_id,
            moderator_id=moderator_id,
            type=reversal_type,
            run_at=run_at,
        )

        async with self.db.transaction() as conn:
            await ScheduledReversalRepo.upsert(conn, job)

        async with self.condition:
            self.ensure_runner()
            self.attempts.pop(job.key, None)
            self._push(job, due)
            self.condition.notify_all()

        logger.info(
            "[SCHEDULER] Scheduled %s for %s in guild %s at %d",
            reversal_type.value, victim_id, guild_id, run_at,
        )
        return job

    async def cancel(self, guild_id: int, victim_id: int, reversal_type: PunishmentType) -> bool:
        """
        Cancel a pending reversal in memory and in the store.

        Returns:
            bool: True if a job was found and cancelled.
        """
        async with self.db.transaction() as conn:
            deleted = await ScheduledReversalRepo.delete(conn, guild_id, victim_id, reversal_type)

        async with self.condition:
            job_id = self.pending_keys.pop((guild_id, victim_id, reversal_type), None)
            if job_id is not None:
                self.cancelled_ids.add(job_id)
                self.condition.notify_all()

        if deleted or job_id is not None:
            logger.info("[SCHEDULER] Cancelled %s for %s in guild %s", reversal_type.value, victim_id, guild_id)
            return True
        return False

    def is_pending(self, guild_id: int, victim_id: int, reversal_type: PunishmentType) -> bool:
        return (guild_id, victim_id, reversal_type) in self.pending_keys

    async def load(self) -> int:
        """
        Queue every persisted job. Overdue jobs run right away.

        Returns:
            int: Number of jobs loaded.
        """
        async with self.db.read() as conn:
            jobs = await ScheduledReversalRepo.get_all(conn)

        async with self.condition:
            self.ensure_runner()
            for job in jobs:
                self._push(job, job.run_at)
            self.condition.notify_all()

        logger.info("[SCHEDULER] Loaded %d pending reversals", len(jobs))
        return len(jobs)

    async def shutdown(self) -> None:
        """
        Stop the runner and forget queued jobs. Persisted rows are kept so
        the next start picks them up again.
        """
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.pending_keys.clear()
            self.cancelled_ids.clear()
            self.condition.notify_all()

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    async def run(self) -> None:
        """Main background loop that executes jobs as their timers elapse."""
        while True:
            async with self.condition:
                # Skip over cancelled jobs at the top of the heap
                while self.heap and self.heap[0][1] in self.cancelled_ids:
                    _, job_id, _ = heapq.heappop(self.heap)
                    self.cancelled_ids.discard(job_id)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at, _, _ = self.heap[0]
                delay = run_at - time.time()

                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                _, job_id, job = heapq.heappop(self.heap)
                if self.pending_keys.get(job.key) == job_id:
                    self.pending_keys.pop(job.key)

            await self.execute(job)

    async def execute(self, job: ReversalJob) -> None:
        """
        Run the handler for one due job.

        The persisted row is removed after the handler returns. If the
        handler raises, the job is re-queued after ``RETRY_DELAY_SECONDS``
        until ``MAX_ATTEMPTS`` is reached.
        """
        if self.handler is None:
            logger.error("[SCHEDULER] No handler bound; leaving %s for %s pending", job.type.value, job.victim_id)
            return

        try:
            await self.handler(job)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            attempts = self.attempts.get(job.key, 0) + 1
            self.attempts[job.key] = attempts
            if attempts < MAX_ATTEMPTS:
                logger.warning(
                    "[SCHEDULER] %s for %s in guild %s failed (attempt %d): %s",
                    job.type.value, job.victim_id, job.guild_id, attempts, exc,
                )
                async with self.condition:
                    if job.key not in self.pending_keys:
                        self._push(job, time.time() + RETRY_DELAY_SECONDS)
                        self.condition.notify_all()
                return
            logger.error(
                "[SCHEDULER] Giving up on %s for %s in guild %s after %d attempts: %s",
                job.type.value, job.victim_id, job.guild_id, attempts, exc,
            )

        self.attempts.pop(job.key, None)
        try:
            async with self.db.transaction() as conn:
                await ScheduledReversalRepo.delete_job(conn, job)
        except Exception:
            logger.exception("[SCHEDULER] Failed to remove finished job %s for %s", job.type.value, job.victim_id)
