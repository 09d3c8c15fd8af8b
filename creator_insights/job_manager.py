"""
In-process background job queue for video analysis jobs
"""
import asyncio
import logging
import os
import time
import traceback
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

JobHandler = Callable[[Dict[str, Any], Callable[[int], None]], Awaitable[Dict[str, Any]]]

RESULT_FIELDS = [
    'summary', 'thingsLoved', 'improvements', 'emotions', 'patterns',
    'wantMore', 'totalProcessed', 'hasTranscript', 'processingTime',
]


class JobQueue:
    """
    FIFO job queue drained by a fixed number of worker tasks.

    Job records follow the lifecycle waiting -> active -> completed | failed.
    Finished records are kept for status lookups up to a retention count per
    terminal state, oldest dropped first.
    """

    def __init__(self, handler: JobHandler, concurrency: Optional[int] = None, attempts: Optional[int] = None,
                 keep_completed: Optional[int] = None, keep_failed: Optional[int] = None,
                 backoff_seconds: float = 5.0):
        self.handler = handler
        self.concurrency = concurrency or int(os.getenv("JOB_WORKERS", "3"))
        self.attempts = attempts or int(os.getenv("JOB_ATTEMPTS", "1"))
        self.keep_completed = keep_completed if keep_completed is not None else int(os.getenv("JOB_RETENTION_COMPLETED", "100"))
        self.keep_failed = keep_failed if keep_failed is not None else int(os.getenv("JOB_RETENTION_FAILED", "50"))
        self.backoff_seconds = backoff_seconds

        self.jobs: Dict[str, Dict[str, Any]] = {}
        self._pending: asyncio.Queue = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    async def start(self):
        if self._workers:
            return
        self._workers = [asyncio.create_task(self._job_worker(i)) for i in range(self.concurrency)]
        logger.info(f"👷 Video analysis worker started with concurrency: {self.concurrency}")

    async def stop(self):
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("🛑 Job workers stopped")

    async def enqueue(self, job_id: str, data: Dict[str, Any], attempts: Optional[int] = None) -> Dict[str, Any]:
        async with self._lock:
            if job_id in self.jobs:
                raise ValueError(f"Job {job_id} already exists")

            record = {
                'id': job_id,
                'data': data,
                'state': 'waiting',
                'progress': 0,
                'attempts': attempts or self.attempts,
                'attemptsMade': 0,
                'returnValue': None,
                'failedReason': None,
                'createdAt': datetime.now().isoformat(),
                'processedOn': None,
                'finishedOn': None,
            }
            self.jobs[job_id] = record

        await self._pending.put(job_id)
        logger.info(f"⏳ Job {job_id} is waiting (queue depth: {self._pending.qsize()})")
        return record

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self.jobs.get(job_id)

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Public view of a job: lifecycle status plus any result fragments"""
        job = self.jobs.get(job_id)
        if not job:
            return None

        state = job['state']
        if state in ('completed', 'failed'):
            status = state
        elif state == 'active':
            status = 'processing'
        else:
            status = 'pending'

        return_value = job['returnValue'] or {}
        result = {
            'jobId': job['id'],
            'videoId': job['data'].get('videoId'),
            'status': status,
            'progress': job['progress'],
        }
        for field in RESULT_FIELDS:
            result[field] = return_value.get(field)
        result['error'] = job['failedReason']
        return result

    def counts(self) -> Dict[str, int]:
        counts = {'waiting': 0, 'active': 0, 'completed': 0, 'failed': 0}
        for job in self.jobs.values():
            counts[job['state']] += 1
        return counts

    async def _run_job(self, job: Dict[str, Any]):
        job_id = job['id']

        def update_progress(value: int):
            job['progress'] = value

        while True:
            job['attemptsMade'] += 1
            try:
                job['returnValue'] = await self.handler(job['data'], update_progress)
                job['state'] = 'completed'
                job['progress'] = 100
                logger.info(f"✅ Job {job_id} completed successfully")
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if job['attemptsMade'] < job['attempts']:
                    delay = self.backoff_seconds * (2 ** (job['attemptsMade'] - 1))
                    logger.warning(f"🔄 Job {job_id} attempt {job['attemptsMade']} failed: {e}, retrying in {delay}s")
                    await asyncio.sleep(delay)
                    continue
                job['state'] = 'failed'
                job['failedReason'] = str(e)
                logger.error(f"❌ Job {job_id} failed with error: {e}")
                logger.debug(traceback.format_exc())
                return

    async def _job_worker(self, worker_id: int):
        """Worker that pulls job ids and runs the handler"""
        while True:
            try:
                job_id = await self._pending.get()
            except asyncio.CancelledError:
                break

            try:
                job = self.jobs.get(job_id)
                if job is None:
                    continue

                job['state'] = 'active'
                job['processedOn'] = datetime.now().isoformat()
                logger.info(f"🔄 Job {job_id} is now active on worker {worker_id}")

                start_time = time.time()
                await self._run_job(job)
                job['finishedOn'] = datetime.now().isoformat()
                logger.debug(f"📊 Job {job_id} finished in {time.time() - start_time:.2f}s")

                await self._prune()
            except asyncio.CancelledError:
                break
            finally:
                self._pending.task_done()

    async def _prune(self):
        """Drop the oldest finished jobs beyond the retention counts"""
        async with self._lock:
            for state, keep in (('completed', self.keep_completed), ('failed', self.keep_failed)):
                finished = [job for job in self.jobs.values() if job['state'] == state]
                excess = len(finished) - keep
                if excess <= 0:
                    continue
                finished.sort(key=lambda job: job['finishedOn'] or '')
                for job in finished[:excess]:
                    del self.jobs[job['id']]
                logger.debug(f"🧹 Pruned {excess} {state} jobs")

    async def join(self):
        """Wait until every enqueued job has finished"""
        await self._pending.join()
