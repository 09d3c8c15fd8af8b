"""
Push channel for live job progress.

Every job has a room keyed `job:{jobId}`; subscribers (the SSE endpoint) get an
asyncio.Queue per connection. Emitting never blocks and never raises, and
events are not replayed to late subscribers.
"""
import asyncio
import logging
import os
import time
from typing import Any, Dict, Optional, Set

from creator_insights.schemas import ErrorEvent, ProgressEvent

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def job_room(job_id: str) -> str:
    return f"job:{job_id}"


class ProgressBroadcaster:
    def __init__(self, enabled: Optional[bool] = None):
        if enabled is None:
            enabled = os.getenv("ENABLE_PROGRESS_EVENTS", "true").lower() not in ("false", "0", "no")
        self.enabled = enabled
        self._rooms: Dict[str, Set[asyncio.Queue]] = {}

    def subscribe(self, job_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._rooms.setdefault(job_room(job_id), set()).add(queue)
        logger.debug(f"📡 Subscriber joined room {job_room(job_id)}")
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue):
        room = job_room(job_id)
        subscribers = self._rooms.get(room)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._rooms[room]
        logger.debug(f"📡 Subscriber left room {room}")

    def subscriber_count(self, job_id: str) -> int:
        return len(self._rooms.get(job_room(job_id), ()))

    def _publish(self, job_id: str, event_name: str, payload: Dict[str, Any]):
        if not self.enabled:
            return
        for queue in list(self._rooms.get(job_room(job_id), ())):
            try:
                queue.put_nowait({'event': event_name, 'data': payload})
            except asyncio.QueueFull:
                logger.warning(f"⚠️ Dropping {event_name} event for slow subscriber on {job_room(job_id)}")

    def emit_progress(self, job_id: str, video_id: Optional[str], stage: str, message: str,
                      percentage: int, data: Optional[Dict[str, Any]] = None):
        event = ProgressEvent(
            jobId=job_id,
            videoId=video_id,
            stage=stage,
            message=message,
            percentage=max(0, min(100, int(percentage))),
            data=data,
            timestamp=now_ms(),
        )
        logger.debug(f"📊 [{job_id}] {event.percentage}% {stage}: {message}")
        self._publish(job_id, 'progress', event.model_dump(exclude_none=True))

    def emit_error(self, job_id: str, error: str, stage: Optional[str] = None):
        event = ErrorEvent(jobId=job_id, error=error, stage=stage, timestamp=now_ms())
        self._publish(job_id, 'error', event.model_dump(exclude_none=True))

    def emit_completion(self, job_id: str, result: Dict[str, Any]):
        self._publish(job_id, 'completed', {
            'jobId': job_id,
            'result': result,
            'timestamp': now_ms(),
        })


# Process-wide channel used by the HTTP layer and the job workers
progress_broadcaster = ProgressBroadcaster()
