"""
Newline-delimited JSON writer backing the streaming validation response
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    'Cache-Control': 'no-cache',
    'Connection': 'keep-alive',
    'X-Content-Type-Options': 'nosniff',
}


def iso_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class StreamWriter:
    """
    Collects NDJSON records from a running pipeline and hands them to a
    StreamingResponse through `stream()`.

    Writes after `end()` are ignored and reported as False.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.is_closed = False

    def write(self, data: Dict[str, Any]) -> bool:
        if self.is_closed:
            logger.warning("⚠️ Attempted to write to closed stream")
            return False
        try:
            line = json.dumps(data, default=str) + "\n"
        except (TypeError, ValueError) as e:
            logger.error(f"❌ Error writing to stream: {e}")
            return False
        self._queue.put_nowait(line)
        return True

    def log(self, message: str, level: str = "info"):
        log_level = logging.ERROR if level == "error" else logging.WARNING if level == "warning" else logging.INFO
        logger.log(log_level, f"[{level.upper()}] {message}")
        self.write({
            'type': 'log',
            'level': level,
            'message': message,
            'timestamp': iso_timestamp(),
        })

    def agent_status(self, agent: str, status: str, data: Optional[Dict[str, Any]] = None):
        logger.info(f"🤖 Agent {agent}: {status}")
        record = {
            'type': 'agent_status',
            'agent': agent,
            'status': status,
            'timestamp': iso_timestamp(),
        }
        if data is not None:
            record['data'] = data
        self.write(record)

    def progress(self, current: int, total: int, message: Optional[str] = None):
        percentage = round(current / total * 100) if total else 0
        logger.info(f"📊 Progress: {percentage}% - {message or ''}")
        self.write({
            'type': 'progress',
            'current': current,
            'total': total,
            'percentage': percentage,
            'message': message,
            'timestamp': iso_timestamp(),
        })

    def final(self, data: Dict[str, Any]):
        logger.info("✅ Sending final result")
        self.write({
            'type': 'final',
            'data': data,
            'timestamp': iso_timestamp(),
        })

    def end(self):
        if self.is_closed:
            return
        logger.debug("🔚 Closing stream")
        self.is_closed = True
        self._queue.put_nowait(None)

    async def stream(self) -> AsyncIterator[str]:
        """Yield encoded lines until `end()` has been called and the backlog is drained"""
        while True:
            line = await self._queue.get()
            if line is None:
                break
            yield line
