"""
Shared YouTube Data API quota tracking
"""
import asyncio
from datetime import datetime

# Quota units charged by the YouTube Data API v3 per request
YOUTUBE_QUOTA_COSTS = {
    'search': 100,
    'videos': 1,
    'channels': 1,
    'playlistItems': 1,
    'commentThreads': 1,
}

# Global YouTube API usage tracking (process-wide, reset on restart)
youtube_quota_tracker = {
    'total_api_calls': 0,
    'quota_units_used': 0,
    'calls_by_endpoint': {},
    'failed_calls': 0,
    'started_at': datetime.now().isoformat(),
    'lock': asyncio.Lock()
}


async def record_youtube_call(endpoint: str, success: bool = True):
    """Count one YouTube API request against the tracked quota"""
    async with youtube_quota_tracker['lock']:
        youtube_quota_tracker['total_api_calls'] += 1
        youtube_quota_tracker['quota_units_used'] += YOUTUBE_QUOTA_COSTS.get(endpoint, 1)
        by_endpoint = youtube_quota_tracker['calls_by_endpoint']
        by_endpoint[endpoint] = by_endpoint.get(endpoint, 0) + 1
        if not success:
            youtube_quota_tracker['failed_calls'] += 1


def get_quota_snapshot() -> dict:
    """Copy of the tracker without the lock, safe to serialize"""
    return {
        key: (dict(value) if isinstance(value, dict) else value)
        for key, value in youtube_quota_tracker.items()
        if key != 'lock'
    }
