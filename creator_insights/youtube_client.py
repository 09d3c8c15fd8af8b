"""
YouTube data provider: search, statistics, comments and raw transcripts
"""
import asyncio
import logging
import os
import re
from typing import Any, Dict, List, Optional

import aiohttp
from youtube_transcript_api import NoTranscriptFound, TranscriptsDisabled, YouTubeTranscriptApi

from creator_insights.rate_limiter import record_youtube_call
from creator_insights.schemas import Comment

logger = logging.getLogger(__name__)

VIDEO_ID_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/)([^&\n?#/]+)"),
    re.compile(r"youtube\.com/embed/([^&\n?#/]+)"),
    re.compile(r"youtube\.com/v/([^&\n?#/]+)"),
    re.compile(r"youtube\.com/shorts/([^&\n?#/]+)"),
]
BARE_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")

TRANSCRIPT_LANGUAGES = ['en', 'en-US', 'en-GB']


def extract_video_id(url: str) -> Optional[str]:
    """Extract the video ID from any common YouTube URL form (or a bare ID)"""
    if not url:
        return None
    url = url.strip()
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    if BARE_VIDEO_ID.match(url):
        return url
    return None


class YouTubeAPIError(Exception):
    """Non-success response from the YouTube Data API"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class YouTubeDataClient:
    BASE_URL = "https://www.googleapis.com/youtube/v3"
    MAX_COMMENT_RETRIES = 3

    def __init__(self, youtube_api_key: Optional[str] = None):
        self.youtube_api_key = youtube_api_key or os.getenv("YOUTUBE_API_KEY")
        if not self.youtube_api_key:
            raise ValueError("YouTube API key not found in environment variables")
        self.timeout = aiohttp.ClientTimeout(total=float(os.getenv("YOUTUBE_TIMEOUT_SECONDS", "30")))
        # Seconds unit for comment retry backoff (2s * retries)
        self.retry_delay_seconds = 2.0

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """GET a Data API endpoint and return the decoded JSON body"""
        url = f"{self.BASE_URL}/{endpoint}"
        query = {k: v for k, v in params.items() if v is not None}
        query['key'] = self.youtube_api_key

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(url, params=query) as response:
                if response.status != 200:
                    await record_youtube_call(endpoint, success=False)
                    body = await response.text()
                    raise YouTubeAPIError(
                        f"YouTube API {endpoint} returned {response.status}: {body[:200]}",
                        status=response.status
                    )
                await record_youtube_call(endpoint)
                return await response.json()

    # ===== SEARCH & STATISTICS =====

    async def search_videos(self, keyword: str, max_results: int = 50,
                            filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Search videos (or channels) by keyword.

        Args:
            keyword: Search query
            max_results: Page size (max 50)
            filters: Optional `type`, `order`, `duration`, `published_after`, `page_token`

        Returns:
            Dict with `items`, `totalResults` and optional `nextPageToken`
        """
        filters = filters or {}
        search_type = filters.get('type', 'video')
        params = {
            'part': 'snippet',
            'q': keyword,
            'type': search_type,
            'maxResults': max_results,
            'order': filters.get('order', 'relevance'),
            'publishedAfter': filters.get('published_after'),
            'pageToken': filters.get('page_token'),
        }
        duration = filters.get('duration')
        if duration and duration != 'any' and search_type == 'video':
            params['videoDuration'] = duration

        data = await self._get('search', params)
        return {
            'items': data.get('items', []),
            'totalResults': data.get('pageInfo', {}).get('totalResults', 0),
            'nextPageToken': data.get('nextPageToken'),
        }

    async def get_video_stats(self, video_ids: List[str],
                              parts: str = "statistics,snippet,contentDetails") -> Dict[str, Any]:
        if not video_ids:
            return {'items': []}
        data = await self._get('videos', {'part': parts, 'id': ','.join(video_ids[:50])})
        return {'items': data.get('items', [])}

    async def get_channels_stats(self, channel_ids: List[str],
                                 parts: str = "statistics,snippet") -> Dict[str, Any]:
        unique_ids = list(dict.fromkeys(cid for cid in channel_ids if cid))[:50]
        if not unique_ids:
            return {'items': []}
        data = await self._get('channels', {'part': parts, 'id': ','.join(unique_ids)})
        return {'items': data.get('items', [])}

    async def list_playlist_items(self, playlist_id: str, max_results: int = 10) -> List[Dict[str, Any]]:
        data = await self._get('playlistItems', {
            'part': 'snippet',
            'playlistId': playlist_id,
            'maxResults': max_results,
        })
        return data.get('items', [])

    async def list_comment_texts(self, video_id: str, max_results: int = 20) -> List[str]:
        """Single page of top-level comment texts, ordered by relevance"""
        data = await self._get('commentThreads', {
            'part': 'snippet',
            'videoId': video_id,
            'maxResults': max_results,
            'order': 'relevance',
            'textFormat': 'plainText',
        })
        return [
            item.get('snippet', {}).get('topLevelComment', {}).get('snippet', {}).get('textDisplay', '')
            for item in data.get('items', [])
        ]

    # ===== COMMENTS =====

    async def fetch_all_comments(self, video_id: str) -> List[Comment]:
        """
        Page through every top-level comment thread of a video.

        Rate-limit (429) and server (5xx) errors are retried up to 3 times per
        page with a linear backoff; any other error propagates.
        """
        comments: List[Comment] = []
        page_token = None
        retries = 0

        while True:
            try:
                data = await self._get('commentThreads', {
                    'part': 'snippet',
                    'videoId': video_id,
                    'maxResults': 100,
                    'pageToken': page_token,
                    'order': 'relevance',
                    'textFormat': 'plainText',
                })
            except YouTubeAPIError as e:
                if e.status == 429 or (e.status is not None and e.status >= 500):
                    retries += 1
                    if retries >= self.MAX_COMMENT_RETRIES:
                        raise YouTubeAPIError(
                            f"Failed after {self.MAX_COMMENT_RETRIES} retries: {e}", status=e.status
                        ) from e
                    logger.warning(f"🔄 Comment page for {video_id} failed ({e.status}), retry {retries}")
                    await asyncio.sleep(self.retry_delay_seconds * retries)
                    continue
                raise

            for item in data.get('items', []):
                snippet = item.get('snippet', {})
                top_level = snippet.get('topLevelComment', {}).get('snippet', {})
                like_count = int(top_level.get('likeCount', 0) or 0)
                reply_count = int(snippet.get('totalReplyCount', 0) or 0)
                comments.append(Comment(
                    id=item.get('id', ''),
                    text=top_level.get('textDisplay', ''),
                    like_count=like_count,
                    reply_count=reply_count,
                    relevance_score=like_count + reply_count,
                ))

            retries = 0
            page_token = data.get('nextPageToken')
            if not page_token:
                break

        logger.info(f"✅ Fetched {len(comments)} comments from video {video_id}")
        return comments

    @staticmethod
    def filter_top_comments(comments: List[Comment], max_comments: int = 5000) -> List[Comment]:
        """Keep the `max_comments` most relevant comments (likes + replies)"""
        ranked = sorted(comments, key=lambda c: c.relevance_score, reverse=True)
        filtered = ranked[:max_comments]
        logger.info(f"✅ Filtered to top {len(filtered)} comments by relevance")
        return filtered

    # ===== TRANSCRIPTS =====

    async def fetch_raw_transcript(self, video_id: str) -> Optional[str]:
        """Full transcript text, or None when the video has no usable captions"""
        try:
            logger.debug(f"🎬 Fetching transcript for video {video_id}")
            transcript = await asyncio.to_thread(
                YouTubeTranscriptApi().fetch, video_id, languages=TRANSCRIPT_LANGUAGES
            )
        except (TranscriptsDisabled, NoTranscriptFound):
            logger.debug(f"No transcript available for video {video_id}")
            return None

        full_text = ' '.join(snippet.text for snippet in transcript).strip()
        if not full_text:
            return None

        logger.debug(f"✅ Successfully fetched transcript for {video_id} ({len(full_text)} chars)")
        return full_text
