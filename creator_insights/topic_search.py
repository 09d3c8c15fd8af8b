"""
Topic opportunity search.

Scores a seed keyword from one search call plus one statistics call, then
derives up to four related topics from the titles of the sampled videos.
"""
import logging
import os
import random
import re
import time
from typing import Any, Dict, List, Optional

import pandas as pd

from creator_insights.youtube_client import YouTubeDataClient

logger = logging.getLogger(__name__)

SEED_SEARCH_SIZE = 25
TITLE_SAMPLE_SIZE = 15
MAX_RELATED_KEYWORDS = 4

# General category CPM range in USD
CPM_LOW = 2
CPM_HIGH = 5

STOP_WORDS = {
    "the", "and", "for", "with", "how", "what", "video", "youtube", "watch",
    "channel", "new", "best", "top", "2023", "2024", "2025",
}

FALLBACK_KEYWORDS = {
    'fitness': ["workout", "training", "exercise", "gym", "health", "strength", "cardio", "muscle"],
    'cooking': ["recipe", "food", "meal", "kitchen", "baking", "healthy", "easy", "quick"],
    'gaming': ["gameplay", "stream", "console", "pc", "mobile", "walkthrough", "tips", "review"],
    'programming': ["coding", "developer", "software", "web", "app", "python", "javascript", "tutorial"],
    'finance': ["money", "investing", "budget", "saving", "wealth", "stock", "crypto", "debt"],
    'travel': ["adventure", "vacation", "destinations", "budget", "tips", "backpacking", "culture"],
    'fashion': ["style", "outfit", "trends", "clothing", "beauty", "makeup", "accessories"],
    'education': ["learning", "study", "skills", "online", "course", "tutorial", "howto"],
    'business': ["entrepreneur", "startup", "marketing", "sales", "growth", "strategy"],
    'technology': ["tech", "gadgets", "innovation", "devices", "smartphone", "laptop"],
}
GENERIC_KEYWORDS = ["beginner", "advanced", "tutorial", "tips", "guide", "2025"]


def empty_results(query: str) -> Dict[str, Any]:
    return {
        'count': 0,
        'query': query,
        'searchSummary': {
            'totalTopicsAnalyzed': 0,
            'bestOpportunities': 0,
            'recommendation': "No topics found",
        },
        'data': [],
        'topRecommendations': [],
    }


def fallback_keywords(query: str) -> List[str]:
    key = query.lower()
    if key in FALLBACK_KEYWORDS:
        return FALLBACK_KEYWORDS[key][:MAX_RELATED_KEYWORDS]

    for category, keywords in FALLBACK_KEYWORDS.items():
        if category in key:
            return keywords[:MAX_RELATED_KEYWORDS]

    return GENERIC_KEYWORDS[:MAX_RELATED_KEYWORDS]


def extract_related_keywords(query: str, items: List[Dict[str, Any]]) -> List[str]:
    """
    Pull candidate keywords out of the first search result titles.

    Words shorter than 4 or longer than 20 chars, stop words, pure numbers
    and words containing the query are skipped. Falls back to a per-niche
    keyword list when fewer than 3 candidates survive.
    """
    if not items:
        logger.warning("⚠️ No items to extract keywords from")
        return fallback_keywords(query)

    query_lower = query.lower()
    keywords: List[str] = []
    for item in items[:TITLE_SAMPLE_SIZE]:
        title = item.get('snippet', {}).get('title', '')
        for word in re.sub(r"[^\w\s]", " ", title.lower()).split():
            if len(word) < 4 or len(word) > 20:
                continue
            if word in STOP_WORDS or query_lower in word or word.isdigit():
                continue
            if word not in keywords:
                keywords.append(word)

    if len(keywords) < 3:
        logger.warning(f"⚠️ Only found {len(keywords)} keywords, adding fallback")
        keywords += [k for k in fallback_keywords(query) if k not in keywords]

    return keywords[:MAX_RELATED_KEYWORDS]


def estimated_revenue(avg_views: float) -> str:
    low = round(avg_views / 1000 * CPM_LOW)
    high = round(avg_views / 1000 * CPM_HIGH)
    return f"${low}-${high}"


def success_rate(opportunity_score: float) -> str:
    if opportunity_score > 70:
        return "High"
    if opportunity_score > 50:
        return "Moderate"
    return "Low"


def adjust_competition(seed_competition: str, factor: float) -> str:
    if factor > 1.1:
        return "high"
    if factor < 0.9:
        return "low"
    return seed_competition


def adjust_trend(seed_trend: str, factor: float) -> str:
    if factor > 1.15:
        return "rising"
    if factor < 0.85:
        return "declining"
    return seed_trend


def opportunity_reason(score: float, avg_views: int, competition: str) -> str:
    if score > 70:
        return f"Underserved niche with {avg_views:,} avg views - High potential!"
    if score > 50:
        return f"Moderate opportunity with {avg_views:,} avg views in {competition} competition"
    return f"Competitive {competition} market, avg {avg_views:,} views"


def videos_frame(videos: List[Dict[str, Any]]) -> pd.DataFrame:
    """Flatten video resources into views/likes/publishedAt columns"""
    rows = []
    for video in videos:
        stats = video.get('statistics', {})
        rows.append({
            'views': stats.get('viewCount', 0),
            'likes': stats.get('likeCount', 0),
            'publishedAt': video.get('snippet', {}).get('publishedAt'),
        })
    df = pd.DataFrame(rows, columns=['views', 'likes', 'publishedAt'])
    df['views'] = pd.to_numeric(df['views'], errors='coerce').fillna(0)
    df['likes'] = pd.to_numeric(df['likes'], errors='coerce').fillna(0)
    df['publishedAt'] = pd.to_datetime(df['publishedAt'], utc=True, errors='coerce')
    return df


def calculate_topic_metrics(keyword: str, videos: List[Dict[str, Any]], total_results: int,
                            now: Optional[pd.Timestamp] = None) -> Dict[str, Any]:
    """Score one keyword from the statistics of its sampled videos"""
    df = videos_frame(videos)
    avg_views = int(round(df['views'].mean())) if len(df) else 0

    if total_results > 100000:
        competition = "high"
    elif total_results > 50000:
        competition = "medium"
    else:
        competition = "low"

    now = now or pd.Timestamp.now(tz='UTC')
    one_month_ago = now - pd.DateOffset(months=1)
    recent_share = (df['publishedAt'] > one_month_ago).sum() / len(df) if len(df) else 0
    if recent_share > 0.3:
        trend = "rising"
    elif recent_share > 0.1:
        trend = "stable"
    else:
        trend = "declining"

    score = 50
    if competition == "low":
        score += 25
    if competition == "high":
        score -= 20
    if avg_views > 50000:
        score += 20
    if avg_views < 10000:
        score -= 10
    if trend == "rising":
        score += 15
    if trend == "declining":
        score -= 15
    score = max(0, min(100, score))

    return {
        'keyword': keyword,
        'searchVolume': total_results,
        'competition': competition,
        'trend': trend,
        'avgViews': avg_views,
        'opportunityScore': score,
        'opportunityReason': opportunity_reason(score, avg_views, competition),
        'growthRate': "+25% (trending)" if trend == "rising" else "+10% (stable)",
        'estimatedRevenue': estimated_revenue(avg_views),
        'successRate': success_rate(score),
        'bestPostTime': {
            'day': "Tuesday" if trend == "rising" else "Thursday",
            'time': "14:00",
            'reason': "Capitalize on rising interest" if trend == "rising" else "Global peak hours",
        },
    }


def generate_related_topics(keywords: List[str], seed: Dict[str, Any],
                            rng: Optional[random.Random] = None) -> List[Dict[str, Any]]:
    """Derive related topics from the seed metrics, scaled down by keyword position"""
    rng = rng or random.Random()
    results = []

    for index, keyword in enumerate(keywords):
        position_factor = 1.0 - index * 0.1
        factor = position_factor * rng.uniform(0.9, 1.1)

        results.append({
            'keyword': keyword[:1].upper() + keyword[1:],
            'searchVolume': max(1000, round(seed['searchVolume'] * factor)),
            'competition': adjust_competition(seed['competition'], factor),
            'trend': adjust_trend(seed['trend'], factor),
            'avgViews': max(1000, round(seed['avgViews'] * factor)),
            'opportunityScore': min(100, max(20, round(seed['opportunityScore'] * factor))),
            'opportunityReason': f"Related to \"{seed['keyword']}\" - similar audience interest",
            'growthRate': seed['growthRate'],
            'estimatedRevenue': estimated_revenue(seed['avgViews'] * factor),
            'successRate': success_rate(seed['opportunityScore'] * factor),
            'bestPostTime': seed['bestPostTime'],
        })

    return results


class TopicSearchService:
    """Topic search with a per-query result cache"""

    def __init__(self, youtube: YouTubeDataClient, cache_hours: Optional[float] = None,
                 rng: Optional[random.Random] = None, max_cache_entries: Optional[int] = None):
        self.youtube = youtube
        hours = cache_hours if cache_hours is not None else float(os.getenv("TOPIC_CACHE_HOURS", "6"))
        self.cache_seconds = hours * 60 * 60
        self.max_cache_entries = max_cache_entries or int(os.getenv("TOPIC_CACHE_MAX_ENTRIES", "500"))
        self.rng = rng or random.Random()
        self._cache: Dict[str, Dict[str, Any]] = {}

    def _cached(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._cache.get(key)
        if entry and time.time() - entry['timestamp'] < self.cache_seconds:
            return entry['data']
        return None

    def _cleanup_expired_entries(self):
        """Remove entries older than the cache lifetime"""
        now = time.time()
        expired = [key for key, entry in self._cache.items() if now - entry['timestamp'] >= self.cache_seconds]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.info(f"🧹 Cleaned up {len(expired)} expired topic cache entries")

    def _store(self, key: str, data: Dict[str, Any]):
        self._cleanup_expired_entries()
        self._cache.pop(key, None)
        # Dicts keep insertion order, so the first keys are the oldest writes
        while len(self._cache) >= self.max_cache_entries:
            del self._cache[next(iter(self._cache))]
        self._cache[key] = {'data': data, 'timestamp': time.time()}

    async def search_topics(self, query: str) -> Dict[str, Any]:
        logger.info(f"🎯 Searching topics for: \"{query}\"")

        cache_key = f"topics:{query}"
        cached = self._cached(cache_key)
        if cached is not None:
            logger.info("✅ Returning cached topic results")
            return cached

        try:
            seed_search = await self.youtube.search_videos(query, SEED_SEARCH_SIZE)
            items = seed_search.get('items', [])
            logger.info(f"✅ Found {len(items)} videos for \"{query}\"")
            if not items:
                return empty_results(query)

            video_ids = [item['id']['videoId'] for item in items if item.get('id', {}).get('videoId')]
            seed_stats = await self.youtube.get_video_stats(video_ids)
            videos = seed_stats.get('items', [])
            if not videos:
                return empty_results(query)

            seed = calculate_topic_metrics(query, videos, seed_search.get('totalResults', 0))
            keywords = extract_related_keywords(query, items)
            logger.info(f"📝 Extracted {len(keywords)} related keywords: {keywords}")

            topics = [seed] + generate_related_topics(keywords, seed, self.rng)
            topics.sort(key=lambda t: t['opportunityScore'], reverse=True)
        except Exception as e:
            logger.error(f"❌ Topic search error: {e}")
            raise RuntimeError(f"Failed to search topics: {e}") from e

        best = topics[0]
        response = {
            'count': len(topics),
            'query': query,
            'searchSummary': {
                'totalTopicsAnalyzed': len(topics),
                'bestOpportunities': len([t for t in topics if t['opportunityScore'] > 70]),
                'recommendation': f"Focus on \"{best['keyword']}\" - opportunity score: {best['opportunityScore']}%",
            },
            'data': topics,
            'topRecommendations': [
                {
                    'rank': i + 1,
                    'keyword': topic['keyword'],
                    'opportunityScore': topic['opportunityScore'],
                    'reason': topic['opportunityReason'],
                }
                for i, topic in enumerate(topics[:2])
            ],
        }

        self._store(cache_key, response)
        logger.info(f"📊 Topic analysis complete: {len(topics)} topics")
        return response
