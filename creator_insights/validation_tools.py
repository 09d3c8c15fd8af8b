"""
Research tools the validation agents can call.

Each tool queries YouTube (or Google Trends) and reduces the response to a
small scored summary. Every tool returns a fallback value on any error so an
agent's tool loop never sees an exception from the data layer.
"""
import asyncio
import logging
import re
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field
from pytrends.request import TrendReq

from creator_insights.youtube_client import YouTubeDataClient

logger = logging.getLogger(__name__)


# ========================================
# TOOL ARGUMENT MODELS
# ========================================

class SearchDemandArgs(BaseModel):
    idea: str = Field(description="The video idea or topic")
    niche: str = Field(description="Target niche or audience")


class TopicArgs(BaseModel):
    topic: str = Field(description="Topic to analyze")


class AudienceRelatabilityArgs(BaseModel):
    idea: str = Field(description="Video idea")
    audience: str = Field(description="Target audience")


class ReferenceVideoArgs(BaseModel):
    topic: str = Field(description="Topic to find references for")
    audience: str = Field(description="Target audience")
    goal: str = Field(description="Creator's goal")


class KeywordArgs(BaseModel):
    keyword: str = Field(description="Keyword to analyze trends for")


class NicheArgs(BaseModel):
    niche: str = Field(description="Niche to analyze")


class EstimateMetricsArgs(BaseModel):
    topic: str = Field(description="Topic to estimate metrics for")
    competitionLevel: str = Field(description="Competition level (Low/Med/High)")


TITLE_STOPWORDS = {"video", "watch", "channel"}
PAIN_POINT_KEYWORDS = ["problem", "issue", "struggle", "hard", "difficult", "wish", "need"]
QUESTION_KEYWORDS = ["how", "what", "why", "when", "where", "can", "should", "?"]
CHAPTER_PATTERN = re.compile(r"(\d{1,2}:\d{2})\s*[-–]\s*(.+)")
DURATION_PATTERN = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")
HOOK_PATTERNS = [
    re.compile(r"^(How to|Why|What|The|This|I)", re.IGNORECASE),
    re.compile(r"(\d+|Best|Ultimate|Complete|Secret)", re.IGNORECASE),
]
DEFAULT_STRUCTURE = ["Introduction", "Main Content", "Key Points", "Conclusion/Call to Action"]


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _video_ids(items: List[Dict[str, Any]]) -> List[str]:
    return [item['id']['videoId'] for item in items if item.get('id', {}).get('videoId')]


def _engagement_totals(videos: List[Dict[str, Any]], skip_unviewed: bool = False):
    """Sum views and likes+comments over video statistics items"""
    total_views = 0
    total_engagement = 0
    counted = 0
    for video in videos:
        stats = video.get('statistics', {})
        views = _to_int(stats.get('viewCount'))
        if skip_unviewed and views <= 0:
            continue
        total_views += views
        total_engagement += _to_int(stats.get('likeCount')) + _to_int(stats.get('commentCount'))
        counted += 1
    return total_views, total_engagement, counted


def parse_iso_duration_minutes(duration: str) -> float:
    match = DURATION_PATTERN.match(duration or "")
    if not match:
        return 0.0
    hours, minutes, seconds = (int(part or 0) for part in match.groups())
    return hours * 60 + minutes + seconds / 60


class ValidationTools:
    def __init__(self, youtube: YouTubeDataClient, trends_factory: Optional[Callable[[], TrendReq]] = None):
        self.youtube = youtube
        self.trends_factory = trends_factory or (lambda: TrendReq(hl='en-US', tz=360))

        # name -> (description, argument model, coroutine function)
        self.registry: Dict[str, tuple] = {
            'getSearchDemand': (
                "Analyzes search demand for a video idea. Returns score (1-10), total videos found, and reasoning.",
                SearchDemandArgs, self.get_search_demand),
            'checkCompetition': (
                "Checks competition level and identifies top channels competing in this space.",
                TopicArgs, self.check_competition),
            'getAudienceRelatability': (
                "Evaluates audience connection by analyzing engagement and top comments.",
                AudienceRelatabilityArgs, self.get_audience_relatability),
            'getTrendingSignals': (
                "Analyzes if topic is trending by checking recent uploads and trending keywords.",
                TopicArgs, self.get_trending_signals),
            'findReferenceVideo': (
                "Finds successful reference videos similar to the idea with full details.",
                ReferenceVideoArgs, self.find_reference_video),
            'searchGoogleTrends': (
                "Analyzes Google Trends data for search interest over time and related queries.",
                KeywordArgs, self.search_google_trends),
            'scrapeTopChannels': (
                "Scrapes top channels in the niche for subscriber counts and upload frequency.",
                NicheArgs, self.scrape_top_channels),
            'analyzeComments': (
                "Analyzes top comments to extract pain points, questions, and sentiment.",
                TopicArgs, self.analyze_comments),
            'fetchVideoTranscript': (
                "Fetches and analyzes video transcripts to understand content structure.",
                TopicArgs, self.fetch_video_transcript),
            'estimateMetrics': (
                "Estimates CTR, retention, and virality potential based on engagement data.",
                EstimateMetricsArgs, self.estimate_metrics),
        }

    def definitions(self, names: List[str]) -> List[Dict[str, Any]]:
        """OpenAI function-tool definitions for the named tools"""
        tools = []
        for name in names:
            description, args_model, _ = self.registry[name]
            tools.append({
                'type': 'function',
                'function': {
                    'name': name,
                    'description': description,
                    'parameters': args_model.model_json_schema(),
                }
            })
        return tools

    async def run_tool(self, name: str, args: Dict[str, Any]) -> Any:
        """Validate arguments and run a tool; unknown tools and bad arguments raise"""
        if name not in self.registry:
            raise ValueError(f"Unknown tool: {name}")
        _, args_model, func = self.registry[name]
        validated = args_model.model_validate(args)
        return await func(**validated.model_dump())

    # ========================================
    # DEMAND, COMPETITION, AUDIENCE, TREND
    # ========================================

    async def get_search_demand(self, idea: str, niche: str) -> Dict[str, Any]:
        logger.info(f"🔍 Tool: getSearchDemand(\"{idea}\", \"{niche}\")")
        try:
            search = await self.youtube.search_videos(f"{idea} {niche}", 50, {'order': 'relevance'})
            total_videos = search['totalResults']
            score = min(10, max(1, int(total_videos / 100000 * 10)))

            if score >= 7:
                reason = "High search demand detected - strong audience interest"
            elif score >= 4:
                reason = "Moderate search interest - decent opportunity"
            else:
                reason = "Lower search volume - niche topic with limited demand"

            logger.info(f"✅ Search demand: {score}/10 - {total_videos:,} videos")
            return {'score': score, 'reason': reason, 'totalVideos': total_videos}
        except Exception as e:
            logger.error(f"❌ getSearchDemand failed: {e}")
            return {'score': 5, 'reason': "Unable to fetch data, estimated medium demand", 'totalVideos': 0}

    async def check_competition(self, topic: str) -> Dict[str, Any]:
        logger.info(f"🔍 Tool: checkCompetition(\"{topic}\")")
        try:
            search = await self.youtube.search_videos(topic, 50, {'order': 'relevance'})
            videos_found = search['totalResults']
            if videos_found > 500000:
                level = "High"
            elif videos_found > 50000:
                level = "Med"
            else:
                level = "Low"

            channel_ids = list(dict.fromkeys(
                item['snippet']['channelId'] for item in search['items']
                if item.get('snippet', {}).get('channelId')
            ))[:10]
            channels = await self.youtube.get_channels_stats(channel_ids)
            top_channels = [
                {
                    'channelName': channel.get('snippet', {}).get('title', 'Unknown'),
                    'subscribers': _to_int(channel.get('statistics', {}).get('subscriberCount')),
                }
                for channel in channels['items']
            ]

            logger.info(f"✅ Competition: {level} ({videos_found:,} videos)")
            return {'videosFound': videos_found, 'level': level, 'topChannels': top_channels}
        except Exception as e:
            logger.error(f"❌ checkCompetition failed: {e}")
            return {'videosFound': 0, 'level': "Med", 'topChannels': []}

    async def get_audience_relatability(self, idea: str, audience: str) -> Dict[str, Any]:
        logger.info(f"🔍 Tool: getAudienceRelatability(\"{idea}\", \"{audience}\")")
        try:
            search = await self.youtube.search_videos(f"{idea} {audience}", 20, {'order': 'relevance'})
            video_ids = _video_ids(search['items'])
            stats = await self.youtube.get_video_stats(video_ids, parts="statistics")

            total_views, total_engagement, _ = _engagement_totals(stats['items'])
            avg_engagement_rate = total_engagement / total_views * 100 if total_views > 0 else 0
            relatability_score = min(10, max(1, int(avg_engagement_rate * 20) + 3))

            top_comments: List[str] = []
            if video_ids:
                try:
                    top_comments = await self.youtube.list_comment_texts(video_ids[0], 10)
                except Exception:
                    logger.debug(f"Comments disabled or unavailable for {video_ids[0]}")

            logger.info(f"✅ Relatability: {relatability_score}/10 ({avg_engagement_rate:.2f}% engagement)")
            return {
                'relatabilityScore': relatability_score,
                'avgEngagementRate': avg_engagement_rate,
                'topComments': top_comments,
            }
        except Exception as e:
            logger.error(f"❌ getAudienceRelatability failed: {e}")
            return {'relatabilityScore': 5, 'avgEngagementRate': 0, 'topComments': []}

    async def get_trending_signals(self, topic: str) -> Dict[str, Any]:
        logger.info(f"🔍 Tool: getTrendingSignals(\"{topic}\")")
        try:
            one_month_ago = (datetime.now(timezone.utc) - timedelta(days=30)).strftime('%Y-%m-%dT%H:%M:%SZ')
            search = await self.youtube.search_videos(topic, 50, {
                'order': 'date',
                'published_after': one_month_ago,
            })
            recent_videos = search['items']
            stats = await self.youtube.get_video_stats(_video_ids(recent_videos), parts="statistics")

            total_views = sum(_to_int(v.get('statistics', {}).get('viewCount')) for v in stats['items'])
            avg_views_recent = total_views / (len(stats['items']) or 1)
            recent_video_count = len(recent_videos)
            trend_score = min(10, max(1, int(recent_video_count / 5 + avg_views_recent / 50000)))

            words = " ".join(v.get('snippet', {}).get('title', '') for v in recent_videos).lower().split()
            word_freq = Counter(w for w in words if len(w) > 4 and w not in TITLE_STOPWORDS)
            keywords = [word for word, _ in word_freq.most_common(5)]

            logger.info(f"✅ Trending: {trend_score}/10 ({recent_video_count} recent videos)")
            return {
                'trendScore': trend_score,
                'keywords': keywords,
                'recentVideoCount': recent_video_count,
                'avgViewsRecent': avg_views_recent,
            }
        except Exception as e:
            logger.error(f"❌ getTrendingSignals failed: {e}")
            return {'trendScore': 5, 'keywords': [topic], 'recentVideoCount': 0, 'avgViewsRecent': 0}

    async def find_reference_video(self, topic: str, audience: str, goal: str) -> Dict[str, Any]:
        logger.info(f"🔍 Tool: findReferenceVideo(\"{topic}\", \"{audience}\", \"{goal}\")")
        try:
            goal_lower = goal.lower()
            if "view" in goal_lower:
                order = "viewCount"
            elif "engagement" in goal_lower:
                order = "rating"
            else:
                order = "relevance"

            search = await self.youtube.search_videos(f"{topic} {audience}", 10, {'order': order})
            if not search['items']:
                raise ValueError("No videos found")

            top_video = search['items'][0]
            video_id = top_video.get('id', {}).get('videoId', '')
            details = await self.youtube.get_video_stats([video_id], parts="statistics,snippet")
            video_data = details['items'][0] if details['items'] else {}

            result = {
                'title': top_video.get('snippet', {}).get('title', ''),
                'videoId': video_id,
                'link': f"https://www.youtube.com/watch?v={video_id}",
                'channel': top_video.get('snippet', {}).get('channelTitle', ''),
                'views': video_data.get('statistics', {}).get('viewCount', '0'),
                'uploadDate': video_data.get('snippet', {}).get('publishedAt', ''),
            }
            logger.info(f"✅ Reference: \"{result['title']}\" ({result['views']} views)")
            return result
        except Exception as e:
            logger.error(f"❌ findReferenceVideo failed: {e}")
            return {
                'title': f"{topic} - Example Video",
                'videoId': "dQw4w9WgXcQ",
                'link': "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
                'channel': "Example Channel",
                'views': "N/A",
                'uploadDate': "N/A",
            }

    # ========================================
    # GOOGLE TRENDS, CHANNELS, COMMENTS
    # ========================================

    def _fetch_trends(self, keyword: str) -> Dict[str, Any]:
        """Blocking pytrends calls; run in a thread"""
        trends = self.trends_factory()
        trends.build_payload([keyword], timeframe='today 12-m')

        interest_df = trends.interest_over_time()
        interest_over_time = []
        if not interest_df.empty:
            interest_over_time = [
                {'date': index.strftime('%b %d, %Y'), 'value': int(row[keyword])}
                for index, row in interest_df.iterrows()
            ]

        related = trends.related_queries().get(keyword, {}) or {}
        top_queries = related.get('top')
        related_queries = [] if top_queries is None else top_queries['query'].head(10).tolist()

        region_df = trends.interest_by_region()
        regional_interest = []
        if not region_df.empty:
            top_regions = region_df[keyword].sort_values(ascending=False).head(5)
            regional_interest = [{'region': region, 'value': int(value)} for region, value in top_regions.items()]

        return {
            'interestOverTime': interest_over_time,
            'relatedQueries': related_queries,
            'regionalInterest': regional_interest,
        }

    async def search_google_trends(self, keyword: str) -> Dict[str, Any]:
        logger.info(f"🔍 Tool: searchGoogleTrends(\"{keyword}\")")
        try:
            data = await asyncio.to_thread(self._fetch_trends, keyword)
            values = [point['value'] for point in data['interestOverTime']]

            trend_direction = "STABLE"
            if len(values) >= 6:
                avg_recent = sum(values[-3:]) / 3
                avg_older = sum(values[-6:-3]) / 3
                if avg_recent > avg_older * 1.2:
                    trend_direction = "RISING"
                elif avg_recent < avg_older * 0.8:
                    trend_direction = "DECLINING"

            logger.info(f"✅ Google Trends: {trend_direction} trend")
            return {**data, 'trendDirection': trend_direction}
        except Exception as e:
            logger.error(f"❌ searchGoogleTrends failed: {e}")
            return {
                'interestOverTime': [],
                'relatedQueries': [keyword],
                'trendDirection': "STABLE",
                'regionalInterest': [],
            }

    async def scrape_top_channels(self, niche: str) -> List[Dict[str, Any]]:
        logger.info(f"🔍 Tool: scrapeTopChannels(\"{niche}\")")
        try:
            search = await self.youtube.search_videos(niche, 10, {'type': 'channel', 'order': 'relevance'})
            channel_ids = [item['id']['channelId'] for item in search['items'] if item.get('id', {}).get('channelId')]
            channels = await self.youtube.get_channels_stats(channel_ids, parts="statistics,snippet,contentDetails")

            results = []
            for channel in channels['items']:
                stats = channel.get('statistics', {})
                uploads_playlist = channel.get('contentDetails', {}).get('relatedPlaylists', {}).get('uploads')

                recent_uploads = 0
                total_views = 0
                if uploads_playlist:
                    playlist_items = await self.youtube.list_playlist_items(uploads_playlist, 10)
                    recent_uploads = len(playlist_items)
                    video_ids = [
                        item['snippet']['resourceId']['videoId'] for item in playlist_items
                        if item.get('snippet', {}).get('resourceId', {}).get('videoId')
                    ]
                    if video_ids:
                        videos = await self.youtube.get_video_stats(video_ids, parts="statistics")
                        total_views = sum(_to_int(v.get('statistics', {}).get('viewCount')) for v in videos['items'])

                avg_views = total_views / recent_uploads if recent_uploads > 0 else 0
                channel_views = _to_int(stats.get('viewCount'))
                video_count = _to_int(stats.get('videoCount')) or 1
                views_per_video = channel_views / video_count
                engagement_rate = avg_views / views_per_video * 100 if views_per_video > 0 else 0

                results.append({
                    'channelName': channel.get('snippet', {}).get('title', 'Unknown'),
                    'subscribers': _to_int(stats.get('subscriberCount')),
                    'recentUploads': recent_uploads,
                    'avgViews': avg_views,
                    'engagementRate': engagement_rate,
                })

            logger.info(f"✅ Analyzed {len(results)} top channels")
            return results
        except Exception as e:
            logger.error(f"❌ scrapeTopChannels failed: {e}")
            return []

    async def analyze_comments(self, topic: str) -> Dict[str, Any]:
        logger.info(f"🔍 Tool: analyzeComments(\"{topic}\")")
        try:
            search = await self.youtube.search_videos(topic, 5, {'order': 'relevance'})

            all_comments: List[str] = []
            for video_id in _video_ids(search['items']):
                try:
                    all_comments.extend(await self.youtube.list_comment_texts(video_id, 20))
                except Exception:
                    logger.debug(f"Comments disabled for video {video_id}")

            pain_points = []
            questions = []
            keywords = Counter()
            positive_count = 0
            negative_count = 0

            for comment in all_comments:
                lower = comment.lower()
                if any(kw in lower for kw in PAIN_POINT_KEYWORDS):
                    pain_points.append(comment[:100])
                if any(kw in lower for kw in QUESTION_KEYWORDS):
                    questions.append(comment[:100])
                if "great" in lower or "awesome" in lower or "love" in lower:
                    positive_count += 1
                if "bad" in lower or "terrible" in lower or "hate" in lower:
                    negative_count += 1
                keywords.update(word for word in lower.split() if len(word) > 4)

            sentiment_score = (positive_count - negative_count) / len(all_comments) * 100 if all_comments else 0

            logger.info(f"✅ Analyzed {len(all_comments)} comments")
            return {
                'topPainPoints': pain_points[:5],
                'commonQuestions': questions[:5],
                'sentimentScore': sentiment_score,
                'topKeywords': [word for word, _ in keywords.most_common(10)],
            }
        except Exception as e:
            logger.error(f"❌ analyzeComments failed: {e}")
            return {'topPainPoints': [], 'commonQuestions': [], 'sentimentScore': 0, 'topKeywords': []}

    # ========================================
    # STRUCTURE AND METRICS
    # ========================================

    async def fetch_video_transcript(self, topic: str) -> Dict[str, Any]:
        """Structure of the top video for a topic, read from its chapters, tags and title"""
        logger.info(f"🔍 Tool: fetchVideoTranscript(\"{topic}\")")
        try:
            search = await self.youtube.search_videos(topic, 1, {'order': 'relevance'})
            if not search['items']:
                raise ValueError("No video found")

            video = search['items'][0]
            video_id = video.get('id', {}).get('videoId', '')
            video_title = video.get('snippet', {}).get('title', '')

            details = await self.youtube.get_video_stats([video_id], parts="contentDetails,snippet")
            item = details['items'][0] if details['items'] else {}
            duration = item.get('contentDetails', {}).get('duration', 'PT0S')
            average_length = f"{int(parse_iso_duration_minutes(duration))} minutes"

            description = item.get('snippet', {}).get('description', '')
            tags = item.get('snippet', {}).get('tags', [])

            chapters = [match.group(2).strip() for match in CHAPTER_PATTERN.finditer(description)]
            structure = chapters or list(DEFAULT_STRUCTURE)

            hook_used = next(
                (pattern.pattern for pattern in HOOK_PATTERNS if pattern.search(video_title)),
                "Direct title hook"
            )
            key_topics = list(dict.fromkeys(tags + description.split()[:10]))[:5]

            logger.info(f"✅ Transcript analysis for \"{video_title}\"")
            return {
                'videoTitle': video_title,
                'keyTopics': key_topics,
                'structure': structure,
                'hookUsed': hook_used,
                'averageLength': average_length,
            }
        except Exception as e:
            logger.error(f"❌ fetchVideoTranscript failed: {e}")
            return {
                'videoTitle': topic,
                'keyTopics': [topic],
                'structure': ["Introduction", "Main Content", "Conclusion"],
                'hookUsed': "Standard hook",
                'averageLength': "10 minutes",
            }

    async def estimate_metrics(self, topic: str, competitionLevel: str) -> Dict[str, Any]:
        logger.info(f"🔍 Tool: estimateMetrics(\"{topic}\", \"{competitionLevel}\")")
        try:
            search = await self.youtube.search_videos(topic, 20, {'order': 'relevance'})
            stats = await self.youtube.get_video_stats(_video_ids(search['items']), parts="statistics")

            total_views, total_engagement, video_count = _engagement_totals(stats['items'], skip_unviewed=True)
            avg_engagement_rate = total_engagement / total_views * 100 if video_count > 0 else 0

            # Industry baselines: CTR 2-10%, retention 40-60%
            competition_factor = {'Low': 1.5, 'Med': 1.0}.get(competitionLevel, 0.7)
            estimated_ctr = 4 * competition_factor * (1 + avg_engagement_rate / 100)
            estimated_retention = min(80, 50 + avg_engagement_rate * 2)

            avg_views = total_views / video_count if video_count > 0 else 0
            virality_score = min(10, max(1, int(avg_engagement_rate * 10 + avg_views / 100000)))
            algorithm_score = min(10, max(1, int(
                estimated_ctr / 10 * 3 + estimated_retention / 10 * 3 + avg_engagement_rate * 10 * 2
            )))

            logger.info(f"✅ Estimated CTR: {estimated_ctr:.1f}%, Retention: {estimated_retention:.1f}%")
            return {
                'estimatedCTR': estimated_ctr,
                'estimatedRetention': estimated_retention,
                'viralityScore': virality_score,
                'algorithmScore': algorithm_score,
            }
        except Exception as e:
            logger.error(f"❌ estimateMetrics failed: {e}")
            return {'estimatedCTR': 4.0, 'estimatedRetention': 50.0, 'viralityScore': 5, 'algorithmScore': 5}
