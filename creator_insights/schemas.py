"""
Pydantic models shared by the analysis pipelines, the LLM structured-output
calls and the HTTP layer
"""
import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

Sentiment = Literal["positive", "negative", "neutral"]

AnalysisStage = Literal[
    "queued",
    "fetching_comments",
    "fetching_transcript",
    "classifying_comments",
    "analyzing_parallel",
    "analyzing_emotions",
    "analyzing_patterns",
    "analyzing_loved",
    "analyzing_improvements",
    "analyzing_wantmore",
    "summarizing",
    "completed",
    "failed",
]

YOUTUBE_URL_PATTERN = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+")


def sanitize_text(text: str) -> str:
    """Strip markup and inline script handlers from free-text user input"""
    text = re.sub(r"[<>]", "", text)
    text = re.sub(r"javascript:", "", text, flags=re.IGNORECASE)
    text = re.sub(r"on\w+\s*=", "", text, flags=re.IGNORECASE)
    return text.strip()


# ========================================
# COMMENTS
# ========================================

class Comment(BaseModel):
    id: str
    text: str
    like_count: int = 0
    reply_count: int = 0
    relevance_score: int = 0


class ClassifiedComment(BaseModel):
    comment: str
    sentiment: Sentiment


class BatchSentiment(BaseModel):
    results: List[ClassifiedComment]


# ========================================
# INSIGHT STAGE OUTPUTS
# ========================================

class Emotion(BaseModel):
    emotion: str = Field(description="Emotion name (e.g., Entertained, Inspired)")
    percentage: float = Field(description="Percentage of comments showing this emotion")
    triggers: List[str] = Field(description="What caused this emotion")


class EmotionsResult(BaseModel):
    emotions: List[Emotion] = []


class Pattern(BaseModel):
    theme: str
    mention_count: int
    keywords: List[str]


class PatternsResult(BaseModel):
    positive_patterns: List[Pattern] = []
    negative_patterns: List[Pattern] = []
    neutral_patterns: List[Pattern] = []


class LovedAspect(BaseModel):
    aspect: str = Field(description="What viewers loved")
    reason: str = Field(description="Why it resonated")
    mention_count: int = Field(description="Approximate number of mentions")
    example_comments: List[str] = Field(description="2-3 representative quotes")


class ThingsLovedResult(BaseModel):
    loved_aspects: List[LovedAspect] = []


class Improvement(BaseModel):
    issue: str = Field(description="Problem identified")
    suggestion: str = Field(description="How to fix it")
    severity: Literal["minor", "moderate", "critical"]
    mention_count: int = Field(description="How many mentioned this")
    example_comments: List[str] = Field(description="2-3 example quotes")


class ImprovementsResult(BaseModel):
    improvements: List[Improvement] = []


class ContentRequest(BaseModel):
    request_type: str = Field(description="What they want (e.g., Part 2, Tutorial)")
    count: int = Field(description="Number of requests")
    examples: List[str] = Field(description="Example comments")


class ExpansionRequest(BaseModel):
    timestamp_or_topic: str = Field(description="What part to expand")
    count: int
    examples: List[str]


class MissingTopic(BaseModel):
    topic: str = Field(description="What wasn't covered but asked about")
    question_count: int
    examples: List[str]


class WantMoreResult(BaseModel):
    content_requests: List[ContentRequest] = []
    expansion_requests: List[ExpansionRequest] = []
    missing_topics: List[MissingTopic] = []


class SentimentBucket(BaseModel):
    count: int = 0
    percentage: int = 0


class SentimentSummary(BaseModel):
    positive: SentimentBucket = SentimentBucket()
    negative: SentimentBucket = SentimentBucket()
    neutral: SentimentBucket = SentimentBucket()


# ========================================
# TRANSCRIPTS
# ========================================

class KeyMoment(BaseModel):
    topic: str
    description: str


class TranscriptSummary(BaseModel):
    summary: str = Field(description="Concise, information-rich summary")
    key_topics: List[str] = Field(description="Main topics (3-5 items)")
    key_moments: List[KeyMoment] = Field(description="Important moments")


# ========================================
# IDEA VALIDATION OUTPUTS
# ========================================

class ReferenceVideo(BaseModel):
    title: str = Field(description="The video title")
    videoId: str = Field(description="YouTube video ID")
    link: str = Field(description="Full YouTube URL")
    channel: str = Field(description="Channel name")
    views: str = Field(description="View count (use 'N/A' if unknown)")
    uploadDate: str = Field(description="Upload date (use 'N/A' if unknown)")


class CompetitionBreakdown(BaseModel):
    bigCreators: int = Field(description="Number of large channels (1M+ subs)")
    mediumCreators: int = Field(description="Number of medium channels (100K-1M subs)")
    smallCreators: int = Field(description="Number of small channels (<100K subs)")
    saturationScore: float = Field(ge=0, le=100, description="Market saturation percentage")
    entryBarrier: Literal["LOW", "MEDIUM", "HIGH"] = Field(description="Difficulty to enter market")
    dominantFormats: List[str] = Field(description="Most common video formats with percentages")


class YouTubeMetrics(BaseModel):
    searchVolume: str = Field(description="Estimated monthly search volume")
    trendDirection: Literal["RISING", "STABLE", "DECLINING"] = Field(description="Trend trajectory")
    seasonality: str = Field(description="Seasonal patterns if any")
    avgEngagementRate: float = Field(description="Average engagement rate percentage")
    viralityPotential: Literal["LOW", "MEDIUM", "HIGH"] = Field(description="Potential to go viral")


class ContentStrategy(BaseModel):
    optimalVideoLength: str = Field(description="Recommended video duration")
    hookStrategy: str = Field(description="How to hook viewers in first 15 seconds")
    contentStructure: List[str] = Field(description="Recommended video structure/chapters")
    uniqueAngles: List[str] = Field(description="Unique approaches to differentiate")


class AudienceInsights(BaseModel):
    painPoints: List[str] = Field(description="Main problems audience faces")
    desires: List[str] = Field(description="What audience wants to see")
    commonQuestions: List[str] = Field(description="Frequently asked questions")
    relatabilityScore: float = Field(ge=0, le=10, description="How relatable to target audience")


class CompetitionAgentOutput(BaseModel):
    competitionBreakdown: CompetitionBreakdown
    marketGaps: List[str] = Field(description="Identified content gaps in the market")
    topCompetitors: List[str] = Field(description="Names of top competing channels")
    qualityBenchmark: str = Field(description="Quality level needed to compete")


class AudienceAgentOutput(BaseModel):
    audienceInsights: AudienceInsights
    targetDemographics: str = Field(description="Specific demographic details")
    viewerIntent: str = Field(description="Why people search for this content")
    emotionalTriggers: List[str] = Field(description="Emotional hooks that work")


class TrendAgentOutput(BaseModel):
    youtubeMetrics: YouTubeMetrics
    trendingKeywords: List[str] = Field(description="Currently trending related keywords")
    bestTimingWindow: str = Field(description="Optimal time to publish this content")
    futureOutlook: str = Field(description="Predicted trend trajectory")


class StrategyAgentOutput(BaseModel):
    contentStrategy: ContentStrategy
    titleFormulas: List[str] = Field(description="Title templates that work")
    thumbnailGuidance: str = Field(description="Thumbnail best practices")
    seriesPotential: str = Field(description="Can this become a series?")


class SupervisorSynthesis(BaseModel):
    verdict: str = Field(description="Detailed verdict paragraph explaining the overall assessment")
    score: float = Field(ge=0, le=100, description="Overall potential score out of 100")
    improvements: List[str] = Field(min_length=3, description="Specific actionable improvements")
    titles: List[str] = Field(min_length=3, description="Compelling video title suggestions")
    angles: List[str] = Field(min_length=2, description="Unique content angles to explore")
    referenceVideos: List[ReferenceVideo] = Field(
        min_length=1, max_length=5, description="Successful reference videos for inspiration"
    )


# ========================================
# PROGRESS EVENTS
# ========================================

class ProgressEvent(BaseModel):
    jobId: str
    videoId: Optional[str] = None
    stage: AnalysisStage
    message: str
    percentage: int = Field(ge=0, le=100)
    data: Optional[Dict[str, Any]] = None
    timestamp: int


class ErrorEvent(BaseModel):
    jobId: str
    error: str
    stage: Optional[str] = None
    timestamp: int


# ========================================
# HTTP REQUEST MODELS
# ========================================

class VideoAnalysisRequest(BaseModel):
    videoUrl: str

    @field_validator("videoUrl")
    @classmethod
    def must_be_youtube_url(cls, value: str) -> str:
        value = value.strip()
        if not YOUTUBE_URL_PATTERN.match(value):
            raise ValueError("Must be a valid YouTube URL")
        return value


class ValidateIdeaRequest(BaseModel):
    idea: str = Field(min_length=10, max_length=500)
    targetAudience: str = Field(min_length=3, max_length=100)
    goal: str = Field(min_length=1, max_length=100)

    @field_validator("idea", "targetAudience", "goal")
    @classmethod
    def clean_text(cls, value: str) -> str:
        cleaned = sanitize_text(value)
        if not cleaned:
            raise ValueError("Field cannot be empty")
        return cleaned
