"""
Parallel insight stages over classified comments, plus the sentiment summary.

Each stage makes one structured LLM call on a bounded sample and returns an
empty result on any error, so one failing stage never aborts the job.
"""
import logging
from typing import List, Optional

from creator_insights.classification import SentimentGroups, smart_truncate
from creator_insights.key_rotator import KeyRotator
from creator_insights.llm_client import LLMClient
from creator_insights.schemas import (
    ClassifiedComment,
    Emotion,
    EmotionsResult,
    Improvement,
    ImprovementsResult,
    LovedAspect,
    PatternsResult,
    SentimentBucket,
    SentimentSummary,
    ThingsLovedResult,
    WantMoreResult,
)

logger = logging.getLogger(__name__)

EMOTIONS_SAMPLE = 400
PATTERNS_POSITIVE_SAMPLE = 200
PATTERNS_NEGATIVE_SAMPLE = 100
PATTERNS_NEUTRAL_SAMPLE = 100
LOVED_SAMPLE = 300
IMPROVEMENTS_SAMPLE = 250
WANT_MORE_SAMPLE = 350
TRANSCRIPT_CONTEXT_LIMIT = 2000

CONTRAST_MARKERS = ("but", "however", "could", "should")


def _numbered(comments: List[ClassifiedComment], max_length: int) -> str:
    return "\n".join(f"{idx + 1}. {smart_truncate(c.comment, max_length)}" for idx, c in enumerate(comments))


def _transcript_context(transcript: Optional[str]) -> str:
    if not transcript:
        return ""
    return f"Video Transcript Context:\n{smart_truncate(transcript, TRANSCRIPT_CONTEXT_LIMIT)}\n\n"


async def analyze_emotions(classified: List[ClassifiedComment], llm: LLMClient,
                           rotator: KeyRotator) -> List[Emotion]:
    logger.info("🎭 Analyzing audience emotions...")
    if not classified:
        logger.warning("⚠️ No comments for emotion analysis")
        return []

    sample = classified[:EMOTIONS_SAMPLE]
    comments_text = "\n".join(
        f"{idx + 1}. [{c.sentiment.upper()}] {smart_truncate(c.comment, 100)}" for idx, c in enumerate(sample)
    )

    prompt = f"""Analyze the emotions expressed in these YouTube comments. Identify the top 4-6 emotions and what triggered them.

Focus on emotions like:
- Entertained/Amused
- Informed/Educated
- Inspired/Motivated
- Curious/Intrigued
- Confused/Overwhelmed
- Frustrated/Annoyed

For each emotion, provide percentage and triggers.

Comments:
{comments_text}"""

    try:
        result = await llm.invoke_structured(prompt, EmotionsResult, rotator.next_key())
        logger.info(f"✅ Identified {len(result.emotions)} emotion types")
        return result.emotions
    except Exception as e:
        logger.error(f"❌ Error analyzing emotions: {e}")
        return []


async def analyze_patterns(groups: SentimentGroups, llm: LLMClient, rotator: KeyRotator) -> PatternsResult:
    logger.info("🎨 Analyzing comment patterns and themes...")

    positive_sample = "\n".join(c.comment for c in groups.positive[:PATTERNS_POSITIVE_SAMPLE])
    negative_sample = "\n".join(c.comment for c in groups.negative[:PATTERNS_NEGATIVE_SAMPLE])
    neutral_sample = "\n".join(c.comment for c in groups.neutral[:PATTERNS_NEUTRAL_SAMPLE])

    prompt = f"""Identify the top recurring themes and patterns in these YouTube comments.

POSITIVE COMMENTS:
{positive_sample}

NEGATIVE COMMENTS:
{negative_sample}

NEUTRAL COMMENTS:
{neutral_sample}

For each category, find 3-5 main themes with mention counts and keywords."""

    try:
        result = await llm.invoke_structured(prompt, PatternsResult, rotator.next_key())
        logger.info(f"✅ Identified patterns: {len(result.positive_patterns)} positive, "
                    f"{len(result.negative_patterns)} negative, {len(result.neutral_patterns)} neutral")
        return result
    except Exception as e:
        logger.error(f"❌ Error analyzing patterns: {e}")
        return PatternsResult()


async def analyze_things_loved(groups: SentimentGroups, llm: LLMClient, rotator: KeyRotator,
                               transcript: Optional[str] = None) -> List[LovedAspect]:
    logger.info("💚 Analyzing what viewers loved...")
    if not groups.positive:
        logger.warning("⚠️ No positive comments for loved analysis")
        return []

    prompt = f"""{_transcript_context(transcript)}Based on these positive comments, identify the top 3-5 things viewers loved most.

For each aspect:
- What specific element they loved
- Why it resonated (use transcript context if available)
- Approximate mention count
- 2-3 representative example comments

Positive comments:
{_numbered(groups.positive[:LOVED_SAMPLE], 120)}"""

    try:
        result = await llm.invoke_structured(prompt, ThingsLovedResult, rotator.next_key())
        logger.info(f"✅ Identified {len(result.loved_aspects)} loved aspects")
        return result.loved_aspects
    except Exception as e:
        logger.error(f"❌ Error analyzing loved aspects: {e}")
        return []


def select_critical_comments(groups: SentimentGroups) -> List[ClassifiedComment]:
    """Negative comments plus neutral ones carrying a contrastive marker"""
    constructive = [
        c for c in groups.neutral
        if any(marker in c.comment.lower() for marker in CONTRAST_MARKERS)
    ]
    return list(groups.negative) + constructive


async def analyze_improvements(groups: SentimentGroups, llm: LLMClient, rotator: KeyRotator,
                               transcript: Optional[str] = None) -> List[Improvement]:
    logger.info("🔧 Analyzing improvement suggestions...")
    critical = select_critical_comments(groups)
    if not critical:
        logger.warning("⚠️ No critical comments for improvement analysis")
        return []

    prompt = f"""{_transcript_context(transcript)}Based on these critical/constructive comments, identify the top 3-5 improvement suggestions.

For each improvement:
- What issue/problem viewers identified
- Specific actionable suggestion
- Severity (minor, moderate, critical)
- Mention count
- 2-3 example comments

Critical comments:
{_numbered(critical[:IMPROVEMENTS_SAMPLE], 120)}"""

    try:
        result = await llm.invoke_structured(prompt, ImprovementsResult, rotator.next_key())
        logger.info(f"✅ Identified {len(result.improvements)} improvement areas")
        return result.improvements
    except Exception as e:
        logger.error(f"❌ Error analyzing improvements: {e}")
        return []


async def analyze_want_more(groups: SentimentGroups, llm: LLMClient, rotator: KeyRotator,
                            transcript: Optional[str] = None) -> WantMoreResult:
    logger.info("💬 Analyzing what viewers want more of...")
    relevant = list(groups.positive) + list(groups.neutral)
    if not relevant:
        logger.warning("⚠️ No comments for want more analysis")
        return WantMoreResult()

    prompt = f"""{_transcript_context(transcript)}Analyze what viewers want more of based on these comments.

Identify:
1. CONTENT REQUESTS: Direct requests like "part 2", "more tutorials", "behind the scenes"
2. EXPANSION REQUESTS: Which parts of THIS video to elaborate (use transcript timestamps if available)
3. MISSING TOPICS: Questions that weren't answered in the video

For each category, provide counts and example comments.

Comments:
{_numbered(relevant[:WANT_MORE_SAMPLE], 120)}"""

    try:
        result = await llm.invoke_structured(prompt, WantMoreResult, rotator.next_key())
        logger.info(f"✅ Identified {len(result.content_requests)} content requests, "
                    f"{len(result.expansion_requests)} expansion requests, "
                    f"{len(result.missing_topics)} missing topics")
        return result
    except Exception as e:
        logger.error(f"❌ Error analyzing want more: {e}")
        return WantMoreResult()


def generate_summary(groups: SentimentGroups) -> SentimentSummary:
    """
    Count and percentage per sentiment bucket.

    Percentages are rounded independently and may not sum to exactly 100.
    An empty input yields all zeros.
    """
    total = len(groups.positive) + len(groups.negative) + len(groups.neutral)
    if total == 0:
        logger.warning("⚠️ No comments to summarize")
        return SentimentSummary()

    def bucket(count: int) -> SentimentBucket:
        # Half-up rounding, not banker's rounding
        return SentimentBucket(count=count, percentage=int(count / total * 100 + 0.5))

    summary = SentimentSummary(
        positive=bucket(len(groups.positive)),
        negative=bucket(len(groups.negative)),
        neutral=bucket(len(groups.neutral)),
    )
    logger.info(f"✅ Summary calculated: {summary.model_dump()}")
    return summary
