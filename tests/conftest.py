"""
Shared pytest fixtures: a scripted LLM client, an in-memory YouTube data
client and a progress broadcaster that records every event.

Nothing here touches the network.
"""
import json
import re
from typing import Any, Callable, Dict, List, Optional

import pytest

from creator_insights.key_rotator import KeyRotator
from creator_insights.progress import ProgressBroadcaster
from creator_insights.schemas import (
    AudienceAgentOutput,
    BatchSentiment,
    ClassifiedComment,
    Comment,
    CompetitionAgentOutput,
    EmotionsResult,
    ImprovementsResult,
    PatternsResult,
    StrategyAgentOutput,
    SupervisorSynthesis,
    ThingsLovedResult,
    TranscriptSummary,
    TrendAgentOutput,
    WantMoreResult,
)
from creator_insights.stream_writer import StreamWriter
from creator_insights.youtube_client import YouTubeDataClient

NUMBERED_LINE = re.compile(r"^\d+\. (.*)$")


def keyword_sentiment(text: str) -> str:
    lower = text.lower()
    if "love" in lower or "great" in lower:
        return "positive"
    if "hate" in lower or "boring" in lower:
        return "negative"
    return "neutral"


def classify_prompt(prompt: str) -> BatchSentiment:
    """Answer a classification prompt by labelling each numbered comment line"""
    comments_section = prompt.rsplit("Comments:\n", 1)[-1]
    results = []
    for line in comments_section.splitlines():
        match = NUMBERED_LINE.match(line)
        if match:
            results.append(ClassifiedComment(comment=match.group(1), sentiment=keyword_sentiment(match.group(1))))
    return BatchSentiment(results=results)


def competition_output() -> CompetitionAgentOutput:
    return CompetitionAgentOutput.model_validate({
        'competitionBreakdown': {
            'bigCreators': 2, 'mediumCreators': 5, 'smallCreators': 12,
            'saturationScore': 55, 'entryBarrier': "MEDIUM",
            'dominantFormats': ["Tutorials (60%)", "Vlogs (40%)"],
        },
        'marketGaps': ["Beginner guides", "Budget setups", "Long-form deep dives"],
        'topCompetitors': ["Channel A", "Channel B"],
        'qualityBenchmark': "Clean audio and clear structure",
    })


def audience_output() -> AudienceAgentOutput:
    return AudienceAgentOutput.model_validate({
        'audienceInsights': {
            'painPoints': ["No time", "Too expensive", "Confusing advice"],
            'desires': ["Quick wins", "Cheap options", "Clear steps"],
            'commonQuestions': ["Where to start?", "How long?", "What gear?"],
            'relatabilityScore': 7.5,
        },
        'targetDemographics': "18-34, students and early-career professionals",
        'viewerIntent': "Learn fast without wasting money",
        'emotionalTriggers': ["Fear of missing out", "Progress", "Belonging"],
    })


def trend_output() -> TrendAgentOutput:
    return TrendAgentOutput.model_validate({
        'youtubeMetrics': {
            'searchVolume': "50K-100K/month", 'trendDirection': "RISING",
            'seasonality': "Peaks in January", 'avgEngagementRate': 4.2,
            'viralityPotential': "MEDIUM",
        },
        'trendingKeywords': ["budget", "beginner", "2025"],
        'bestTimingWindow': "Early January",
        'futureOutlook': "Steady growth",
    })


def strategy_output() -> StrategyAgentOutput:
    return StrategyAgentOutput.model_validate({
        'contentStrategy': {
            'optimalVideoLength': "8-12 minutes",
            'hookStrategy': "Show the end result first",
            'contentStructure': ["Hook", "Setup", "Steps", "Recap"],
            'uniqueAngles': ["Under $50", "No equipment"],
        },
        'titleFormulas': ["How I X in Y days", "X mistakes to avoid"],
        'thumbnailGuidance': "Big face, three words max",
        'seriesPotential': "Weekly challenge series",
    })


def supervisor_output(score: float = 78) -> SupervisorSynthesis:
    return SupervisorSynthesis.model_validate({
        'verdict': "Solid idea with a clear gap for beginners.",
        'score': score,
        'improvements': ["Narrow the audience", "Add a budget angle", "Open with the result"],
        'titles': ["Title one", "Title two", "Title three"],
        'angles': ["Budget first", "Zero equipment"],
        'referenceVideos': [{
            'title': "Reference", 'videoId': "abcdefghijk",
            'link': "https://www.youtube.com/watch?v=abcdefghijk",
            'channel': "Channel A", 'views': "120000", 'uploadDate': "2025-01-01",
        }],
    })


DEFAULT_STRUCTURED: Dict[type, Callable[[str], Any]] = {
    BatchSentiment: classify_prompt,
    EmotionsResult: lambda prompt: EmotionsResult.model_validate(
        {'emotions': [{'emotion': "Inspired", 'percentage': 60, 'triggers': ["the ending"]}]}),
    PatternsResult: lambda prompt: PatternsResult.model_validate(
        {'positive_patterns': [{'theme': "Editing", 'mention_count': 4, 'keywords': ["edit"]}]}),
    ThingsLovedResult: lambda prompt: ThingsLovedResult.model_validate(
        {'loved_aspects': [{'aspect': "Music", 'reason': "Upbeat", 'mention_count': 3,
                            'example_comments': ["love the music"]}]}),
    ImprovementsResult: lambda prompt: ImprovementsResult.model_validate(
        {'improvements': [{'issue': "Too long", 'suggestion': "Cut the intro", 'severity': "minor",
                           'mention_count': 2, 'example_comments': ["boring intro"]}]}),
    WantMoreResult: lambda prompt: WantMoreResult.model_validate(
        {'content_requests': [{'request_type': "Part 2", 'count': 5, 'examples': ["part 2 please"]}]}),
    TranscriptSummary: lambda prompt: TranscriptSummary(
        summary="Short summary", key_topics=["intro"], key_moments=[]),
    CompetitionAgentOutput: lambda prompt: competition_output(),
    AudienceAgentOutput: lambda prompt: audience_output(),
    TrendAgentOutput: lambda prompt: trend_output(),
    StrategyAgentOutput: lambda prompt: strategy_output(),
    SupervisorSynthesis: lambda prompt: supervisor_output(),
}


class FakeLLMClient:
    """
    Stand-in for LLMClient.

    Structured calls are answered per schema; `fail_schemas` makes a schema
    raise, `fail_first` makes the first N structured calls raise. Tool calls
    replay `tool_responses` in order, then answer with no tool calls.
    """

    def __init__(self):
        self.structured_calls: List[Dict[str, Any]] = []
        self.tool_calls: List[Dict[str, Any]] = []
        self.responses: Dict[type, Callable[[str], Any]] = dict(DEFAULT_STRUCTURED)
        self.fail_schemas: set = set()
        self.fail_first = 0
        self.tool_responses: List[Dict[str, Any]] = []

    async def invoke_structured(self, prompt, schema, api_key, model=None):
        self.structured_calls.append({'prompt': prompt, 'schema': schema, 'api_key': api_key, 'model': model})
        if len(self.structured_calls) <= self.fail_first or schema in self.fail_schemas:
            raise RuntimeError(f"LLM failure for {schema.__name__}")
        return self.responses[schema](prompt)

    async def invoke_with_tools(self, messages, tools, api_key, model=None):
        self.tool_calls.append({'messages': list(messages), 'tools': tools, 'api_key': api_key})
        if self.tool_responses:
            return self.tool_responses.pop(0)
        return {'role': 'assistant', 'content': "Research complete"}

    def calls_for(self, schema) -> List[Dict[str, Any]]:
        return [call for call in self.structured_calls if call['schema'] is schema]


class FakeYouTubeClient:
    """In-memory data provider for the video pipeline"""

    filter_top_comments = staticmethod(YouTubeDataClient.filter_top_comments)

    def __init__(self, comments: Optional[List[Comment]] = None, transcript: Optional[str] = None):
        self.comments = comments or []
        self.transcript = transcript
        self.comments_error: Optional[Exception] = None
        self.transcript_error: Optional[Exception] = None

    async def fetch_all_comments(self, video_id: str) -> List[Comment]:
        if self.comments_error:
            raise self.comments_error
        return list(self.comments)

    async def fetch_raw_transcript(self, video_id: str) -> Optional[str]:
        if self.transcript_error:
            raise self.transcript_error
        return self.transcript


class RecordingBroadcaster(ProgressBroadcaster):
    def __init__(self):
        super().__init__(enabled=True)
        self.events: List[Dict[str, Any]] = []

    def _publish(self, job_id, event_name, payload):
        self.events.append({'event': event_name, 'data': payload})
        super()._publish(job_id, event_name, payload)

    def progress_events(self) -> List[Dict[str, Any]]:
        return [e['data'] for e in self.events if e['event'] == 'progress']


def make_comments(texts: List[str]) -> List[Comment]:
    return [
        Comment(id=f"c{idx}", text=text, like_count=idx, reply_count=0, relevance_score=idx)
        for idx, text in enumerate(texts)
    ]


def mixed_comments(count: int) -> List[Comment]:
    cycle = ["I love this video", "This was boring", "What camera is this?"]
    return make_comments([f"{cycle[i % 3]} #{i}" for i in range(count)])


@pytest.fixture
def fake_llm():
    return FakeLLMClient()


@pytest.fixture
def rotator():
    return KeyRotator(["key-aaaaaaaa", "key-bbbbbbbb", "key-cccccccc"])


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def writer():
    return StreamWriter()


def drain_writer(writer: StreamWriter) -> List[Dict[str, Any]]:
    """Decode every record queued on a writer without awaiting"""
    records = []
    while not writer._queue.empty():
        line = writer._queue.get_nowait()
        if line is None:
            break
        records.append(json.loads(line))
    return records
