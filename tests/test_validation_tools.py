"""
Tests for the validation research tools with a mocked data provider.
"""
from unittest.mock import AsyncMock, MagicMock

import pandas as pd
import pytest

from creator_insights.validation_tools import ValidationTools, parse_iso_duration_minutes


def mock_youtube():
    youtube = MagicMock()
    youtube.search_videos = AsyncMock()
    youtube.get_video_stats = AsyncMock(return_value={'items': []})
    youtube.get_channels_stats = AsyncMock(return_value={'items': []})
    youtube.list_comment_texts = AsyncMock(return_value=[])
    youtube.list_playlist_items = AsyncMock(return_value=[])
    return youtube


class TestToolRegistry:

    def test_definitions_use_function_schema(self):
        tools = ValidationTools(mock_youtube())

        definitions = tools.definitions(["checkCompetition", "estimateMetrics"])

        assert [d['function']['name'] for d in definitions] == ["checkCompetition", "estimateMetrics"]
        assert definitions[1]['function']['parameters']['required'] == ["topic", "competitionLevel"]

    @pytest.mark.asyncio
    async def test_unknown_tool_raises(self):
        with pytest.raises(ValueError, match="Unknown tool"):
            await ValidationTools(mock_youtube()).run_tool("deleteChannel", {})

    @pytest.mark.asyncio
    async def test_run_tool_dispatches_validated_arguments(self):
        youtube = mock_youtube()
        youtube.search_videos.return_value = {'items': [], 'totalResults': 250000}

        result = await ValidationTools(youtube).run_tool("getSearchDemand", {'idea': "gym", 'niche': "beginners"})

        assert result['score'] == 10
        youtube.search_videos.assert_awaited_once_with("gym beginners", 50, {'order': 'relevance'})


class TestScoringTools:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("total, score", [(0, 1), (45000, 4), (80000, 8), (2000000, 10)])
    async def test_search_demand_score_is_clamped(self, total, score):
        youtube = mock_youtube()
        youtube.search_videos.return_value = {'items': [], 'totalResults': total}

        result = await ValidationTools(youtube).get_search_demand("idea", "niche")

        assert result['score'] == score
        assert result['totalVideos'] == total

    @pytest.mark.asyncio
    @pytest.mark.parametrize("total, level", [(600000, "High"), (60000, "Med"), (100, "Low")])
    async def test_competition_levels(self, total, level):
        youtube = mock_youtube()
        youtube.search_videos.return_value = {
            'items': [{'snippet': {'channelId': "UC1"}}, {'snippet': {'channelId': "UC1"}}],
            'totalResults': total,
        }
        youtube.get_channels_stats.return_value = {'items': [
            {'snippet': {'title': "Gym Guy"}, 'statistics': {'subscriberCount': "1200"}},
        ]}

        result = await ValidationTools(youtube).check_competition("home gym")

        assert result['level'] == level
        assert result['topChannels'] == [{'channelName': "Gym Guy", 'subscribers': 1200}]
        youtube.get_channels_stats.assert_awaited_once_with(["UC1"])

    @pytest.mark.asyncio
    async def test_audience_relatability(self):
        youtube = mock_youtube()
        youtube.search_videos.return_value = {'items': [{'id': {'videoId': "v1"}}], 'totalResults': 1}
        youtube.get_video_stats.return_value = {'items': [
            {'statistics': {'viewCount': "1000", 'likeCount': "40", 'commentCount': "10"}},
        ]}
        youtube.list_comment_texts.return_value = ["so helpful"]

        result = await ValidationTools(youtube).get_audience_relatability("idea", "audience")

        # 5% engagement -> int(5 * 20) + 3 clamped to 10
        assert result['avgEngagementRate'] == 5.0
        assert result['relatabilityScore'] == 10
        assert result['topComments'] == ["so helpful"]

    @pytest.mark.asyncio
    async def test_estimate_metrics_for_low_competition(self):
        youtube = mock_youtube()
        youtube.search_videos.return_value = {'items': [{'id': {'videoId': "v1"}}, {'id': {'videoId': "v2"}}]}
        youtube.get_video_stats.return_value = {'items': [
            {'statistics': {'viewCount': "1000", 'likeCount': "10", 'commentCount': "0"}},
            {'statistics': {'viewCount': "0"}},
        ]}

        result = await ValidationTools(youtube).estimate_metrics("topic", "Low")

        assert result['estimatedCTR'] == pytest.approx(4 * 1.5 * 1.01)
        assert result['estimatedRetention'] == pytest.approx(52.0)
        assert 1 <= result['viralityScore'] <= 10

    @pytest.mark.asyncio
    async def test_comment_analysis_extracts_pain_points_and_questions(self):
        youtube = mock_youtube()
        youtube.search_videos.return_value = {'items': [{'id': {'videoId': "v1"}}]}
        youtube.list_comment_texts.return_value = [
            "I love this, awesome work",
            "My problem is the space",
            "How much did the rack cost?",
        ]

        result = await ValidationTools(youtube).analyze_comments("home gym")

        assert result['topPainPoints'] == ["My problem is the space"]
        assert result['commonQuestions'] == ["How much did the rack cost?"]
        assert result['sentimentScore'] == pytest.approx(100 / 3)


class TestFallbacks:
    """Tools never raise; a provider error yields a neutral default."""

    @pytest.mark.asyncio
    async def test_every_tool_falls_back(self):
        youtube = mock_youtube()
        youtube.search_videos.side_effect = RuntimeError("quota exceeded")
        tools = ValidationTools(youtube, trends_factory=MagicMock(side_effect=RuntimeError("429")))

        assert (await tools.get_search_demand("i", "n"))['score'] == 5
        assert (await tools.check_competition("t"))['level'] == "Med"
        assert (await tools.get_audience_relatability("i", "a"))['relatabilityScore'] == 5
        assert (await tools.get_trending_signals("t"))['keywords'] == ["t"]
        assert (await tools.find_reference_video("t", "a", "g"))['views'] == "N/A"
        assert (await tools.search_google_trends("kw"))['relatedQueries'] == ["kw"]
        assert await tools.scrape_top_channels("n") == []
        assert (await tools.analyze_comments("t"))['topKeywords'] == []
        assert (await tools.fetch_video_transcript("t"))['hookUsed'] == "Standard hook"
        assert (await tools.estimate_metrics("t", "High"))['algorithmScore'] == 5


class TestGoogleTrends:

    def make_trends(self, values):
        trends = MagicMock()
        index = pd.date_range("2025-01-05", periods=len(values), freq="W")
        trends.interest_over_time.return_value = pd.DataFrame({'home gym': values}, index=index)
        trends.related_queries.return_value = {'home gym': {'top': pd.DataFrame({'query': ["home gym setup"]})}}
        trends.interest_by_region.return_value = pd.DataFrame({'home gym': [10, 80, 40]},
                                                              index=["Chile", "Canada", "Norway"])
        return trends

    @pytest.mark.asyncio
    async def test_rising_trend(self):
        trends = self.make_trends([10, 10, 10, 30, 30, 30])
        tools = ValidationTools(mock_youtube(), trends_factory=lambda: trends)

        result = await tools.search_google_trends("home gym")

        assert result['trendDirection'] == "RISING"
        assert result['relatedQueries'] == ["home gym setup"]
        assert result['regionalInterest'][0] == {'region': "Canada", 'value': 80}
        assert len(result['interestOverTime']) == 6
        trends.build_payload.assert_called_once_with(["home gym"], timeframe='today 12-m')

    @pytest.mark.asyncio
    async def test_short_series_is_stable(self):
        tools = ValidationTools(mock_youtube(), trends_factory=lambda: self.make_trends([5, 90, 5]))

        assert (await tools.search_google_trends("home gym"))['trendDirection'] == "STABLE"

    @pytest.mark.asyncio
    async def test_declining_trend(self):
        tools = ValidationTools(mock_youtube(), trends_factory=lambda: self.make_trends([50, 50, 50, 20, 20, 20]))

        assert (await tools.search_google_trends("home gym"))['trendDirection'] == "DECLINING"


def test_parse_iso_duration_minutes():
    assert parse_iso_duration_minutes("PT1H2M30S") == pytest.approx(62.5)
    assert parse_iso_duration_minutes("PT45S") == pytest.approx(0.75)
    assert parse_iso_duration_minutes("bogus") == 0.0
