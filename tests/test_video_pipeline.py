"""
End-to-end tests for the video analysis job handler with fake providers.
"""
import pytest

from creator_insights.schemas import BatchSentiment, PatternsResult
from creator_insights.video_pipeline import process_video_job, run_analysis_workflow
from tests.conftest import FakeYouTubeClient, mixed_comments

JOB = {'jobId': "job-1", 'videoId': "dQw4w9WgXcQ", 'videoUrl': "https://youtu.be/dQw4w9WgXcQ"}

INSIGHT_STAGES = {
    "analyzing_emotions", "analyzing_patterns", "analyzing_loved",
    "analyzing_improvements", "analyzing_wantmore",
}


class TestVideoPipelineHappyPath:
    """A video with comments and a transcript runs to completion."""

    @pytest.mark.asyncio
    async def test_completed_result_shape(self, fake_llm, rotator, broadcaster):
        youtube = FakeYouTubeClient(comments=mixed_comments(30), transcript="intro then the main part")

        result = await process_video_job(dict(JOB), youtube, fake_llm, rotator, broadcaster)

        assert result['status'] == "completed"
        assert result['jobId'] == "job-1"
        assert result['totalProcessed'] == 30
        assert result['hasTranscript'] is True
        assert result['summary'] == {
            'positive': {'count': 10, 'percentage': 33},
            'negative': {'count': 10, 'percentage': 33},
            'neutral': {'count': 10, 'percentage': 33},
        }
        assert result['emotions'][0]['emotion'] == "Inspired"
        assert result['patterns']['positive_patterns'][0]['theme'] == "Editing"
        assert result['thingsLoved'][0]['aspect'] == "Music"
        assert result['improvements'][0]['issue'] == "Too long"
        assert result['wantMore']['content_requests'][0]['count'] == 5
        assert float(result['processingTime']) >= 0

    @pytest.mark.asyncio
    async def test_progress_events_cover_every_stage(self, fake_llm, rotator, broadcaster):
        youtube = FakeYouTubeClient(comments=mixed_comments(30), transcript=None)

        await process_video_job(dict(JOB), youtube, fake_llm, rotator, broadcaster)

        progress = broadcaster.progress_events()
        stages = [event['stage'] for event in progress]
        assert progress[0]['stage'] == "queued" and progress[0]['percentage'] == 0
        assert progress[-1]['stage'] == "completed" and progress[-1]['percentage'] == 100
        assert INSIGHT_STAGES <= set(stages)
        assert "summarizing" in stages
        assert all(event['jobId'] == "job-1" for event in progress)

        # Sequential checkpoints never go backwards
        sequential = [e['percentage'] for e in progress if e['stage'] not in INSIGHT_STAGES]
        assert sequential == sorted(sequential)

        assert broadcaster.events[-1]['event'] == "completed"
        assert broadcaster.events[-1]['data']['result']['status'] == "completed"

    @pytest.mark.asyncio
    async def test_update_progress_hook_reaches_hundred(self, fake_llm, rotator, broadcaster):
        seen = []
        youtube = FakeYouTubeClient(comments=mixed_comments(12))

        await process_video_job(dict(JOB), youtube, fake_llm, rotator, broadcaster, seen.append)

        assert seen == [10, 40, 100]


class TestVideoPipelineDegraded:
    """Non-fatal failures still complete the job."""

    @pytest.mark.asyncio
    async def test_transcript_failure_is_not_fatal(self, fake_llm, rotator, broadcaster):
        youtube = FakeYouTubeClient(comments=mixed_comments(15))
        youtube.transcript_error = RuntimeError("no captions")

        result = await process_video_job(dict(JOB), youtube, fake_llm, rotator, broadcaster)

        assert result['status'] == "completed"
        assert result['hasTranscript'] is False
        transcript_events = [e for e in broadcaster.progress_events() if e['stage'] == "fetching_transcript"]
        assert transcript_events[-1]['data'] == {'transcriptAvailable': False}

    @pytest.mark.asyncio
    async def test_failed_insight_stage_keeps_others(self, fake_llm, rotator):
        fake_llm.fail_schemas.add(PatternsResult)

        result = await run_analysis_workflow("vid", mixed_comments(9), "", False, fake_llm, rotator)

        assert result['patterns'] == {'positive_patterns': [], 'negative_patterns': [], 'neutral_patterns': []}
        assert result['emotions']
        assert result['totalProcessed'] == 9

    @pytest.mark.asyncio
    async def test_comment_cap_is_applied(self, fake_llm, rotator, broadcaster, monkeypatch):
        monkeypatch.setenv("MAX_COMMENTS", "20")
        youtube = FakeYouTubeClient(comments=mixed_comments(50))

        result = await process_video_job(dict(JOB), youtube, fake_llm, rotator, broadcaster)

        assert result['totalProcessed'] == 20


class TestVideoPipelineFailures:
    """Fatal conditions emit an error event and propagate to the job queue."""

    @pytest.mark.asyncio
    async def test_comment_fetch_failure_is_fatal(self, fake_llm, rotator, broadcaster):
        youtube = FakeYouTubeClient()
        youtube.comments_error = RuntimeError("quota exceeded")

        with pytest.raises(RuntimeError, match="Failed to fetch comments: quota exceeded"):
            await process_video_job(dict(JOB), youtube, fake_llm, rotator, broadcaster)

        assert broadcaster.events[-1]['event'] == "error"
        assert "quota exceeded" in broadcaster.events[-1]['data']['error']

    @pytest.mark.asyncio
    async def test_no_comments_is_fatal(self, fake_llm, rotator, broadcaster):
        youtube = FakeYouTubeClient(comments=[])

        with pytest.raises(RuntimeError, match="No comments found for this video"):
            await process_video_job(dict(JOB), youtube, fake_llm, rotator, broadcaster)

        assert broadcaster.events[-1]['event'] == "error"
        assert fake_llm.structured_calls == []

    @pytest.mark.asyncio
    async def test_classification_failure_is_fatal(self, fake_llm, rotator, broadcaster):
        fake_llm.fail_schemas.add(BatchSentiment)
        youtube = FakeYouTubeClient(comments=mixed_comments(12))

        with pytest.raises(RuntimeError, match="Classification failed"):
            await process_video_job(dict(JOB), youtube, fake_llm, rotator, broadcaster)

        assert broadcaster.events[-1]['event'] == "error"
        assert not any(e['event'] == "completed" for e in broadcaster.events)
