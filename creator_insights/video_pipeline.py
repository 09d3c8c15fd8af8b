"""
Video analysis pipeline: the job handler run by the background job queue.

fetch comments + transcript -> classify -> separate -> five insight stages
in parallel -> summary -> completion event
"""
import asyncio
import logging
import os
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from creator_insights.classification import classify_comments, separate_by_sentiment
from creator_insights.insights import (
    analyze_emotions,
    analyze_improvements,
    analyze_patterns,
    analyze_things_loved,
    analyze_want_more,
    generate_summary,
)
from creator_insights.key_rotator import KeyRotator
from creator_insights.llm_client import LLMClient
from creator_insights.progress import ProgressBroadcaster
from creator_insights.schemas import Comment
from creator_insights.transcripts import fetch_transcript
from creator_insights.youtube_client import YouTubeDataClient

logger = logging.getLogger(__name__)

Reporter = Callable[..., None]


def make_reporter(broadcaster: ProgressBroadcaster, job_id: Optional[str], video_id: str) -> Reporter:
    """Bind job and video identity so stages only pass stage, message and percentage"""
    def report(stage: str, message: str, percentage: int, data: Optional[Dict[str, Any]] = None):
        if job_id:
            broadcaster.emit_progress(job_id, video_id, stage, message, percentage, data)
    return report


async def run_analysis_workflow(video_id: str, comments: List[Comment], transcript: str, has_transcript: bool,
                                llm: LLMClient, rotator: KeyRotator,
                                report: Optional[Reporter] = None) -> Dict[str, Any]:
    """
    Run classification, the parallel insight stages and the summary.

    Returns:
        Result fragments: summary, thingsLoved, improvements, emotions,
        patterns, wantMore, totalProcessed, hasTranscript, processingTime
    """
    report = report or (lambda *args, **kwargs: None)
    context = transcript if has_transcript else None

    logger.info(f"🚀 Starting multi-feature workflow for video {video_id}")
    logger.info(f"📝 Total comments: {len(comments)}, API keys: {len(rotator)}")
    report("classifying_comments",
           f"Starting analysis of {len(comments)} comments with {len(rotator)} API keys", 40)

    start_time = time.time()

    report("classifying_comments", "Classifying comments by sentiment...", 40)

    def on_batch_progress(percentage: int, message: str, data: Dict[str, Any]):
        report("classifying_comments", message, percentage, data)

    classified = await classify_comments(comments, llm, rotator, context, on_batch_progress)

    report("classifying_comments", "Separating comments by sentiment...", 60)
    groups = separate_by_sentiment(classified)

    report("analyzing_parallel", "Running insight analyses in parallel...", 65, {'parallelTasks': 5})

    async def staged(stage: str, message: str, percentage: int, coro: Awaitable):
        report(stage, message, percentage)
        return await coro

    # Each stage handles its own errors, so gather always joins all five
    emotions, patterns, things_loved, improvements, want_more = await asyncio.gather(
        staged("analyzing_emotions", "Analyzing audience emotions...", 70,
               analyze_emotions(classified, llm, rotator)),
        staged("analyzing_patterns", "Analyzing audience patterns...", 70,
               analyze_patterns(groups, llm, rotator)),
        staged("analyzing_loved", "Analyzing what viewers loved...", 80,
               analyze_things_loved(groups, llm, rotator, context)),
        staged("analyzing_improvements", "Identifying improvement suggestions...", 85,
               analyze_improvements(groups, llm, rotator, context)),
        staged("analyzing_wantmore", "Analyzing what viewers want more of...", 70,
               analyze_want_more(groups, llm, rotator, context)),
    )

    report("summarizing", "Generating final summary...", 95)
    summary = generate_summary(groups)

    duration = time.time() - start_time
    logger.info(f"✅ Complete workflow finished in {duration:.2f}s")

    return {
        'summary': summary.model_dump(),
        'thingsLoved': [aspect.model_dump() for aspect in things_loved],
        'improvements': [item.model_dump() for item in improvements],
        'emotions': [emotion.model_dump() for emotion in emotions],
        'patterns': patterns.model_dump(),
        'wantMore': want_more.model_dump(),
        'totalProcessed': len(classified),
        'hasTranscript': has_transcript,
        'processingTime': f"{duration:.2f}",
    }


async def process_video_job(job_data: Dict[str, Any], youtube: YouTubeDataClient, llm: LLMClient,
                            rotator: KeyRotator, broadcaster: ProgressBroadcaster,
                            update_progress: Optional[Callable[[int], None]] = None) -> Dict[str, Any]:
    """
    Job handler for one video analysis.

    Args:
        job_data: {'jobId', 'videoId', 'videoUrl'}
        update_progress: Optional hook recording coarse progress on the job record

    Returns:
        JSON-serializable result stored as the job's return value
    """
    job_id = job_data['jobId']
    video_id = job_data['videoId']
    report = make_reporter(broadcaster, job_id, video_id)
    set_progress = update_progress or (lambda value: None)
    max_comments = int(os.getenv("MAX_COMMENTS", "5000"))

    try:
        report("queued", "Analysis started", 0)

        set_progress(10)
        report("fetching_comments", "Fetching comments from YouTube...", 10)

        comments_result, transcript_result = await asyncio.gather(
            youtube.fetch_all_comments(video_id),
            fetch_transcript(video_id, youtube, llm, rotator),
            return_exceptions=True
        )

        if isinstance(comments_result, BaseException):
            logger.error(f"❌ Comments fetch failed for {video_id}: {comments_result}")
            raise RuntimeError(f"Failed to fetch comments: {comments_result}") from comments_result

        comments = youtube.filter_top_comments(comments_result, max_comments)
        logger.info(f"✅ Comments fetched: {len(comments_result)} total, {len(comments)} kept")
        report("fetching_comments", f"Successfully fetched {len(comments)} comments", 20,
               {'commentsCount': len(comments)})

        report("fetching_transcript", "Fetching video transcript...", 25)
        transcript = {'text': '', 'available': False}
        if isinstance(transcript_result, BaseException):
            logger.warning(f"⚠️ Transcript fetch failed (continuing without it): {transcript_result}")
        else:
            transcript = transcript_result

        report("fetching_transcript",
               f"Transcript fetched ({len(transcript['text'])} characters)" if transcript['available']
               else "Transcript not available - continuing without it",
               30, {'transcriptAvailable': transcript['available']})

        if not comments:
            raise RuntimeError("No comments found for this video")

        set_progress(40)
        report("classifying_comments", "Starting sentiment analysis...", 40)

        logger.info("🤖 Executing sentiment analysis workflow...")
        result = await run_analysis_workflow(
            video_id, comments, transcript['text'], transcript['available'], llm, rotator, report
        )

        set_progress(100)
        report("completed", "Analysis completed successfully!", 100)

        final_result = {
            'jobId': job_id,
            'videoId': video_id,
            'status': 'completed',
            **result,
        }
        broadcaster.emit_completion(job_id, final_result)

        logger.info(f"✅ Job {job_id} completed successfully")
        return final_result

    except Exception as e:
        logger.error(f"❌ Job {job_id} failed: {e}")
        broadcaster.emit_error(job_id, str(e))
        raise
