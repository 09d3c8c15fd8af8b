"""
FastAPI application for Creator Insights

Exposes the video comment analysis job API (with SSE progress), the
streaming idea validation endpoint and the topic opportunity search.
"""
import os
from dotenv import load_dotenv

# Load environment variables FIRST so every module sees .env configuration on import
env_path_for_load = os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env')
if os.path.exists(env_path_for_load):
    load_dotenv(env_path_for_load, override=True)

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sse_starlette.sse import EventSourceResponse

from creator_insights.job_manager import JobQueue
from creator_insights.key_rotator import KeyRotator
from creator_insights.llm_client import LLMClient
from creator_insights.progress import progress_broadcaster
from creator_insights.rate_limiter import get_quota_snapshot
from creator_insights.schemas import ValidateIdeaRequest, VideoAnalysisRequest
from creator_insights.stream_writer import STREAM_HEADERS, StreamWriter
from creator_insights.topic_search import TopicSearchService
from creator_insights.validation_service import run_validation_stream
from creator_insights.validation_tools import ValidationTools
from creator_insights.version import __version__, __build_date__, VERSION_HISTORY
from creator_insights.video_pipeline import process_video_job
from creator_insights.youtube_client import YouTubeDataClient, extract_video_id

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Creator Insights API",
    description="Comment sentiment analysis, idea validation and topic research for YouTube creators",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Shared clients, created on first use
_key_rotator: Optional[KeyRotator] = None
_llm_client: Optional[LLMClient] = None
_youtube_client: Optional[YouTubeDataClient] = None
_topic_service: Optional[TopicSearchService] = None

# Strong references to running validation streams
_background_tasks: Set[asyncio.Task] = set()


def get_key_rotator() -> KeyRotator:
    global _key_rotator
    if _key_rotator is None:
        _key_rotator = KeyRotator()
    return _key_rotator


def get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


def get_youtube_client() -> YouTubeDataClient:
    global _youtube_client
    if _youtube_client is None:
        _youtube_client = YouTubeDataClient()
    return _youtube_client


def get_topic_service() -> TopicSearchService:
    global _topic_service
    if _topic_service is None:
        _topic_service = TopicSearchService(get_youtube_client())
    return _topic_service


async def handle_video_job(data: Dict[str, Any], update_progress) -> Dict[str, Any]:
    return await process_video_job(
        data,
        get_youtube_client(),
        get_llm_client(),
        get_key_rotator(),
        progress_broadcaster,
        update_progress,
    )


video_job_queue = JobQueue(handle_video_job)


@app.on_event("startup")
async def startup_event():
    """Start the video analysis workers"""
    await video_job_queue.start()
    logger.info(f"🚀 Creator Insights API v{__version__} started")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop workers and any validation streams still running"""
    await video_job_queue.stop()
    for task in list(_background_tasks):
        task.cancel()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            'field': ".".join(str(part) for part in error.get('loc', ())[1:]) or "unknown",
            'message': error.get('msg', "Validation error"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({'success': False, 'error': "Invalid request", 'details': details}),
    )


@app.get("/")
async def root():
    return {
        "message": "Creator Insights API",
        "version": __version__,
        "api_docs": "/docs"
    }


@app.get("/api/version")
async def get_version():
    """Get API version information"""
    return {
        "version": __version__,
        "api_name": "Creator Insights API",
        "build_date": __build_date__,
        "version_history": VERSION_HISTORY
    }


@app.get("/api/usage")
async def get_usage():
    """YouTube Data API quota spent by this process plus job queue counts"""
    return {
        "success": True,
        "youtube_quota": get_quota_snapshot(),
        "jobs": video_job_queue.counts(),
    }


# ========================================
# VIDEO ANALYSIS JOBS
# ========================================

@app.post("/api/video/analyze", status_code=202)
async def analyze_video(request: VideoAnalysisRequest):
    """Queue a sentiment analysis job for one video"""
    video_id = extract_video_id(request.videoUrl)
    if not video_id:
        raise HTTPException(status_code=400, detail="Invalid YouTube URL")

    job_id = str(uuid.uuid4())
    await video_job_queue.enqueue(job_id, {
        'jobId': job_id,
        'videoUrl': request.videoUrl,
        'videoId': video_id,
    })
    logger.info(f"📥 Queued analysis job {job_id} for video {video_id}")

    return {
        "success": True,
        "message": "Video analysis started",
        "data": {
            "jobId": job_id,
            "videoId": video_id,
            "status": "pending",
        },
    }


@app.get("/api/video/status/{job_id}")
async def get_video_status(job_id: str):
    status = video_job_queue.get_job_status(job_id)
    if not status:
        raise HTTPException(status_code=404, detail="Job status not found!")

    return {
        "success": True,
        "status": status['status'],
        "progress": status['progress'],
        "error": status['error'],
    }


@app.get("/api/video/progress/{job_id}")
async def video_progress(job_id: str, request: Request):
    """
    Server-Sent Events stream of progress for one job.

    Ends after the `completed` or `error` event. A job that already finished
    gets its terminal event immediately since events are not replayed.
    """
    job = video_job_queue.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")

    async def event_generator():
        if job['state'] == 'completed':
            yield {"event": "completed", "data": json.dumps({'jobId': job_id, 'result': job['returnValue']})}
            return
        if job['state'] == 'failed':
            yield {"event": "error", "data": json.dumps({'jobId': job_id, 'error': job['failedReason']})}
            return

        queue = progress_broadcaster.subscribe(job_id)
        try:
            while True:
                if await request.is_disconnected():
                    logger.debug(f"📡 Progress client for {job_id} disconnected")
                    break
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=15)
                except asyncio.TimeoutError:
                    continue
                yield {"event": message['event'], "data": json.dumps(message['data'], default=str)}
                if message['event'] in ('completed', 'error'):
                    break
        finally:
            progress_broadcaster.unsubscribe(job_id, queue)

    return EventSourceResponse(event_generator())


@app.get("/api/video/{job_id}")
async def get_video_data(job_id: str):
    status = video_job_queue.get_job_status(job_id)
    if not status:
        raise HTTPException(status_code=404, detail="Job not found")

    return {"success": True, "data": status}


# ========================================
# IDEA VALIDATION
# ========================================

@app.post("/api/validate")
@app.post("/api/validate-idea")
async def validate_idea(request: ValidateIdeaRequest):
    """Validate a video idea; progress and the final verdict stream back as NDJSON lines"""
    writer = StreamWriter()
    youtube = get_youtube_client()

    task = asyncio.create_task(run_validation_stream(
        request, writer, get_llm_client(), ValidationTools(youtube), get_key_rotator()
    ))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return StreamingResponse(writer.stream(), media_type="application/json", headers=STREAM_HEADERS)


# ========================================
# TOPIC SEARCH
# ========================================

@app.get("/api/topics/search")
async def search_topics(query: Optional[str] = Query(None, max_length=200)):
    if not query or len(query.strip()) < 2:
        raise HTTPException(status_code=400, detail="Search query is required")

    try:
        result = await get_topic_service().search_topics(query.strip())
    except RuntimeError as e:
        logger.error(f"❌ Error in search_topics: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {"success": True, **result}
