"""
Comment sentiment classification: batching policy, worker pool with
retry-by-splitting, and the sentiment separator
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from creator_insights.key_rotator import KeyRotator
from creator_insights.llm_client import LLMClient
from creator_insights.schemas import BatchSentiment, ClassifiedComment, Comment

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 10
MAX_WORKERS = 8
LARGE_DATASET_THRESHOLD = 4000
LARGE_DATASET_BATCH_SIZE = 500

# Retry-by-splitting bounds
SPLIT_MIN_SIZE = 10
MAX_SPLIT_RETRIES = 2

# Progress band covered by the worker pool
PROGRESS_BASE = 40
PROGRESS_RANGE = 20

COMMENT_CHAR_LIMIT = 150
TRANSCRIPT_CONTEXT_LIMIT = 1500
SUCCESS_RATE_WARNING = 95

ProgressCallback = Callable[[int, str, Dict[str, Any]], None]


def smart_truncate(text: str, max_length: int = 150) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


@dataclass
class BatchJob:
    comments: List[Comment]
    batch_number: int
    total_batches: int
    retry_count: int = 0


class SentimentGroups(NamedTuple):
    positive: List[ClassifiedComment]
    negative: List[ClassifiedComment]
    neutral: List[ClassifiedComment]


def calculate_optimal_batching(total_comments: int) -> Tuple[int, int]:
    """
    Pick batch size and worker count for a comment count.

    Returns:
        (batch_size, num_workers)
    """
    if total_comments > LARGE_DATASET_THRESHOLD:
        return LARGE_DATASET_BATCH_SIZE, MAX_WORKERS

    ideal_batch_size = math.ceil(total_comments / MAX_WORKERS)

    if ideal_batch_size < MIN_BATCH_SIZE:
        # Too few comments for 8 workers: use fewer, fuller batches
        num_workers = max(1, total_comments // MIN_BATCH_SIZE)
        batch_size = math.ceil(total_comments / num_workers)
        logger.debug(f"⚙️ Small dataset: Using {num_workers} workers with {batch_size} comments per batch")
        return batch_size, num_workers

    return ideal_batch_size, MAX_WORKERS


def create_batch_jobs(comments: List[Comment], batch_size: int) -> List[BatchJob]:
    if not comments or batch_size <= 0:
        return []
    slices = [comments[i:i + batch_size] for i in range(0, len(comments), batch_size)]
    return [
        BatchJob(comments=batch, batch_number=idx + 1, total_batches=len(slices))
        for idx, batch in enumerate(slices)
    ]


def build_classification_prompt(comments: List[Comment], transcript: Optional[str] = None) -> str:
    lines = []
    for idx, comment in enumerate(comments):
        clean_text = comment.text.replace("\n", " ").replace("\r", " ").replace('"', "'").strip()
        lines.append(f"{idx + 1}. {smart_truncate(clean_text, COMMENT_CHAR_LIMIT)}")

    context = f"Video Context:\n{smart_truncate(transcript, TRANSCRIPT_CONTEXT_LIMIT)}\n\n" if transcript else ""

    return f"""{context}Classify each comment as positive, negative, or neutral.

Positive: Supportive, appreciative, constructive praise
Negative: Critical, complaints, hostile
Neutral: Questions, facts, no clear sentiment

Comments:
""" + "\n".join(lines)


async def classify_batch(llm: LLMClient, job: BatchJob, api_key: str,
                         transcript: Optional[str] = None) -> List[ClassifiedComment]:
    """Classify one batch with a single structured LLM call; errors propagate to the worker"""
    logger.debug(f"📊 Processing batch {job.batch_number}/{job.total_batches} "
                 f"({len(job.comments)} comments, retry: {job.retry_count}) with key ...{api_key[-8:]}")

    prompt = build_classification_prompt(job.comments, transcript)
    validated = await llm.invoke_structured(prompt, BatchSentiment, api_key)

    # Never report more classifications than comments sent
    results = validated.results[:len(job.comments)]
    logger.debug(f"✅ Batch {job.batch_number} completed ({len(results)} classified)")
    return results


async def classification_worker(worker_id: int, job_queue: asyncio.Queue, run_stats: dict,
                                llm: LLMClient, api_key: str, transcript: Optional[str] = None,
                                on_progress: Optional[ProgressCallback] = None):
    """Worker that drains the shared batch queue until it is empty"""
    while True:
        # get_nowait never suspends, so no two workers claim one job
        try:
            job: BatchJob = job_queue.get_nowait()
        except asyncio.QueueEmpty:
            break

        try:
            results = await classify_batch(llm, job, api_key, transcript)
            run_stats['results'].extend(results)
            run_stats['completed_batches'] += 1

            completed = run_stats['completed_batches']
            total = run_stats['total_batches']
            if on_progress:
                fraction = min(1.0, completed / total) if total else 1.0
                on_progress(
                    PROGRESS_BASE + math.floor(fraction * PROGRESS_RANGE),
                    f"Classified {completed}/{total} batches",
                    {'batchNumber': completed, 'totalBatches': total}
                )
            logger.debug(f"✨ Worker {worker_id}: {completed}/{total} batches completed")

        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"❌ Worker {worker_id}: error in batch {job.batch_number}: {e}")

            if len(job.comments) > SPLIT_MIN_SIZE and job.retry_count < MAX_SPLIT_RETRIES:
                half = math.ceil(len(job.comments) / 2)
                first = BatchJob(job.comments[:half], job.batch_number, job.total_batches, job.retry_count + 1)
                second = BatchJob(job.comments[half:], job.batch_number, job.total_batches, job.retry_count + 1)
                job_queue.put_nowait(first)
                job_queue.put_nowait(second)
                run_stats['splits'] += 1
                logger.info(f"🔄 Batch {job.batch_number} split and re-queued "
                            f"({len(first.comments)} + {len(second.comments)} comments)")
            else:
                run_stats['failed_batches'] += 1
                run_stats['dropped_comments'] += len(job.comments)
                logger.error(f"❌ Batch {job.batch_number} permanently failed after {job.retry_count} retries")

    logger.debug(f"🛑 Classification worker {worker_id} finished")


async def run_worker_pool(jobs: List[BatchJob], num_workers: int, llm: LLMClient, rotator: KeyRotator,
                          transcript: Optional[str] = None,
                          on_progress: Optional[ProgressCallback] = None) -> Dict[str, Any]:
    """
    Drain `jobs` with `num_workers` concurrent workers, worker i bound to key i.

    Returns:
        run statistics including the flat `results` list
    """
    # Unbounded, since split sub-jobs are put back while workers drain it
    job_queue: asyncio.Queue = asyncio.Queue()
    for job in jobs:
        job_queue.put_nowait(job)
    run_stats = {
        'results': [],
        'total_batches': len(jobs),
        'completed_batches': 0,
        'failed_batches': 0,
        'splits': 0,
        'dropped_comments': 0,
    }

    workers = [
        asyncio.create_task(
            classification_worker(i, job_queue, run_stats, llm, rotator.key_for_worker(i), transcript, on_progress)
        )
        for i in range(num_workers)
    ]
    await asyncio.gather(*workers)

    logger.info(f"✅ All batches processed: {run_stats['completed_batches']} successful, "
                f"{run_stats['failed_batches']} failed")
    return run_stats


async def classify_comments(comments: List[Comment], llm: LLMClient, rotator: KeyRotator,
                            transcript: Optional[str] = None,
                            on_progress: Optional[ProgressCallback] = None) -> List[ClassifiedComment]:
    """
    Classify every comment as positive, negative or neutral.

    Batches that still fail after splitting are dropped from the result and
    logged. If every batch fails the call raises instead of returning nothing.
    """
    total_comments = len(comments)
    if total_comments == 0:
        logger.warning("⚠️ No comments to process")
        return []

    batch_size, num_workers = calculate_optimal_batching(total_comments)
    jobs = create_batch_jobs(comments, batch_size)

    logger.info(f"🚀 Processing {total_comments} comments: {len(jobs)} batches of {batch_size}, "
                f"{num_workers} workers, {len(rotator)} API keys")

    start_time = time.time()
    run_stats = await run_worker_pool(jobs, num_workers, llm, rotator, transcript, on_progress)
    classified = run_stats['results']

    success_rate = len(classified) / total_comments * 100
    logger.info(f"📊 Classified {len(classified)}/{total_comments} comments "
                f"in {time.time() - start_time:.2f}s ({success_rate:.1f}%)")

    if run_stats['dropped_comments']:
        logger.warning(f"⚠️ {run_stats['dropped_comments']} comments dropped from sentiment counts "
                       f"after {run_stats['failed_batches']} permanently failed batches")

    if not classified and run_stats['failed_batches']:
        raise RuntimeError(f"Classification failed for all {total_comments} comments")

    if success_rate < SUCCESS_RATE_WARNING:
        logger.warning(f"⚠️ Only {success_rate:.1f}% of comments successfully classified")

    return classified


def separate_by_sentiment(classified: List[ClassifiedComment]) -> SentimentGroups:
    groups = SentimentGroups(positive=[], negative=[], neutral=[])
    for comment in classified:
        getattr(groups, comment.sentiment).append(comment)

    logger.info(f"📊 Separated: {len(groups.positive)} positive, "
                f"{len(groups.negative)} negative, {len(groups.neutral)} neutral")
    return groups
