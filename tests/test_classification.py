"""
Tests for comment batching, the classification worker pool and the
sentiment separator.
"""
import asyncio
import math

import pytest

from creator_insights.classification import (
    LARGE_DATASET_BATCH_SIZE,
    MAX_WORKERS,
    BatchJob,
    build_classification_prompt,
    calculate_optimal_batching,
    classification_worker,
    classify_batch,
    classify_comments,
    create_batch_jobs,
    run_worker_pool,
    separate_by_sentiment,
    smart_truncate,
)
from creator_insights.schemas import BatchSentiment, ClassifiedComment
from tests.conftest import make_comments, mixed_comments


class TestBatchingPolicy:
    """Batch size and worker count chosen from the comment count."""

    @pytest.mark.parametrize("total", [1, 10, 37, 100, 4000, 4001, 10000])
    def test_batches_cover_every_comment_exactly_once(self, total):
        comments = mixed_comments(total)
        batch_size, num_workers = calculate_optimal_batching(total)

        jobs = create_batch_jobs(comments, batch_size)

        assert 1 <= num_workers <= MAX_WORKERS
        assert sum(len(job.comments) for job in jobs) == total
        assert [c.id for job in jobs for c in job.comments] == [c.id for c in comments]
        assert all(job.total_batches == len(jobs) for job in jobs)
        assert [job.batch_number for job in jobs] == list(range(1, len(jobs) + 1))

    @pytest.mark.parametrize("total", [1, 10, 37, 100, 4000])
    def test_small_and_medium_datasets_fit_one_round_of_workers(self, total):
        batch_size, num_workers = calculate_optimal_batching(total)

        assert batch_size * num_workers >= total
        assert len(create_batch_jobs(mixed_comments(total), batch_size)) <= num_workers

    @pytest.mark.parametrize("total", [4001, 10000])
    def test_large_datasets_use_fixed_batch_size(self, total):
        batch_size, num_workers = calculate_optimal_batching(total)

        assert batch_size == LARGE_DATASET_BATCH_SIZE
        assert num_workers == MAX_WORKERS
        assert len(create_batch_jobs(mixed_comments(total), batch_size)) == math.ceil(total / LARGE_DATASET_BATCH_SIZE)

    def test_tiny_dataset_uses_single_worker(self):
        assert calculate_optimal_batching(1) == (1, 1)
        assert calculate_optimal_batching(10) == (10, 1)

    def test_under_eighty_comments_keeps_batches_of_at_least_ten(self):
        batch_size, num_workers = calculate_optimal_batching(37)

        assert num_workers == 3
        assert batch_size == 13

    def test_no_comments_yields_no_jobs(self):
        batch_size, _ = calculate_optimal_batching(0)

        assert create_batch_jobs([], batch_size) == []


class TestPromptBuilding:

    def test_smart_truncate(self):
        assert smart_truncate("short", 10) == "short"
        assert smart_truncate("x" * 20, 10) == "x" * 10 + "..."

    def test_comments_are_numbered_cleaned_and_truncated(self):
        comments = make_comments(['line one\nline "two"', "y" * 200])

        prompt = build_classification_prompt(comments)

        assert "1. line one line 'two'" in prompt
        assert "2. " + "y" * 150 + "..." in prompt
        assert "Video Context" not in prompt

    def test_transcript_context_is_capped(self):
        prompt = build_classification_prompt(make_comments(["hi"]), transcript="t" * 3000)

        assert prompt.startswith("Video Context:\n" + "t" * 1500 + "...")


class TestClassifyBatch:

    @pytest.mark.asyncio
    async def test_extra_results_are_clipped_to_batch_size(self, fake_llm):
        fake_llm.responses[BatchSentiment] = lambda prompt: BatchSentiment(results=[
            ClassifiedComment(comment=f"c{i}", sentiment="neutral") for i in range(5)
        ])
        job = BatchJob(comments=make_comments(["a", "b", "c"]), batch_number=1, total_batches=1)

        results = await classify_batch(fake_llm, job, "key")

        assert len(results) == 3


class TestWorkerPool:
    """Concurrent draining of the shared batch queue with split-on-failure retries."""

    @pytest.mark.asyncio
    async def test_all_batches_succeed_without_retries(self, fake_llm, rotator):
        comments = mixed_comments(100)
        batch_size, num_workers = calculate_optimal_batching(len(comments))
        jobs = create_batch_jobs(comments, batch_size)

        stats = await run_worker_pool(jobs, num_workers, fake_llm, rotator)

        assert len(stats['results']) == 100
        assert stats['completed_batches'] == stats['total_batches'] == len(jobs)
        assert stats['splits'] == 0
        assert stats['failed_batches'] == 0
        assert len(fake_llm.structured_calls) == len(jobs)

    @pytest.mark.asyncio
    async def test_workers_use_their_assigned_keys(self, fake_llm, rotator):
        jobs = create_batch_jobs(mixed_comments(80), 10)

        await run_worker_pool(jobs, 8, fake_llm, rotator)

        used = {call['api_key'] for call in fake_llm.structured_calls}
        assert used <= {rotator.key_for_worker(i) for i in range(8)}

    @pytest.mark.asyncio
    async def test_persistent_failure_splits_at_most_twice(self, fake_llm, rotator):
        fake_llm.fail_schemas.add(BatchSentiment)
        jobs = [BatchJob(comments=mixed_comments(40), batch_number=1, total_batches=1)]

        stats = await run_worker_pool(jobs, 1, fake_llm, rotator)

        # 40 -> 20 + 20 -> 10 + 10 + 10 + 10, each attempted once
        assert len(fake_llm.structured_calls) == 7
        assert stats['splits'] == 3
        assert stats['failed_batches'] == 4
        assert stats['dropped_comments'] == 40
        assert stats['results'] == []

    @pytest.mark.asyncio
    async def test_small_failed_batch_is_not_split(self, fake_llm, rotator):
        fake_llm.fail_schemas.add(BatchSentiment)
        jobs = [BatchJob(comments=mixed_comments(10), batch_number=1, total_batches=1)]

        stats = await run_worker_pool(jobs, 2, fake_llm, rotator)

        assert len(fake_llm.structured_calls) == 1
        assert stats['splits'] == 0
        assert stats['failed_batches'] == 1

    @pytest.mark.asyncio
    async def test_transient_failure_recovers_every_comment(self, fake_llm, rotator):
        fake_llm.fail_first = 1
        jobs = [BatchJob(comments=mixed_comments(40), batch_number=1, total_batches=1)]

        stats = await run_worker_pool(jobs, 1, fake_llm, rotator)

        assert len(stats['results']) == 40
        assert stats['splits'] == 1
        assert stats['failed_batches'] == 0

    @pytest.mark.asyncio
    async def test_worker_drains_requeued_halves(self, fake_llm, rotator):
        fake_llm.fail_first = 1
        job_queue = asyncio.Queue()
        job_queue.put_nowait(BatchJob(comments=mixed_comments(40), batch_number=1, total_batches=1))
        run_stats = {'results': [], 'total_batches': 1, 'completed_batches': 0,
                     'failed_batches': 0, 'splits': 0, 'dropped_comments': 0}

        await classification_worker(0, job_queue, run_stats, fake_llm, rotator.key_for_worker(0))

        assert job_queue.empty()
        assert [len(call['prompt'].rsplit("Comments:\n", 1)[-1].splitlines())
                for call in fake_llm.structured_calls] == [40, 20, 20]
        assert len(run_stats['results']) == 40

    @pytest.mark.asyncio
    async def test_progress_stays_inside_classification_band(self, fake_llm, rotator):
        reports = []
        jobs = create_batch_jobs(mixed_comments(100), 13)

        await run_worker_pool(jobs, 8, fake_llm, rotator,
                              on_progress=lambda pct, msg, data: reports.append((pct, msg, data)))

        assert len(reports) == len(jobs)
        assert all(40 <= pct <= 60 for pct, _, _ in reports)
        assert reports[-1][0] == 60
        assert reports[-1][1] == f"Classified {len(jobs)}/{len(jobs)} batches"
        assert reports[-1][2] == {'batchNumber': len(jobs), 'totalBatches': len(jobs)}


class TestClassifyComments:

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_llm_calls(self, fake_llm, rotator):
        assert await classify_comments([], fake_llm, rotator) == []
        assert fake_llm.structured_calls == []

    @pytest.mark.asyncio
    async def test_total_failure_raises(self, fake_llm, rotator):
        fake_llm.fail_schemas.add(BatchSentiment)

        with pytest.raises(RuntimeError, match="Classification failed for all 30 comments"):
            await classify_comments(mixed_comments(30), fake_llm, rotator)

    @pytest.mark.asyncio
    async def test_labels_every_comment(self, fake_llm, rotator):
        classified = await classify_comments(mixed_comments(90), fake_llm, rotator, transcript="context")

        assert len(classified) == 90
        assert {c.sentiment for c in classified} == {"positive", "negative", "neutral"}
        assert all("Video Context" in call['prompt'] for call in fake_llm.structured_calls)


class TestSeparateBySentiment:

    def test_partitions_are_disjoint_and_complete(self):
        classified = [
            ClassifiedComment(comment="a", sentiment="positive"),
            ClassifiedComment(comment="b", sentiment="negative"),
            ClassifiedComment(comment="c", sentiment="neutral"),
            ClassifiedComment(comment="d", sentiment="positive"),
        ]

        groups = separate_by_sentiment(classified)

        assert [c.comment for c in groups.positive] == ["a", "d"]
        assert [c.comment for c in groups.negative] == ["b"]
        assert [c.comment for c in groups.neutral] == ["c"]
        assert len(groups.positive) + len(groups.negative) + len(groups.neutral) == len(classified)

    def test_empty_input(self):
        groups = separate_by_sentiment([])

        assert groups.positive == groups.negative == groups.neutral == []
