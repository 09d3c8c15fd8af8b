"""
Version information for Creator Insights Backend
"""

__version__ = "1.3.0"
__version_info__ = (1, 3, 0)
__build_date__ = "2026-10-17"

# Version history
VERSION_HISTORY = {
    "1.3.0": {
        "date": "2026-10-17",
        "changes": [
            "Added topic opportunity search endpoint with per-query caching",
            "Added per-call LLM transport deadline (LLM_TIMEOUT_SECONDS) so a hung provider call can no longer block a batch or agent forever",
            "Classification now raises when every batch permanently fails instead of returning an empty result"
        ]
    },
    "1.2.0": {
        "date": "2026-09-02",
        "changes": [
            "Added multi-agent idea validation pipeline (competition, audience, trend, strategy agents + supervisor)",
            "Added NDJSON streaming response writer for live validation logs",
            "Added completion barrier that names missing agents before the supervisor runs"
        ]
    },
    "1.1.0": {
        "date": "2026-08-11",
        "changes": [
            "Split classification into a worker pool with per-worker API keys",
            "Failed batches are now split in half and re-queued (max 2 retries) instead of dropped",
            "Added Server-Sent Events progress stream per job"
        ]
    },
    "1.0.0": {
        "date": "2026-07-20",
        "initial_release": True,
        "features": [
            "YouTube comment sentiment analysis with background job queue",
            "Parallel insight stages: emotions, patterns, things loved, improvements, want more",
            "Long transcript chunking and summarization",
            "Job status polling API"
        ]
    }
}
