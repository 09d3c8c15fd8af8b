#!/usr/bin/env python3
"""
Entry point for the Creator Insights API
"""
import os
import uvicorn

from logging_config import configure_logging

if __name__ == "__main__":
    configure_logging()
    uvicorn.run(
        "creator_insights.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
        log_config=None
    )
