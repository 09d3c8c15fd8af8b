"""
Transcript fetching with chunked LLM summarization for long videos
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from creator_insights.key_rotator import KeyRotator
from creator_insights.llm_client import LLMClient
from creator_insights.schemas import TranscriptSummary
from creator_insights.youtube_client import YouTubeDataClient

logger = logging.getLogger(__name__)

MAX_LENGTH = 15000
CHUNK_SIZE = 10000
CHUNK_OVERLAP = 1000
CONCURRENT_CHUNKS = 3
CHUNK_FALLBACK_LENGTH = 2000


def chunk_text(text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> List[str]:
    """Split text into fixed-size windows that overlap by `overlap` characters"""
    chunks = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        chunks.append(text[start:end])
        if end == len(text):
            break
        start += chunk_size - overlap
    return chunks


async def summarize_chunk(llm: LLMClient, api_key: str, chunk: str, index: int, total: int) -> str:
    """Summarize one chunk; on failure return the chunk's head instead"""
    logger.debug(f"📝 Summarizing chunk {index + 1}/{total}")
    prompt = f"""Summarize part {index + 1}/{total} of a video transcript.

Create a concise, information-rich summary that:
- Captures all key points and insights
- Preserves important details and context
- Uses clear, natural language
- Target: ~2000 characters

Transcript:
{chunk}"""

    try:
        result = await llm.invoke_structured(prompt, TranscriptSummary, api_key)
        moments = "\n".join(f"- {m.topic}: {m.description}" for m in result.key_moments)
        enriched = f"{result.summary}\n\nTopics: {', '.join(result.key_topics)}\n\nKey Moments:\n{moments}".strip()
        logger.debug(f"✅ Chunk {index + 1} done: {len(enriched)} chars")
        return enriched
    except Exception as e:
        logger.warning(f"⚠️ Chunk {index + 1} summarization failed, using truncated text: {e}")
        return chunk[:CHUNK_FALLBACK_LENGTH] + "..."


async def merge_summaries(llm: LLMClient, api_key: str, combined: str, part_count: int) -> str:
    prompt = f"""Merge these {part_count} summaries into one cohesive summary.

Maintain all key insights and important details.
Target: ~{MAX_LENGTH} characters

Summaries:
{combined}"""

    try:
        result = await llm.invoke_structured(prompt, TranscriptSummary, api_key)
        sections = "\n".join(f"- {m.topic}: {m.description}" for m in result.key_moments)
        final_summary = (f"{result.summary}\n\nKey Topics: {', '.join(result.key_topics)}"
                         f"\n\nImportant Sections:\n{sections}").strip()
        logger.info(f"✅ Final merged transcript: {len(final_summary)} chars")
        return final_summary
    except Exception as e:
        logger.warning(f"⚠️ Final merge failed, truncating combined summaries: {e}")
        return combined[:MAX_LENGTH]


async def condense_transcript(text: str, llm: LLMClient, rotator: KeyRotator) -> str:
    """
    Bring a transcript under MAX_LENGTH characters.

    Chunks are summarized CONCURRENT_CHUNKS at a time, the summaries joined,
    and one merge pass runs only if the joined text is still too long.
    """
    if len(text) <= MAX_LENGTH:
        return text

    chunks = chunk_text(text)
    logger.info(f"📦 Transcript too long ({len(text)} chars), summarizing {len(chunks)} chunks")

    summaries = []
    for i in range(0, len(chunks), CONCURRENT_CHUNKS):
        group = chunks[i:i + CONCURRENT_CHUNKS]
        results = await asyncio.gather(*[
            summarize_chunk(llm, rotator.next_key(), chunk, i + offset, len(chunks))
            for offset, chunk in enumerate(group)
        ])
        summaries.extend(results)

    combined = "\n\n".join(f"=== Part {idx + 1} ===\n{summary}" for idx, summary in enumerate(summaries))
    if len(combined) <= MAX_LENGTH:
        logger.info(f"✅ Final transcript: {len(combined)} chars")
        return combined

    logger.info("🔄 Combined summaries still too long, doing final merge...")
    return await merge_summaries(llm, rotator.next_key(), combined, len(summaries))


async def fetch_transcript(video_id: str, youtube: YouTubeDataClient, llm: LLMClient,
                           rotator: KeyRotator) -> Dict[str, Any]:
    """
    Fetch a video transcript, condensed for prompt use.

    Returns:
        {'text': str, 'available': bool}; never raises
    """
    try:
        raw: Optional[str] = await youtube.fetch_raw_transcript(video_id)
        if not raw:
            logger.warning(f"⚠️ No transcript available for video {video_id}")
            return {'text': '', 'available': False}

        logger.info(f"📊 Raw transcript for {video_id}: {len(raw)} chars")
        text = await condense_transcript(raw, llm, rotator)
        return {'text': text, 'available': True}
    except Exception as e:
        logger.warning(f"⚠️ Transcript error for {video_id}: {e}")
        return {'text': '', 'available': False}
