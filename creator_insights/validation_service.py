"""
Idea validation service and its streaming controller
"""
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from creator_insights.key_rotator import KeyRotator
from creator_insights.llm_client import LLMClient
from creator_insights.schemas import ValidateIdeaRequest
from creator_insights.stream_writer import StreamWriter
from creator_insights.validation_agents import create_agent_state, run_validation_graph
from creator_insights.validation_tools import ValidationTools

logger = logging.getLogger(__name__)


async def validate_idea_service(request: ValidateIdeaRequest, writer: StreamWriter, llm: LLMClient,
                                tools: ValidationTools, rotator: KeyRotator) -> Dict[str, Any]:
    """
    Validate a video idea with the four research agents and the supervisor.

    Returns:
        Supervisor output plus the four analyses and `metadata`
    """
    writer.log("🚀 Starting parallel validation workflow", "info")
    writer.log(f"Idea: \"{request.idea}\"", "info")
    writer.log(f"Audience: \"{request.targetAudience}\"", "info")
    writer.log(f"Goal: \"{request.goal}\"", "info")

    writer.progress(0, 5, "Initializing validation workflow...")

    state = create_agent_state(request.idea, request.targetAudience, request.goal, str(uuid.uuid4()))
    start_time = time.time()

    writer.progress(1, 5, "Executing parallel agent analysis...")
    result = await run_validation_graph(state, writer, llm, tools, rotator)
    duration = f"{time.time() - start_time:.2f}"

    final_output = result.get('finalOutput')
    if not final_output:
        raise RuntimeError("Final output was not generated")

    writer.progress(5, 5, "Validation completed!")
    writer.log(f"✅ Completed in {duration}s", "success")
    writer.log(f"📊 Final Score: {final_output['score']}/100", "success")

    return {
        **final_output,
        'metadata': {
            'processingTime': duration,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        },
    }


async def run_validation_stream(request: ValidateIdeaRequest, writer: StreamWriter, llm: LLMClient,
                                tools: ValidationTools, rotator: KeyRotator):
    """Drive one validation request into `writer`; always ends with a final record and closes the stream"""
    logger.info(f"📝 Received validation request for: \"{request.idea}\"")
    writer.log(f"Starting validation for: \"{request.idea}\"", "info")

    try:
        result = await validate_idea_service(request, writer, llm, tools, rotator)
        writer.final({'success': True, 'data': result})
    except Exception as e:
        logger.error(f"❌ Validation service error: {e}")
        writer.log(f"Error: {e}", "error")
        writer.final({'success': False, 'error': str(e)})
    finally:
        writer.end()
