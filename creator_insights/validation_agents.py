"""
Multi-agent idea validation graph.

Four research agents run concurrently, each driving its own tool-calling loop
and one structured synthesis call. A barrier then checks that every agent
reported in, and a supervisor merges the four analyses into the final verdict.
Any agent failure aborts the whole run.
"""
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel

from creator_insights.key_rotator import KeyRotator
from creator_insights.llm_client import LLMClient, parse_tool_arguments
from creator_insights.schemas import (
    AudienceAgentOutput,
    CompetitionAgentOutput,
    StrategyAgentOutput,
    SupervisorSynthesis,
    TrendAgentOutput,
)
from creator_insights.stream_writer import StreamWriter
from creator_insights.validation_tools import ValidationTools

logger = logging.getLogger(__name__)

REQUIRED_AGENTS = ["competition", "audience", "trend", "strategy"]
ANALYSIS_SLOTS = ["competitionAnalysis", "audienceAnalysis", "trendAnalysis", "strategyAnalysis"]


@dataclass
class AgentSpec:
    name: str
    label: str
    icon: str
    slot: str
    tools: List[str]
    max_iterations: int
    research_prompt: str
    synthesis_prompt: str
    synthesis_message: str
    schema: Type[BaseModel]
    summarize: Callable[[BaseModel, List[Dict[str, Any]]], Dict[str, Any]]
    tool_notes: Optional[Dict[str, str]] = None


COMPETITION_AGENT = AgentSpec(
    name="competition",
    label="Competition Agent",
    icon="🔍",
    slot="competitionAnalysis",
    tools=["checkCompetition", "scrapeTopChannels", "estimateMetrics"],
    max_iterations=5,
    research_prompt="""You are a competition analysis expert for YouTube.

VIDEO IDEA: "{idea}"
TARGET AUDIENCE: "{targetAudience}"
GOAL: "{goal}"

Your task: Analyze the competition landscape using these tools:
1. checkCompetition - Check overall competition level
2. scrapeTopChannels - Analyze top competing channels
3. estimateMetrics - Estimate performance metrics

Call ALL 3 tools to gather comprehensive competition data. Be thorough!""",
    synthesis_prompt="""Based on the competition research data collected, provide a comprehensive competition analysis.

TOOL RESULTS:
{tool_results}

Analyze and provide:
1. competitionBreakdown: Breakdown of big/medium/small creators, saturation score (0-100), entry barrier, dominant formats
2. marketGaps: 3-5 specific content gaps or opportunities
3. topCompetitors: Names of top 5-10 competing channels
4. qualityBenchmark: What quality level is needed to compete

Be specific and data-driven. Use the actual numbers from the tools.""",
    synthesis_message="Synthesizing findings...",
    schema=CompetitionAgentOutput,
    summarize=lambda out, _: {
        'saturationScore': out.competitionBreakdown.saturationScore,
        'gapsFound': len(out.marketGaps),
    },
)

AUDIENCE_AGENT = AgentSpec(
    name="audience",
    label="Audience Agent",
    icon="👥",
    slot="audienceAnalysis",
    tools=["getAudienceRelatability", "analyzeComments"],
    max_iterations=5,
    research_prompt="""You are an audience psychology expert for YouTube.

VIDEO IDEA: "{idea}"
TARGET AUDIENCE: "{targetAudience}"
GOAL: "{goal}"

Your task: Understand the target audience deeply using these tools:
1. getAudienceRelatability - Measure audience connection
2. analyzeComments - Extract pain points, questions, sentiment

Call BOTH tools to gather comprehensive audience insights.""",
    synthesis_prompt="""Based on the audience research data, provide comprehensive audience insights.

TOOL RESULTS:
{tool_results}

Analyze and provide:
1. audienceInsights: Pain points (3-5), desires (3-5), common questions (3-5), relatability score (0-10)
2. targetDemographics: Specific demographic details (age, interests, viewing habits)
3. viewerIntent: Why people search for this content
4. emotionalTriggers: 3-5 emotional hooks that resonate with this audience

Be specific about what the audience truly wants and needs.""",
    synthesis_message="Synthesizing insights...",
    schema=AudienceAgentOutput,
    summarize=lambda out, _: {
        'relatabilityScore': out.audienceInsights.relatabilityScore,
        'painPointsFound': len(out.audienceInsights.painPoints),
        'emotionalTriggers': len(out.emotionalTriggers),
    },
)

TREND_AGENT = AgentSpec(
    name="trend",
    label="Trend Agent",
    icon="📈",
    slot="trendAnalysis",
    tools=["getTrendingSignals", "searchGoogleTrends", "getSearchDemand"],
    max_iterations=5,
    research_prompt="""You are a trend analysis expert for YouTube and Google.

VIDEO IDEA: "{idea}"
TARGET AUDIENCE: "{targetAudience}"
GOAL: "{goal}"

Your task: Analyze trending signals and search demand using these tools:
1. getTrendingSignals - Check YouTube trending data
2. searchGoogleTrends - Analyze Google search trends
3. getSearchDemand - Measure search volume

Call ALL 3 tools to understand trend trajectory and timing.""",
    synthesis_prompt="""Based on the trend research data, provide comprehensive trend insights.

TOOL RESULTS:
{tool_results}

Analyze and provide:
1. youtubeMetrics: Search volume, trend direction (RISING/STABLE/DECLINING), seasonality, avg engagement rate, virality potential (LOW/MEDIUM/HIGH)
2. trendingKeywords: 5-10 currently trending related keywords
3. bestTimingWindow: When to publish this content for maximum impact
4. futureOutlook: Predicted trend trajectory over next 3-6 months

Be specific about timing and trend momentum.""",
    synthesis_message="Synthesizing trend data...",
    schema=TrendAgentOutput,
    summarize=lambda out, _: {
        'trendDirection': out.youtubeMetrics.trendDirection,
        'viralityPotential': out.youtubeMetrics.viralityPotential,
        'keywordsFound': len(out.trendingKeywords),
    },
)

STRATEGY_AGENT = AgentSpec(
    name="strategy",
    label="Strategy Agent",
    icon="🎯",
    slot="strategyAnalysis",
    tools=["fetchVideoTranscript", "findReferenceVideo"],
    max_iterations=6,
    research_prompt="""You are a content strategy expert for YouTube.

VIDEO IDEA: "{idea}"
TARGET AUDIENCE: "{targetAudience}"
GOAL: "{goal}"

Your task: Develop content strategy by analyzing successful videos:
1. fetchVideoTranscript - Analyze video structure and hooks
2. findReferenceVideo - Find successful reference videos (call this 2-3 times for variety)

Call these tools to understand what works in this niche.""",
    synthesis_prompt="""Based on the strategy research data, provide comprehensive content strategy.

TOOL RESULTS:
{tool_results}

Analyze and provide:
1. contentStrategy: Optimal video length, hook strategy (first 15 sec), content structure (chapters), unique angles (3-5)
2. titleFormulas: 5 title templates that work in this niche
3. thumbnailGuidance: Best practices for thumbnails in this niche
4. seriesPotential: Can this idea become a series? How?

Be specific and actionable for content creation.""",
    synthesis_message="Synthesizing content strategy...",
    schema=StrategyAgentOutput,
    summarize=lambda out, tool_results: {
        'referenceVideosFound': sum(1 for t in tool_results if t['tool'] == 'findReferenceVideo'),
        'uniqueAngles': len(out.contentStrategy.uniqueAngles),
        'titleTemplates': len(out.titleFormulas),
    },
    tool_notes={
        'fetchVideoTranscript': "    Analyzing video structure...",
        'findReferenceVideo': "    Finding reference videos...",
    },
)

AGENT_SPECS = [COMPETITION_AGENT, AUDIENCE_AGENT, TREND_AGENT, STRATEGY_AGENT]


def create_agent_state(idea: str, target_audience: str, goal: str, job_id: str = "") -> Dict[str, Any]:
    return {
        'idea': idea,
        'targetAudience': target_audience,
        'goal': goal,
        'jobId': job_id,
        'competitionAnalysis': None,
        'audienceAnalysis': None,
        'trendAnalysis': None,
        'strategyAnalysis': None,
        'agentsCompleted': set(),
        'finalOutput': None,
    }


def merge_agent_state(state: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Fold a node's partial update into the state: union for agentsCompleted, last non-null value otherwise"""
    merged = dict(state)
    for key, value in update.items():
        if key == 'agentsCompleted':
            completed = set(merged.get('agentsCompleted') or set())
            if isinstance(value, str):
                completed.add(value)
            elif value:
                completed.update(value)
            merged['agentsCompleted'] = completed
        elif value is not None:
            merged[key] = value
    return merged


async def run_agent(spec: AgentSpec, state: Dict[str, Any], writer: StreamWriter, llm: LLMClient,
                    tools: ValidationTools, api_key: str) -> Dict[str, Any]:
    """
    Run one research agent: bounded tool loop, then a structured synthesis.

    Returns:
        Partial state update with the agent's analysis slot and its name in agentsCompleted
    """
    writer.agent_status(spec.name, "started")
    writer.log(f"{spec.icon} {spec.label}: Starting analysis...", "info")

    tool_definitions = tools.definitions(spec.tools)
    messages: List[Dict[str, Any]] = [{'role': 'user', 'content': spec.research_prompt.format(**state)}]
    tool_results: List[Dict[str, Any]] = []

    for _ in range(spec.max_iterations):
        response = await llm.invoke_with_tools(messages, tool_definitions, api_key)
        messages.append(response)

        tool_calls = response.get('tool_calls') or []
        if not tool_calls:
            break

        for tool_call in tool_calls:
            name = tool_call.get('function', {}).get('name', '')
            writer.log(f"  📊 Calling tool: {name}", "info")

            if name in spec.tools:
                result = await tools.run_tool(name, parse_tool_arguments(tool_call))
                if spec.tool_notes and name in spec.tool_notes:
                    writer.log(spec.tool_notes[name], "info")
            else:
                logger.warning(f"⚠️ {spec.label} requested unavailable tool {name}")
                result = {'error': f"Tool {name} is not available to this agent"}

            tool_results.append({'tool': name, 'result': result})
            messages.append({
                'role': 'tool',
                'content': json.dumps(result, default=str),
                'tool_call_id': tool_call.get('id'),
            })
            writer.log(f"  ✓ Tool completed: {name}", "success")

    writer.log(f"🔄 {spec.label}: {spec.synthesis_message}", "info")

    synthesis_prompt = spec.synthesis_prompt.format(tool_results=json.dumps(tool_results, indent=2, default=str))
    analysis = await llm.invoke_structured(synthesis_prompt, spec.schema, api_key)

    logger.debug(f"{spec.label} output: {analysis.model_dump_json()[:200]}...")
    writer.log(f"✅ {spec.label}: Analysis complete", "success")
    writer.agent_status(spec.name, "completed", spec.summarize(analysis, tool_results))

    return {spec.slot: analysis.model_dump(), 'agentsCompleted': spec.name}


def barrier_node(state: Dict[str, Any], writer: StreamWriter) -> Dict[str, Any]:
    """Fail fast unless every required agent completed and wrote its analysis"""
    writer.log("🚧 Barrier: Verifying all agents completed...", "info")

    completed = state.get('agentsCompleted') or set()
    missing = [agent for agent in REQUIRED_AGENTS if agent not in completed]
    if missing:
        raise RuntimeError(f"Not all agents completed. Missing: {', '.join(missing)}")

    if any(not state.get(slot) for slot in ANALYSIS_SLOTS):
        raise RuntimeError("Some agent data is missing")

    writer.log("✅ Barrier: All agents completed successfully", "success")
    writer.progress(4, 5, "All analysis complete, generating final recommendations...")
    return {}


async def supervisor_node(state: Dict[str, Any], writer: StreamWriter, llm: LLMClient,
                          api_key: str, model: Optional[str] = None) -> Dict[str, Any]:
    writer.log("🧠 Supervisor: Synthesizing all research...", "info")

    if any(not state.get(slot) for slot in ANALYSIS_SLOTS):
        raise RuntimeError("Cannot synthesize - missing agent data")

    prompt = f"""You are the final validator synthesizing all research from 4 specialized agents.

VIDEO IDEA: "{state['idea']}"
TARGET AUDIENCE: "{state['targetAudience']}"
GOAL: "{state['goal']}"

=== COMPETITION ANALYSIS ===
{json.dumps(state['competitionAnalysis'], indent=2)}

=== AUDIENCE ANALYSIS ===
{json.dumps(state['audienceAnalysis'], indent=2)}

=== TREND ANALYSIS ===
{json.dumps(state['trendAnalysis'], indent=2)}

=== STRATEGY ANALYSIS ===
{json.dumps(state['strategyAnalysis'], indent=2)}

Based on ALL this research data, provide your final synthesis:

1. verdict: A detailed paragraph (3-5 sentences) explaining whether this idea has potential and why, based on the data
2. score: Overall potential score (0-100) based on competition, audience fit, trends, and strategy
3. improvements: 5-7 specific, actionable improvements to maximize success
4. titles: 5-7 compelling video title suggestions that match the niche
5. angles: 3-5 unique content angles to differentiate from competitors
6. referenceVideos: Extract 3-5 successful reference videos with COMPLETE details

Be honest, data-driven, and actionable."""

    writer.log("🤖 Supervisor: Generating recommendations...", "info")
    supervisor_model = model or os.getenv("SUPERVISOR_MODEL", "gpt-4o")
    synthesis = await llm.invoke_structured(prompt, SupervisorSynthesis, api_key, model=supervisor_model)

    final_output = {
        'verdict': synthesis.verdict,
        'score': synthesis.score,
        'competitionAnalysis': state['competitionAnalysis'],
        'audienceAnalysis': state['audienceAnalysis'],
        'trendAnalysis': state['trendAnalysis'],
        'strategyRecommendations': state['strategyAnalysis'],
        'improvements': synthesis.improvements,
        'titles': synthesis.titles,
        'angles': synthesis.angles,
        'referenceVideos': [video.model_dump() for video in synthesis.referenceVideos],
    }

    writer.log(f"✅ Supervisor: Final score calculated: {synthesis.score}/100", "success")
    return {'finalOutput': final_output}


async def run_validation_graph(state: Dict[str, Any], writer: StreamWriter, llm: LLMClient,
                               tools: ValidationTools, rotator: KeyRotator,
                               agent_specs: Optional[List[AgentSpec]] = None) -> Dict[str, Any]:
    """
    Execute start -> four agents (parallel) -> barrier -> supervisor.

    The first agent failure cancels the remaining agents and propagates.
    """
    specs = agent_specs if agent_specs is not None else AGENT_SPECS

    tasks = [
        asyncio.create_task(run_agent(spec, state, writer, llm, tools, rotator.next_key()))
        for spec in specs
    ]
    try:
        updates = await asyncio.gather(*tasks)
    except Exception as e:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.error(f"💥 Validation agent failed, aborting run: {e}")
        raise

    for update in updates:
        state = merge_agent_state(state, update)

    state = merge_agent_state(state, barrier_node(state, writer))
    state = merge_agent_state(state, await supervisor_node(state, writer, llm, rotator.next_key()))
    return state
