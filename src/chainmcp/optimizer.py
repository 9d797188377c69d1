"""
Route synthesis and ranking.

A route is an ordered subset of the catalog picked by a named strategy.
Relevance is keyword overlap between the task and each tool, with name hits
counting double. Everything here is deterministic except route ids.
"""

from __future__ import annotations

import re
import uuid
from typing import Iterable, Optional

from src.chainmcp.models import (
    ChainAnalysisSummary,
    OptimizationCriteria,
    RouteCandidate,
    StrategyName,
    ToolChainAnalysis,
    ToolDescriptor,
)
from src.utils.logger import get_logger

logger = get_logger("RouteOptimizer")

_STOPWORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "is", "are", "was", "were", "be", "been",
    "this", "that", "it", "its", "as", "if", "not", "no", "do", "does",
    "can", "will", "has", "have", "had", "may", "might", "should", "would",
    "all", "each", "every", "any", "some", "task", "tool", "tools",
})

_NAME_WEIGHT = 2.0

FAST_DURATION_LIMIT = 2000
SIMPLE_LIMIT = 3
FAST_LIMIT = 3
COMPREHENSIVE_LIMIT = 5
ALTERNATIVE_LIMIT = 3
ALTERNATIVE_MIN_TOOLS = 5
ALTERNATIVE_SKIPPED_CATEGORIES = frozenset({"utility", "system"})

CORE_STRATEGIES: tuple[StrategyName, ...] = ("simple", "fast", "comprehensive")

STRATEGY_DESCRIPTIONS = {
    "simple": ("Simple", "Minimal tool usage for straightforward execution"),
    "fast": ("Fast", "Optimized for speed and efficiency"),
    "comprehensive": ("Comprehensive", "Thorough execution with multiple validation steps"),
    "alternative": ("Alternative", "One tool from each distinct category for a different angle"),
}

STRATEGY_RATIONALE = {
    "simple": "it keeps complexity at the lowest level available",
    "fast": f"every tool finishes within {FAST_DURATION_LIMIT}ms",
    "comprehensive": "it covers the most relevant tools",
    "alternative": "it spreads the work across categories",
}

ToolKey = tuple[str, str]


def _tokenize(text: str) -> list[str]:
    """Tokenize text into lowercase words, splitting on _ and non-alpha."""
    words = re.split(r"[_\W]+", text.lower())
    return [w for w in words if w and w not in _STOPWORDS and len(w) > 1]


def tool_key(tool: ToolDescriptor) -> ToolKey:
    return (tool.server_name, tool.name)


def mean_complexity(tools: Iterable[ToolDescriptor]) -> float:
    tools = list(tools)
    if not tools:
        return 0.0
    return sum(t.estimated_complexity for t in tools) / len(tools)


def primary_strategy(criteria: OptimizationCriteria) -> StrategyName:
    if criteria.prioritize_simplicity:
        return "simple"
    if criteria.prioritize_speed:
        return "fast"
    return "comprehensive"


def _capability_met(capability: str, tools: list[ToolDescriptor]) -> bool:
    needle = capability.lower()
    for tool in tools:
        if tool.category.lower() == needle:
            return True
        if needle in tool.name.lower() or needle in tool.description.lower():
            return True
    return False


class RouteOptimizer:
    """Builds and ranks RouteCandidates over a tool catalog."""

    def __init__(self, tools: Optional[list[ToolDescriptor]] = None):
        self._tools: dict[ToolKey, ToolDescriptor] = {}
        self.set_tools(tools or [])

    def set_tools(self, tools: list[ToolDescriptor]) -> None:
        self._tools = {tool_key(t): t for t in tools}

    def get_tools(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    # ------------------------------------------------------------------
    # Filtering and scoring
    # ------------------------------------------------------------------

    @staticmethod
    def filter_tools(
        tools: list[ToolDescriptor], criteria: OptimizationCriteria
    ) -> list[ToolDescriptor]:
        excluded = set(criteria.excluded_tools)
        eligible = []
        for tool in tools:
            if tool.name in excluded:
                continue
            if criteria.max_complexity is not None and tool.estimated_complexity > criteria.max_complexity:
                continue
            if criteria.max_duration is not None and tool.estimated_duration > criteria.max_duration:
                continue
            eligible.append(tool)
        return eligible

    @staticmethod
    def score_tools(task: str, tools: list[ToolDescriptor]) -> dict[ToolKey, float]:
        """Relevance of each tool to the task, normalized so the best tool scores 1.0."""
        query = set(_tokenize(task))
        raw: dict[ToolKey, float] = {}
        for tool in tools:
            if not query:
                raw[tool_key(tool)] = 0.0
                continue
            name_hits = len(query & set(_tokenize(tool.name)))
            desc_hits = len(query & set(_tokenize(tool.description)))
            category_hits = len(query & set(_tokenize(tool.category)))
            raw[tool_key(tool)] = _NAME_WEIGHT * name_hits + desc_hits + category_hits

        best = max(raw.values(), default=0.0)
        if best <= 0:
            return {key: 0.0 for key in raw}
        return {key: value / best for key, value in raw.items()}

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    @staticmethod
    def select_tools(
        strategy: StrategyName,
        tools: list[ToolDescriptor],
        scores: dict[ToolKey, float],
    ) -> list[ToolDescriptor]:
        if not tools:
            return []

        def relevance(t: ToolDescriptor) -> float:
            return scores.get(tool_key(t), 0.0)

        if strategy == "simple":
            lowest = min(t.estimated_complexity for t in tools)
            pool = [t for t in tools if t.estimated_complexity == lowest]
            pool.sort(key=lambda t: (-relevance(t), t.name, t.server_name))
            return pool[:SIMPLE_LIMIT]

        if strategy == "fast":
            pool = [t for t in tools if t.estimated_duration <= FAST_DURATION_LIMIT]
            pool.sort(key=lambda t: (t.estimated_duration, -relevance(t), t.name, t.server_name))
            return pool[:FAST_LIMIT]

        ranked = sorted(tools, key=lambda t: (-relevance(t), t.name, t.server_name))
        if strategy == "comprehensive":
            return ranked[:COMPREHENSIVE_LIMIT]

        if strategy == "alternative":
            picked: list[ToolDescriptor] = []
            seen_categories: set[str] = set()
            for tool in ranked:
                if tool.category in ALTERNATIVE_SKIPPED_CATEGORIES or tool.category in seen_categories:
                    continue
                seen_categories.add(tool.category)
                picked.append(tool)
                if len(picked) == ALTERNATIVE_LIMIT:
                    break
            return picked

        raise ValueError(f"Unknown strategy: {strategy}")

    def build_route(
        self,
        strategy: StrategyName,
        task: str,
        tools: Optional[list[ToolDescriptor]] = None,
        criteria: Optional[OptimizationCriteria] = None,
        scores: Optional[dict[ToolKey, float]] = None,
    ) -> Optional[RouteCandidate]:
        """Build the route a single strategy picks, or None if it picks nothing."""
        criteria = criteria or OptimizationCriteria()
        pool = self.filter_tools(tools if tools is not None else self.get_tools(), criteria)
        if scores is None:
            scores = self.score_tools(task, pool)
        selected = self.select_tools(strategy, pool, scores)
        if not selected:
            return None

        name, description = STRATEGY_DESCRIPTIONS[strategy]
        complexity = mean_complexity(selected)
        return RouteCandidate(
            id=f"route_{strategy}_{uuid.uuid4().hex[:8]}",
            name=name,
            description=description,
            tools=selected,
            estimated_duration=sum(t.estimated_duration for t in selected),
            complexity=min(max(complexity, 1.0), 10.0),
            confidence=self._confidence(selected, scores, criteria),
            reasoning=self._reasoning(strategy, selected, criteria),
        )

    @staticmethod
    def _confidence(
        tools: list[ToolDescriptor],
        scores: dict[ToolKey, float],
        criteria: OptimizationCriteria,
    ) -> float:
        relevant = sum(1 for t in tools if scores.get(tool_key(t), 0.0) > 0)
        confidence = 0.5 + min(0.1 * relevant, 0.4)
        if criteria.prioritize_reliability and mean_complexity(tools) < 4:
            confidence += 0.1
        unmet = [c for c in criteria.required_capabilities if not _capability_met(c, tools)]
        confidence -= 0.15 * len(unmet)
        return round(min(max(confidence, 0.0), 1.0), 4)

    @staticmethod
    def _reasoning(
        strategy: StrategyName, tools: list[ToolDescriptor], criteria: OptimizationCriteria
    ) -> str:
        name, _ = STRATEGY_DESCRIPTIONS[strategy]
        reasons = [f"This route uses the {name} strategy because {STRATEGY_RATIONALE[strategy]}"]
        if criteria.prioritize_speed:
            avg = sum(t.estimated_duration for t in tools) / len(tools)
            reasons.append(f"optimized for speed (avg duration: {avg:.0f}ms)")
        if criteria.prioritize_simplicity:
            reasons.append(f"prioritizing simplicity (avg complexity: {mean_complexity(tools):.1f})")
        if criteria.prioritize_reliability:
            reasons.append("with focus on reliability")
        reasons.append(f"using {len(tools)} tools: {', '.join(t.name for t in tools)}")
        return ", ".join(reasons)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def strategy_order(
        self, criteria: OptimizationCriteria, eligible_count: int
    ) -> list[StrategyName]:
        primary = primary_strategy(criteria)
        order: list[StrategyName] = [primary]
        order.extend(s for s in CORE_STRATEGIES if s != primary)
        if eligible_count > ALTERNATIVE_MIN_TOOLS:
            order.append("alternative")
        return order

    def generate_routes(
        self, task: str, criteria: Optional[OptimizationCriteria] = None
    ) -> list[RouteCandidate]:
        """Candidate routes for a task, primary strategy first."""
        criteria = criteria or OptimizationCriteria()
        eligible = self.filter_tools(self.get_tools(), criteria)
        scores = self.score_tools(task, eligible)

        routes = []
        for strategy in self.strategy_order(criteria, len(eligible)):
            route = self.build_route(strategy, task, eligible, criteria, scores)
            if route is not None:
                routes.append(route)
        logger.debug(f"Generated {len(routes)} route(s) from {len(eligible)} eligible tool(s)")
        return routes

    def analyze_tool_chain(
        self, input: str, criteria: Optional[OptimizationCriteria] = None
    ) -> ToolChainAnalysis:
        """Routes for input plus a summary naming the fastest, simplest and most reliable."""
        routes = self.generate_routes(input, criteria)
        available = self.get_tools()

        summary = ChainAnalysisSummary(
            total_tools_available=len(available),
            average_complexity=round(mean_complexity(available), 2),
        )
        if routes:
            # min/max keep the first route on ties
            summary = summary.model_copy(update={
                "fastest_route": min(routes, key=lambda r: r.estimated_duration).id,
                "simplest_route": min(routes, key=lambda r: r.complexity).id,
                "most_reliable_route": max(routes, key=lambda r: r.confidence).id,
            })
        return ToolChainAnalysis(
            input=input,
            available_tools=available,
            suggested_routes=routes,
            analysis=summary,
        )
