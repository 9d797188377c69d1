"""
Multi-step rationale for a recommended route.

The analyzer writes an ordered series of labeled thoughts about a problem,
summarizes them into a WorkflowAnalysis, and proposes routes built with the
optimizer's strategy rules. Phrase selection draws from ``random.Random(seed)``,
so passing a seed makes the whole result reproducible apart from route ids.
"""

from __future__ import annotations

import random
from typing import Optional

from src.chainmcp.errors import FeatureUnavailableError
from src.chainmcp.models import (
    OptimizationCriteria,
    RouteCandidate,
    SequentialAnalysisResult,
    SequentialThought,
    ThoughtType,
    ToolDescriptor,
    WorkflowAnalysis,
)
from src.chainmcp.optimizer import RouteOptimizer, mean_complexity, primary_strategy
from src.utils.logger import get_logger

logger = get_logger("SequentialAnalyzer")

BASE_THOUGHTS = 5
MAX_THOUGHTS = 15
MAX_CREATIVE_THOUGHTS = 20

COMPLEXITY_KEYWORDS = ("complex", "multiple", "analyze", "comprehensive", "thorough")

KEY_INSIGHTS = [
    "Multiple MCP tool combinations are possible",
    "Sequential execution provides better control over tool chaining",
    "Error handling should be considered between MCP servers",
    "Tool dependencies need to be managed across servers",
]

POTENTIAL_CHALLENGES = [
    "MCP server compatibility issues",
    "Execution order dependencies between tools",
    "Error propagation between MCP servers",
    "Resource constraints across multiple servers",
    "Tool input/output schema mismatches",
]

# Phrase variants per thought type. Placeholders: problem, tool_count,
# categories, criteria, approach, server_count.
STANDARD_TEMPLATES: dict[ThoughtType, list[str]] = {
    "analysis": [
        'First, I need to understand the problem: "{problem}". It has to be solved with {tool_count} available tools.',
        'Breaking down "{problem}": what is the concrete outcome, and which of the {tool_count} tools move toward it?',
        'The core of "{problem}" needs to be isolated before any tool is chosen from the {tool_count} on offer.',
    ],
    "categorization": [
        "The available tools fall into these categories: {categories}. Each category covers a different part of the work.",
        "Grouping the {tool_count} tools by category ({categories}) shows which capabilities are covered.",
        "Sorting tools into {categories} makes it clear where the gaps and overlaps are.",
    ],
    "optimization": [
        "Optimization criteria: {criteria}. The tool selection should respect these before anything else.",
        "Given {criteria}, tools that are slow or complex should only be used where nothing simpler fits.",
        "Weighing the candidates against {criteria} narrows the field considerably.",
    ],
    "planning": [
        "A {approach} strategy fits best: order the tools so each step feeds the next across {server_count} server(s).",
        "Plan: begin with the cheapest reliable tool, then chain toward the result using the {approach} strategy.",
        "The execution order should follow data dependencies, with the {approach} strategy deciding ties.",
    ],
    "evaluation": [
        "Evaluating the plan: the {approach} route covers the problem while keeping errors contained per server.",
        "Checking the result against the criteria ({criteria}): the {approach} route is a reasonable fit.",
        "The chosen chain should be validated step by step, since failures propagate between servers.",
    ],
}

# Fixed order: first, last, then cycled in between
_STANDARD_MIDDLE: list[ThoughtType] = ["categorization", "optimization", "planning"]

CREATIVE_TEMPLATES: list[tuple[ThoughtType, str]] = [
    ("analysis", "REVERSE ENGINEERING: Working backwards from the desired outcome of \"{problem}\", what would the perfect solution look like, and which tools build toward it?"),
    ("optimization", "CONSTRAINT-BASED CREATIVITY: The limits of {tool_count} tools can act as a catalyst. How can those constraints inspire a better solution?"),
    ("categorization", "CROSS-DOMAIN THINKING: There are opportunities to blend the {categories} domains. What synergies appear when tools from different domains are combined?"),
    ("planning", "SERENDIPITY-DRIVEN EXPLORATION: What if unexpected tool combinations are explored on purpose? Unconventional pairings often surface new answers."),
    ("planning", "PROVOCATIVE OPERATION: What if the most complex tools were chosen first? Starting with the hardest part can reveal simpler paths."),
    ("analysis", "RANDOM STIMULATION: Using {random_tool} as a catalyst, how might it spark a new approach to \"{problem}\"?"),
    ("evaluation", "ALTERNATIVE PERSPECTIVES: Instead of asking how to solve this, what if the problem is actually an opportunity? What possibilities emerge?"),
    ("analysis", "NATURE-INSPIRED ANALOGY: Like an ecosystem, the tools can work together, each playing a specific role in the larger system."),
    ("planning", "ARCHITECTURE ANALOGY: A solution needs a foundation (core tools), supporting structures (helper tools) and finishing touches (optimization)."),
    ("optimization", "COOKING ANALOGY: The right ingredients (tools), proper timing (execution order) and seasoning ({criteria}) make the dish."),
    ("planning", "DIVERGENT BRAINSTORMING: Generate many different approaches. The strongest idea is often not the first one."),
    ("analysis", "WHAT-IF SCENARIOS: What if there were unlimited tools? Only three? What if speed did not matter? Each constraint reveals different options."),
    ("categorization", "COMBINATION EXPLOSION: With {tool_count} tools there are {combinations} possible pairings. The most promising ones deserve a closer look."),
]

CONVERGENT_TEMPLATES: list[tuple[ThoughtType, str]] = [
    ("evaluation", "PATTERN RECOGNITION: Across these explorations, the promising approaches cluster around {pattern} themes."),
    ("optimization", "CREATIVE SYNTHESIS: The solution combines {insights} for innovation and effectiveness, following the {approach} strategy."),
    ("evaluation", "INNOVATION VALIDATION: This approach is novel because it {innovation}."),
]

PATTERN_THEMES = ["creative exploration", "systematic analysis", "innovative synthesis"]
INNOVATION_FACTORS = [
    "combines multiple thinking paradigms",
    "leverages unexpected tool synergies",
    "applies creative constraints as catalysts",
    "integrates cross-domain insights",
]


def thought_budget(problem: str, tools: list[ToolDescriptor], creative: bool = False) -> int:
    thoughts = BASE_THOUGHTS
    if len(problem) > 200:
        thoughts += 2
    if len(problem) > 500:
        thoughts += 2
    if len(tools) > 5:
        thoughts += 1
    if len(tools) > 10:
        thoughts += 1
    if tools and mean_complexity(tools) > 5:
        thoughts += 2
    return min(thoughts, MAX_CREATIVE_THOUGHTS if creative else MAX_THOUGHTS)


def assess_problem_complexity(problem: str) -> str:
    lowered = problem.lower()
    hits = sum(1 for keyword in COMPLEXITY_KEYWORDS if keyword in lowered)
    if len(problem) > 300 or hits >= 3:
        return "high"
    if len(problem) > 150 or hits >= 1:
        return "medium"
    return "low"


def describe_criteria(criteria: OptimizationCriteria) -> str:
    parts = []
    if criteria.prioritize_speed:
        parts.append("prioritize speed")
    if criteria.prioritize_simplicity:
        parts.append("prioritize simplicity")
    if criteria.prioritize_reliability:
        parts.append("prioritize reliability")
    if criteria.max_complexity is not None:
        parts.append(f"max complexity {criteria.max_complexity}")
    if criteria.max_duration is not None:
        parts.append(f"max duration {criteria.max_duration}ms")
    if criteria.required_capabilities:
        parts.append(f"required capabilities {', '.join(criteria.required_capabilities)}")
    if criteria.excluded_tools:
        parts.append(f"excluded tools {', '.join(criteria.excluded_tools)}")
    return "; ".join(parts) if parts else "no specific criteria"


class SequentialAnalyzer:
    """Produces SequentialAnalysisResults. Disabled analyzers refuse every request."""

    def __init__(self, optimizer: Optional[RouteOptimizer] = None, enabled: bool = True):
        self.optimizer = optimizer or RouteOptimizer()
        self.enabled = enabled

    def is_available(self) -> bool:
        return self.enabled

    def analyze_workflow(
        self,
        problem: str,
        tools: list[ToolDescriptor],
        criteria: Optional[OptimizationCriteria] = None,
        creative: bool = False,
        seed: Optional[int] = None,
        max_thoughts: Optional[int] = None,
    ) -> SequentialAnalysisResult:
        """
        Raises:
            FeatureUnavailableError: the analyzer is disabled.
        """
        if not self.enabled:
            raise FeatureUnavailableError("Sequential thinking analysis is not available")

        criteria = criteria or OptimizationCriteria()
        rng = random.Random(seed)

        budget = thought_budget(problem, tools, creative)
        if max_thoughts is not None:
            budget = max(1, min(budget, max_thoughts))

        approach = primary_strategy(criteria)
        context = self._template_context(problem, tools, criteria, approach, rng)
        if creative:
            thoughts = self._creative_thoughts(budget, context, rng)
        else:
            thoughts = self._standard_thoughts(budget, context, rng)

        analysis = WorkflowAnalysis(
            problem_complexity=assess_problem_complexity(problem),
            tool_availability=len(tools),
            recommended_approach=approach,
            key_insights=KEY_INSIGHTS
            + [f"Available tools span {context['server_count']} different MCP servers"],
            potential_challenges=list(POTENTIAL_CHALLENGES),
        )
        suggestions = self._suggestions(problem, tools, criteria, approach)

        logger.debug(f"Sequential analysis produced {len(thoughts)} thoughts, {len(suggestions)} route(s)")
        return SequentialAnalysisResult(
            thoughts=thoughts,
            analysis=analysis,
            suggestions=suggestions,
            confidence=self._confidence(thoughts, analysis),
            reasoning=self._reasoning(thoughts, analysis),
            seed=seed,
        )

    @staticmethod
    def _template_context(
        problem: str,
        tools: list[ToolDescriptor],
        criteria: OptimizationCriteria,
        approach: str,
        rng: random.Random,
    ) -> dict[str, object]:
        categories = list(dict.fromkeys(t.category for t in tools))
        n = len(tools)
        return {
            "problem": problem if len(problem) <= 120 else problem[:117] + "...",
            "tool_count": n,
            "categories": ", ".join(categories[:3]) or "no",
            "criteria": describe_criteria(criteria),
            "approach": approach,
            "server_count": len({t.server_name for t in tools}),
            "random_tool": rng.choice(tools).name if tools else "a random tool",
            "combinations": n * (n - 1) // 2 if n > 1 else 1,
        }

    @staticmethod
    def _standard_thoughts(
        budget: int, context: dict[str, object], rng: random.Random
    ) -> list[SequentialThought]:
        if budget == 1:
            types: list[ThoughtType] = ["analysis"]
        else:
            middle = [_STANDARD_MIDDLE[i % len(_STANDARD_MIDDLE)] for i in range(budget - 2)]
            types = ["analysis", *middle, "evaluation"]
        return [
            SequentialThought(
                number=i + 1,
                content=rng.choice(STANDARD_TEMPLATES[kind]).format(**context),
                type=kind,
            )
            for i, kind in enumerate(types)
        ]

    @staticmethod
    def _creative_thoughts(
        budget: int, context: dict[str, object], rng: random.Random
    ) -> list[SequentialThought]:
        convergent = CONVERGENT_TEMPLATES[: min(len(CONVERGENT_TEMPLATES), budget)]
        exploratory_count = budget - len(convergent)
        exploratory = [
            CREATIVE_TEMPLATES[i % len(CREATIVE_TEMPLATES)] for i in range(exploratory_count)
        ]
        context = {
            **context,
            "pattern": rng.choice(PATTERN_THEMES),
            "insights": " and ".join(rng.sample(
                ["lateral thinking", "analogical reasoning", "divergent exploration", "convergent synthesis"], 2
            )),
            "innovation": rng.choice(INNOVATION_FACTORS),
        }
        return [
            SequentialThought(number=i + 1, content=template.format(**context), type=kind)
            for i, (kind, template) in enumerate(exploratory + convergent)
        ]

    def _suggestions(
        self,
        problem: str,
        tools: list[ToolDescriptor],
        criteria: OptimizationCriteria,
        approach: str,
    ) -> list[RouteCandidate]:
        suggestions = []
        recommended = self.optimizer.build_route(approach, problem, tools, criteria)
        if recommended is not None:
            suggestions.append(recommended)
        if len(tools) > 5:
            alternative = self.optimizer.build_route("alternative", problem, tools, criteria)
            if alternative is not None:
                suggestions.append(alternative)
        return suggestions

    @staticmethod
    def _confidence(thoughts: list[SequentialThought], analysis: WorkflowAnalysis) -> float:
        confidence = 0.5 + min(len(thoughts) * 0.05, 0.3)
        if len(analysis.key_insights) >= 3:
            confidence += 0.1
        if len(analysis.potential_challenges) >= 2:
            confidence += 0.1
        return round(min(confidence, 1.0), 4)

    @staticmethod
    def _reasoning(thoughts: list[SequentialThought], analysis: WorkflowAnalysis) -> str:
        thought_types = ", ".join(t.type for t in thoughts)
        insights = "; ".join(analysis.key_insights[:2])
        return (
            f"Sequential thinking analysis ({thought_types}) identified key insights: "
            f"{insights}. Recommended approach: {analysis.recommended_approach} using MCP tools."
        )
