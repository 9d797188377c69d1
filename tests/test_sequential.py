import pytest

from src.chainmcp.errors import FeatureUnavailableError
from src.chainmcp.models import OptimizationCriteria
from src.chainmcp.sequential import (
    SequentialAnalyzer,
    assess_problem_complexity,
    describe_criteria,
    thought_budget,
)
from tests.utils import make_tool, sample_catalog


@pytest.fixture
def analyzer():
    return SequentialAnalyzer()


class TestThoughtBudget:
    def test_base_budget(self):
        assert thought_budget("read a file", [make_tool("a"), make_tool("b")]) == 5

    def test_long_problem_and_many_tools(self):
        tools = [make_tool(f"t{i}") for i in range(6)]
        assert thought_budget("x" * 250, tools) == 8

    def test_everything_adds_up(self):
        tools = [make_tool(f"t{i}", complexity=6) for i in range(11)]
        assert thought_budget("x" * 600, tools) == 13


class TestProblemComplexity:
    @pytest.mark.parametrize(
        "problem, tier",
        [
            ("read a file", "low"),
            ("analyze this log", "medium"),
            ("x" * 151, "medium"),
            ("a complex analysis across multiple servers, analyze it", "high"),
            ("y" * 301, "high"),
        ],
    )
    def test_tiers(self, problem, tier):
        assert assess_problem_complexity(problem) == tier


class TestAnalyzeWorkflow:
    def test_disabled_analyzer_refuses(self):
        analyzer = SequentialAnalyzer(enabled=False)
        assert not analyzer.is_available()
        with pytest.raises(FeatureUnavailableError):
            analyzer.analyze_workflow("read file", sample_catalog())

    def test_thought_structure(self, analyzer):
        result = analyzer.analyze_workflow("read file", sample_catalog(), seed=7)
        assert [t.number for t in result.thoughts] == list(range(1, 7))
        assert [t.type for t in result.thoughts] == [
            "analysis",
            "categorization",
            "optimization",
            "planning",
            "categorization",
            "evaluation",
        ]
        assert result.seed == 7

    def test_max_thoughts_caps_budget(self, analyzer):
        result = analyzer.analyze_workflow("read file", sample_catalog(), max_thoughts=3)
        assert [t.type for t in result.thoughts] == ["analysis", "categorization", "evaluation"]
        assert result.confidence == pytest.approx(0.85)

        single = analyzer.analyze_workflow("read file", sample_catalog(), max_thoughts=1)
        assert [t.type for t in single.thoughts] == ["analysis"]

    def test_seed_makes_output_reproducible(self, analyzer):
        tools = sample_catalog()
        first = analyzer.analyze_workflow("read file", tools, seed=42, creative=True)
        second = analyzer.analyze_workflow("read file", tools, seed=42, creative=True)
        assert first.thoughts == second.thoughts
        assert first.analysis == second.analysis
        assert first.reasoning == second.reasoning
        assert [[t.name for t in r.tools] for r in first.suggestions] == [
            [t.name for t in r.tools] for r in second.suggestions
        ]

    def test_analysis(self, analyzer):
        result = analyzer.analyze_workflow(
            "read file", sample_catalog(), OptimizationCriteria(prioritize_speed=True)
        )
        analysis = result.analysis
        assert analysis.problem_complexity == "low"
        assert analysis.tool_availability == 8
        assert analysis.recommended_approach == "fast"
        assert analysis.key_insights[-1] == "Available tools span 5 different MCP servers"
        assert len(analysis.potential_challenges) == 5

    def test_suggestions(self, analyzer):
        criteria = OptimizationCriteria(prioritize_simplicity=True)
        result = analyzer.analyze_workflow("read file", sample_catalog(), criteria)
        assert [r.name for r in result.suggestions] == ["Simple", "Alternative"]

        few = analyzer.analyze_workflow("read file", sample_catalog()[:3], criteria)
        assert [r.name for r in few.suggestions] == ["Simple"]

    def test_confidence(self, analyzer):
        five = analyzer.analyze_workflow("read file", sample_catalog()[:2])
        assert len(five.thoughts) == 5
        assert five.confidence == pytest.approx(0.95)

        six = analyzer.analyze_workflow("read file", sample_catalog())
        assert six.confidence == pytest.approx(1.0)

    def test_reasoning(self, analyzer):
        result = analyzer.analyze_workflow("read file", sample_catalog())
        assert result.reasoning.startswith("Sequential thinking analysis (analysis, categorization")
        assert result.reasoning.endswith("Recommended approach: comprehensive using MCP tools.")

    def test_creative_mode_converges(self, analyzer):
        result = analyzer.analyze_workflow("read file", sample_catalog(), creative=True, seed=1)
        contents = [t.content for t in result.thoughts]
        assert len(contents) == 6
        assert contents[0].startswith("REVERSE ENGINEERING")
        assert contents[-3].startswith("PATTERN RECOGNITION")
        assert contents[-2].startswith("CREATIVE SYNTHESIS")
        assert contents[-1].startswith("INNOVATION VALIDATION")

    def test_empty_catalog(self, analyzer):
        result = analyzer.analyze_workflow("read file", [])
        assert result.suggestions == []
        assert result.analysis.tool_availability == 0


def test_describe_criteria():
    assert describe_criteria(OptimizationCriteria()) == "no specific criteria"
    assert describe_criteria(
        OptimizationCriteria(prioritize_speed=True, max_complexity=4)
    ) == "prioritize speed; max complexity 4"
