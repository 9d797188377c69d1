"""
Request models for the tools exposed by ChainingServer.

TOOL_REQUESTS maps each tool name to its request model and description. The
MCP input schema of a tool is generated from its model, and inbound arguments
are validated against the same model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Type

from pydantic import Field

from src.chainmcp.models import ChainStep, OptimizationCriteria, WireModel


class ListServersRequest(WireModel):
    pass


class AnalyzeToolsRequest(WireModel):
    server_name: Optional[str] = Field(default=None, description="Optional: filter by specific server name")
    category: Optional[str] = Field(default=None, description="Optional: filter by tool category")


class RouteSuggestionsRequest(WireModel):
    task: str = Field(description="The task or problem to solve")
    criteria: OptimizationCriteria = Field(
        default_factory=OptimizationCriteria, description="Optimization criteria"
    )


class SequentialAnalysisRequest(WireModel):
    problem: str = Field(description="The problem to analyze")
    criteria: OptimizationCriteria = Field(
        default_factory=OptimizationCriteria, description="Optimization criteria"
    )
    max_thoughts: int = Field(
        default=10, ge=1, le=20, description="Maximum number of thoughts for sequential analysis"
    )
    creative: bool = Field(default=False, description="Use creative thinking patterns")
    seed: Optional[int] = Field(default=None, description="Seed for reproducible phrasing")


class ToolChainAnalysisRequest(WireModel):
    input: str = Field(description="Input description for analysis")
    criteria: OptimizationCriteria = Field(
        default_factory=OptimizationCriteria, description="Optimization criteria"
    )


class ValidateToolChainRequest(WireModel):
    tool_chain: list[ChainStep] = Field(
        description="Tool chain steps with server name, tool name, parameters and dependencies"
    )
    check_circular_dependencies: bool = Field(default=True, description="Check for circular dependencies")
    check_tool_availability: bool = Field(default=True, description="Verify tools exist on their servers")
    check_parameter_compatibility: bool = Field(default=True, description="Check step references and parameters")


class ReliabilityHealthRequest(WireModel):
    pass


@dataclass(frozen=True)
class ToolSpec:
    request_model: Type[WireModel]
    description: str

    def input_schema(self) -> dict[str, Any]:
        return self.request_model.model_json_schema(by_alias=True)


TOOL_REQUESTS: dict[str, ToolSpec] = {
    "list_mcp_servers": ToolSpec(
        ListServersRequest,
        "List all discovered MCP servers and their capabilities",
    ),
    "analyze_tools": ToolSpec(
        AnalyzeToolsRequest,
        "Analyze available tools from discovered servers, optionally filtered by server or category",
    ),
    "generate_route_suggestions": ToolSpec(
        RouteSuggestionsRequest,
        "Generate ranked tool-chain routes for a task under optimization criteria",
    ),
    "analyze_with_sequential_thinking": ToolSpec(
        SequentialAnalysisRequest,
        "Analyze complex workflows using sequential thinking",
    ),
    "get_tool_chain_analysis": ToolSpec(
        ToolChainAnalysisRequest,
        "Get a detailed tool-chain analysis with fastest, simplest and most reliable routes",
    ),
    "validate_tool_chain": ToolSpec(
        ValidateToolChainRequest,
        "Validate tool chains for circular dependencies, tool availability and step references",
    ),
    "reliability_health": ToolSpec(
        ReliabilityHealthRequest,
        "Report reliability health status and request metrics",
    ),
}
