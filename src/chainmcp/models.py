"""Core data models shared by discovery, optimization and analysis.

Wire models serialize with camelCase keys (``serverName``, ``inputSchema``,
``estimatedComplexity``) and accept either camelCase or snake_case on input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ServerCapabilities(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    tools: bool = True
    resources: bool = False
    prompts: bool = False


class ServerDescriptor(WireModel):
    """Launch metadata for one tool-providing process."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    command: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    description: Optional[str] = None
    version: Optional[str] = None
    capabilities: ServerCapabilities = Field(default_factory=ServerCapabilities)


class ToolDescriptor(WireModel):
    """One invocable capability with its cost estimates."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)
    server_name: str
    category: str = "utility"
    estimated_complexity: int = Field(default=3, ge=1, le=10)
    estimated_duration: int = Field(default=500, gt=0)  # milliseconds
    dependencies: list[str] = Field(default_factory=list)


class OptimizationCriteria(WireModel):
    prioritize_speed: bool = False
    prioritize_simplicity: bool = False
    prioritize_reliability: bool = False
    max_complexity: Optional[int] = Field(default=None, ge=1, le=10)
    max_duration: Optional[int] = Field(default=None, gt=0)
    required_capabilities: list[str] = Field(default_factory=list)
    excluded_tools: list[str] = Field(default_factory=list)


class RouteCandidate(WireModel):
    """An ordered tool subset proposed for a task, with cost/confidence estimates."""

    id: str
    name: str
    description: str
    tools: list[ToolDescriptor]
    estimated_duration: int
    complexity: float = Field(ge=1, le=10)
    confidence: float = Field(ge=0, le=1)
    reasoning: str


class ChainAnalysisSummary(WireModel):
    total_tools_available: int
    average_complexity: float
    fastest_route: Optional[str] = None
    simplest_route: Optional[str] = None
    most_reliable_route: Optional[str] = None


class ToolChainAnalysis(WireModel):
    input: str
    available_tools: list[ToolDescriptor]
    suggested_routes: list[RouteCandidate]
    analysis: ChainAnalysisSummary


ThoughtType = Literal["analysis", "categorization", "optimization", "planning", "evaluation"]
StrategyName = Literal["simple", "fast", "comprehensive", "alternative"]


class SequentialThought(WireModel):
    number: int = Field(ge=1)
    content: str
    type: ThoughtType


class WorkflowAnalysis(WireModel):
    problem_complexity: Literal["low", "medium", "high"]
    tool_availability: int
    recommended_approach: Literal["simple", "fast", "comprehensive"]
    key_insights: list[str]
    potential_challenges: list[str]


class SequentialAnalysisResult(WireModel):
    thoughts: list[SequentialThought]
    analysis: WorkflowAnalysis
    suggestions: list[RouteCandidate]
    confidence: float = Field(ge=0, le=1)
    reasoning: str
    seed: Optional[int] = None


class ChainStep(WireModel):
    """One step of a caller-supplied tool chain. Fields are checked by chain validation."""

    id: Optional[str] = None
    server_name: Optional[str] = None
    tool_name: Optional[str] = None
    parameters: Any = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)
    output_mapping: dict[str, str] = Field(default_factory=dict)
    retry_on_failure: bool = False
    max_retries: Optional[int] = None


class ChainValidationResult(WireModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


@dataclass
class RetryPolicy:
    """Retry/backoff settings. Delays are in milliseconds."""
    max_retries: int = 3
    backoff_multiplier: float = 2.0
    initial_delay: float = 1000.0
    max_delay: float = 30000.0

    def delay_before(self, attempt: int) -> float:
        """Delay in ms before attempt ``attempt`` (attempt 0 never waits)."""
        if attempt <= 0:
            return 0.0
        return min(
            self.initial_delay * self.backoff_multiplier ** (attempt - 1),
            self.max_delay,
        )


@dataclass
class RequestRecord:
    timestamp: datetime
    operation: str
    duration: float  # milliseconds
    success: bool
    error: Optional[str] = None


@dataclass
class LastError:
    timestamp: datetime
    operation: str
    error: str


@dataclass
class ReliabilityMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0
    error_rate: float = 0.0
    uptime: float = 0.0  # milliseconds
    last_error: Optional[LastError] = None


@dataclass
class HealthReport:
    status: Literal["healthy", "degraded", "unhealthy"]
    message: str
    metrics: dict[str, Any] = field(default_factory=dict)
