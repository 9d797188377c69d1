"""Discovery configuration schema and built-in defaults."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from src.chainmcp.models import ServerCapabilities, ServerDescriptor, WireModel


class ToolDefinition(WireModel):
    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)
    category: str = "utility"
    estimated_complexity: int = Field(default=3, ge=1, le=10)
    estimated_duration: int = Field(default=500, gt=0)


class FallbackToolConfig(WireModel):
    server_pattern: str  # regex, matched case-insensitively against the server name
    tools: list[ToolDefinition] = Field(default_factory=list)


class CategoryRule(WireModel):
    pattern: str  # "|"-separated substrings
    category: str
    description: str = ""


class ComplexityRule(WireModel):
    pattern: str
    complexity: int = Field(ge=1, le=10)
    description: str = ""


class DurationRule(WireModel):
    pattern: str
    duration: int = Field(gt=0)
    description: str = ""


def _path_schema(**props: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {k: {"type": "string", "description": v} for k, v in props.items()},
        "required": list(props)[:1],
    }


DEFAULT_CONFIG_PATHS = [
    "~/.cursor/mcp.json",
    "~/.config/mcp/servers.json",
    "~/.mcp/servers.json",
    "./mcp-servers.json",
    "./.mcp/servers.json",
]

DEFAULT_ESSENTIAL_SERVERS = [
    ServerDescriptor(
        name="sequential-thinking",
        command="npx",
        args=["-y", "@modelcontextprotocol/server-sequential-thinking"],
        description="Sequential thinking analysis MCP server",
        version="1.0.0",
        capabilities=ServerCapabilities(tools=True, resources=False, prompts=False),
    ),
]

DEFAULT_FALLBACK_TOOLS = [
    FallbackToolConfig(
        server_pattern="filesystem|file",
        tools=[
            ToolDefinition(
                name="read_file",
                description="Read contents of a file",
                input_schema=_path_schema(path="Path to the file"),
                category="filesystem",
                estimated_complexity=2,
                estimated_duration=100,
            ),
            ToolDefinition(
                name="write_file",
                description="Write content to a file",
                input_schema={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "Path to the file"},
                        "content": {"type": "string", "description": "Content to write"},
                    },
                    "required": ["path", "content"],
                },
                category="filesystem",
                estimated_complexity=3,
                estimated_duration=200,
            ),
            ToolDefinition(
                name="list_directory",
                description="List contents of a directory",
                input_schema=_path_schema(path="Path to the directory"),
                category="filesystem",
                estimated_complexity=2,
                estimated_duration=150,
            ),
        ],
    ),
    FallbackToolConfig(
        server_pattern="github",
        tools=[
            ToolDefinition(
                name="create_repository",
                description="Create a new GitHub repository",
                input_schema=_path_schema(
                    name="Repository name", description="Repository description"
                ),
                category="github",
                estimated_complexity=4,
                estimated_duration=2000,
            ),
            ToolDefinition(
                name="get_repository",
                description="Get information about a repository",
                input_schema={
                    "type": "object",
                    "properties": {
                        "owner": {"type": "string", "description": "Repository owner"},
                        "repo": {"type": "string", "description": "Repository name"},
                    },
                    "required": ["owner", "repo"],
                },
                category="github",
                estimated_complexity=3,
                estimated_duration=1000,
            ),
        ],
    ),
    FallbackToolConfig(
        server_pattern="search|web|google",
        tools=[
            ToolDefinition(
                name="web_search",
                description="Search the web for information",
                input_schema=_path_schema(query="Search query"),
                category="web",
                estimated_complexity=4,
                estimated_duration=2000,
            ),
        ],
    ),
    FallbackToolConfig(
        server_pattern="terminal",
        tools=[
            ToolDefinition(
                name="execute_command",
                description="Execute a terminal command",
                input_schema=_path_schema(
                    command="Command to execute", workingDirectory="Working directory"
                ),
                category="terminal",
                estimated_complexity=5,
                estimated_duration=1000,
            ),
        ],
    ),
    FallbackToolConfig(
        server_pattern="wikipedia",
        tools=[
            ToolDefinition(
                name="search_wikipedia",
                description="Search Wikipedia for articles",
                input_schema=_path_schema(query="Search query"),
                category="knowledge",
                estimated_complexity=3,
                estimated_duration=1500,
            ),
            ToolDefinition(
                name="get_wikipedia_page",
                description="Get content from a Wikipedia page",
                input_schema=_path_schema(title="Page title", lang="Language code"),
                category="knowledge",
                estimated_complexity=3,
                estimated_duration=1000,
            ),
        ],
    ),
    FallbackToolConfig(
        server_pattern="sequential-thinking|sequential",
        tools=[
            ToolDefinition(
                name="sequentialthinking",
                description="A detailed tool for dynamic and reflective problem-solving through thoughts",
                input_schema={
                    "type": "object",
                    "properties": {
                        "thought": {"type": "string"},
                        "nextThoughtNeeded": {"type": "boolean"},
                        "thoughtNumber": {"type": "number"},
                        "totalThoughts": {"type": "number"},
                    },
                    "required": ["thought", "nextThoughtNeeded", "thoughtNumber", "totalThoughts"],
                },
                category="analysis",
                estimated_complexity=5,
                estimated_duration=2000,
            ),
        ],
    ),
]

DEFAULT_COMPLEXITY_RULES = [
    ComplexityRule(pattern="read|get|list", complexity=2, description="Simple read operations"),
    ComplexityRule(pattern="write|create|update", complexity=3, description="Write operations"),
    ComplexityRule(pattern="search|find|query", complexity=4, description="Search operations"),
    ComplexityRule(pattern="execute|run|command", complexity=5, description="Command execution"),
    ComplexityRule(pattern="thinking|analysis|complex", complexity=6, description="Complex analysis"),
]

DEFAULT_DURATION_RULES = [
    DurationRule(pattern="read|get|list", duration=100, description="Fast read operations"),
    DurationRule(pattern="write|create|update", duration=200, description="Medium write operations"),
    DurationRule(pattern="search|find|query", duration=2000, description="Slow search operations"),
    DurationRule(pattern="execute|run|command", duration=1000, description="Medium command execution"),
    DurationRule(pattern="thinking|analysis", duration=1000, description="Analysis operations"),
]

DEFAULT_CATEGORY_RULES = [
    CategoryRule(pattern="file|directory|path", category="filesystem", description="File system operations"),
    CategoryRule(pattern="search|web|url", category="web", description="Web operations"),
    CategoryRule(pattern="github|repository|commit", category="github", description="GitHub operations"),
    CategoryRule(pattern="terminal|command|execute", category="terminal", description="Terminal operations"),
    CategoryRule(pattern="wikipedia|knowledge|article", category="knowledge", description="Knowledge operations"),
    CategoryRule(pattern="thinking|analysis|reason", category="analysis", description="Analysis operations"),
]


class DiscoveryConfig(WireModel):
    """Everything discovery needs: where to look, what to always add, how to classify."""

    config_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_CONFIG_PATHS))
    essential_servers: list[ServerDescriptor] = Field(
        default_factory=lambda: list(DEFAULT_ESSENTIAL_SERVERS)
    )
    fallback_tools: list[FallbackToolConfig] = Field(
        default_factory=lambda: list(DEFAULT_FALLBACK_TOOLS)
    )
    complexity_rules: list[ComplexityRule] = Field(
        default_factory=lambda: list(DEFAULT_COMPLEXITY_RULES)
    )
    duration_rules: list[DurationRule] = Field(
        default_factory=lambda: list(DEFAULT_DURATION_RULES)
    )
    category_rules: list[CategoryRule] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORY_RULES)
    )


def default_discovery_config() -> DiscoveryConfig:
    return DiscoveryConfig()
