"""Rule-table classification of tools into category, complexity and duration."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Protocol, TypeVar

from src.chainmcp.discovery_config import DiscoveryConfig, FallbackToolConfig
from src.chainmcp.models import ToolDescriptor
from src.utils.logger import get_logger

logger = get_logger("Classifier")

DEFAULT_CATEGORY = "utility"
DEFAULT_COMPLEXITY = 3
DEFAULT_DURATION = 500

MIN_COMPLEXITY = 1
MAX_COMPLEXITY = 10


class _Rule(Protocol):
    pattern: str


R = TypeVar("R", bound=_Rule)


def pattern_matches(pattern: str, text: str) -> bool:
    """True when any "|"-separated alternative of pattern is a substring of text."""
    return any(alt and alt in text for alt in pattern.lower().split("|"))


def _first_match(rules: Iterable[R], text: str) -> Optional[R]:
    for rule in rules:
        if pattern_matches(rule.pattern, text):
            return rule
    return None


def clamp_complexity(value: int) -> int:
    return max(MIN_COMPLEXITY, min(MAX_COMPLEXITY, int(value)))


def clamp_duration(value: int) -> int:
    return max(1, int(value))


class HeuristicClassifier:
    """
    Classifies tools with ordered rule tables. First matching rule wins.

    The text matched is ``name + " " + description``, lower-cased.
    """

    def __init__(self, config: Optional[DiscoveryConfig] = None):
        self.config = config or DiscoveryConfig()

    @staticmethod
    def _text(name: str, description: Optional[str]) -> str:
        return f"{name} {description or ''}".lower()

    def classify_category(self, name: str, description: Optional[str] = "") -> str:
        rule = _first_match(self.config.category_rules, self._text(name, description))
        return rule.category if rule else DEFAULT_CATEGORY

    def estimate_complexity(self, name: str, description: Optional[str] = "") -> int:
        rule = _first_match(self.config.complexity_rules, self._text(name, description))
        return clamp_complexity(rule.complexity if rule else DEFAULT_COMPLEXITY)

    def estimate_duration(self, name: str, description: Optional[str] = "") -> int:
        rule = _first_match(self.config.duration_rules, self._text(name, description))
        return clamp_duration(rule.duration if rule else DEFAULT_DURATION)

    def classify(self, name: str, description: Optional[str] = "") -> tuple[str, int, int]:
        """Return (category, complexity, duration) for one tool."""
        return (
            self.classify_category(name, description),
            self.estimate_complexity(name, description),
            self.estimate_duration(name, description),
        )

    def _matching_fallbacks(self, server_name: str) -> list[FallbackToolConfig]:
        matched = []
        for entry in self.config.fallback_tools:
            try:
                if re.search(entry.server_pattern, server_name, re.IGNORECASE):
                    matched.append(entry)
            except re.error as e:
                logger.warning(f"⚠️ Invalid fallback server pattern '{entry.server_pattern}': {e}")
        return matched

    def fallback_tools(self, server_name: str) -> list[ToolDescriptor]:
        """Canned tools for a server whose live query failed.

        Every matching pattern contributes its list, concatenated in table order.
        """
        tools: list[ToolDescriptor] = []
        for entry in self._matching_fallbacks(server_name):
            for definition in entry.tools:
                tools.append(
                    ToolDescriptor(
                        name=definition.name,
                        description=definition.description or f"Tool from {server_name}",
                        input_schema=definition.input_schema,
                        server_name=server_name,
                        category=definition.category,
                        estimated_complexity=clamp_complexity(definition.estimated_complexity),
                        estimated_duration=clamp_duration(definition.estimated_duration),
                    )
                )
        if tools:
            logger.debug(f"Using {len(tools)} fallback tools for {server_name}")
        return tools
