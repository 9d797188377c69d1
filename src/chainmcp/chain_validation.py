"""Static checks over a caller-supplied tool chain. Nothing is executed."""

from __future__ import annotations

from typing import Any, Iterable, Union

from src.chainmcp.models import ChainStep, ChainValidationResult, ToolDescriptor


def _label(step: ChainStep, index: int) -> str:
    return step.id or str(index)


def find_cycles(chain: list[ChainStep]) -> list[str]:
    """DFS over depends_on edges. Reports the edge that closes each cycle."""
    graph: dict[str, list[str]] = {}
    for step in chain:
        if step.id:
            graph[step.id] = list(step.depends_on)

    errors: list[str] = []
    done: set[str] = set()

    for root in graph:
        if root in done:
            continue
        on_stack = {root}
        stack = [(root, iter(graph[root]))]
        while stack:
            node, deps = stack[-1]
            dep = next(deps, None)
            if dep is None:
                stack.pop()
                on_stack.discard(node)
                done.add(node)
            elif dep in on_stack:
                errors.append(f"Circular dependency detected: {node} -> {dep}")
            elif dep not in done:
                on_stack.add(dep)
                stack.append((dep, iter(graph.get(dep, []))))
    return errors


def find_unavailable_tools(chain: list[ChainStep], available: Iterable[ToolDescriptor]) -> list[str]:
    available = list(available)
    by_server = {(t.server_name, t.name) for t in available}
    names = {t.name for t in available}

    errors = []
    for step in chain:
        if not step.tool_name:
            continue
        if step.server_name:
            found = (step.server_name, step.tool_name) in by_server
        else:
            found = step.tool_name in names
        if not found:
            errors.append(f"Tool '{step.tool_name}' is not available in server '{step.server_name}'")
    return errors


def find_reference_warnings(chain: list[ChainStep]) -> list[str]:
    ids = {step.id for step in chain if step.id}
    warnings = []
    for index, step in enumerate(chain):
        label = _label(step, index)
        if not isinstance(step.parameters, dict):
            warnings.append(f"Step {label}: parameters should be an object")
        for mapping in step.output_mapping.values():
            source = str(mapping).split(".")[0]
            if source not in ids:
                warnings.append(f"Step {label}: output mapping references non-existent step '{source}'")
        for dep in step.depends_on:
            if dep not in ids:
                warnings.append(f"Step {label}: depends on non-existent step '{dep}'")
    return warnings


def find_structural_errors(chain: list[ChainStep]) -> list[str]:
    if not chain:
        return ["Tool chain cannot be empty"]

    errors = []
    seen: set[str] = set()
    for index, step in enumerate(chain):
        if not step.id:
            errors.append(f"Step {index}: missing required field 'id'")
        else:
            if step.id in seen:
                errors.append(f"Step {step.id}: duplicate step ID")
            seen.add(step.id)
        label = _label(step, index)
        if not step.server_name:
            errors.append(f"Step {label}: missing required field 'serverName'")
        if not step.tool_name:
            errors.append(f"Step {label}: missing required field 'toolName'")
        if step.retry_on_failure and (step.max_retries is None or step.max_retries < 0):
            errors.append(f"Step {label}: retryOnFailure is true but maxRetries is not set or invalid")
    return errors


def validate_tool_chain(
    chain: list[Union[ChainStep, dict[str, Any]]],
    available_tools: Iterable[ToolDescriptor],
    check_circular_dependencies: bool = True,
    check_tool_availability: bool = True,
    check_parameter_compatibility: bool = True,
) -> ChainValidationResult:
    steps = [s if isinstance(s, ChainStep) else ChainStep.model_validate(s) for s in chain]
    errors: list[str] = []
    warnings: list[str] = []

    if check_circular_dependencies:
        errors.extend(find_cycles(steps))
    if check_tool_availability:
        errors.extend(find_unavailable_tools(steps, available_tools))
    if check_parameter_compatibility:
        warnings.extend(find_reference_warnings(steps))
    errors.extend(find_structural_errors(steps))

    return ChainValidationResult(valid=not errors, errors=errors, warnings=warnings)
