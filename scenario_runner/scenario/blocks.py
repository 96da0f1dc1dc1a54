"""Block resolution for loop and conditional markers.

Scenarios keep loops and conditionals as flat ``*_start``/``*_end`` markers.
Before a run starts the step list is compiled once into a tuple of
``CompiledStep`` nodes that carry explicit jump indices, so the orchestrator
never re-scans for matching markers while executing.
"""

from dataclasses import dataclass, field
from typing import Optional

from ..errors import CompileError
from .schema import BLOCK_END_TYPES, BLOCK_PAIRS, BLOCK_START_TYPES, Step, ValidationError


@dataclass(frozen=True)
class CompiledStep:
    """A step plus its position and block links."""
    index: int
    step: Step
    # For *_start markers: index of the matching end. For *_end: the start.
    partner: Optional[int] = None
    # Index of the innermost enclosing block start, if any.
    parent: Optional[int] = None
    depth: int = 0


@dataclass
class BlockMap:
    """Matched marker pairs for a flat step list."""
    start_to_end: dict[int, int] = field(default_factory=dict)
    end_to_start: dict[int, int] = field(default_factory=dict)

    def end_of(self, start: int) -> int:
        return self.start_to_end[start]

    def start_of(self, end: int) -> int:
        return self.end_to_start[end]

    def __len__(self) -> int:
        return len(self.start_to_end)


def find_block_errors(steps: list[Step]) -> list[ValidationError]:
    """Check marker nesting without raising.

    Returns:
        One ValidationError per unmatched, crossed or mismatched marker.
    """
    errors: list[ValidationError] = []
    stack: list[int] = []

    for i, step in enumerate(steps):
        if step.type in BLOCK_START_TYPES:
            stack.append(i)
        elif step.type in BLOCK_END_TYPES:
            if not stack:
                errors.append(ValidationError(
                    path=f"steps[{i}]",
                    message=f"'{step.type}' has no matching start marker.",
                ))
                continue
            start = stack.pop()
            expected_end = BLOCK_PAIRS[steps[start].type]
            if step.type != expected_end:
                errors.append(ValidationError(
                    path=f"steps[{i}]",
                    message=(
                        f"'{step.type}' closes '{steps[start].type}' opened at "
                        f"steps[{start}]; expected '{expected_end}'. Blocks must not overlap."
                    ),
                ))

    for start in stack:
        errors.append(ValidationError(
            path=f"steps[{start}]",
            message=f"'{steps[start].type}' is never closed.",
        ))

    return errors


def resolve_blocks(steps: list[Step]) -> BlockMap:
    """Match every block start marker with its end marker.

    Args:
        steps: Flat, ordered scenario steps.

    Returns:
        BlockMap of matched indices.

    Raises:
        CompileError: If markers are unmatched, crossed or mismatched.
    """
    errors = find_block_errors(steps)
    if errors:
        raise CompileError("Invalid block structure", errors)

    block_map = BlockMap()
    stack: list[int] = []
    for i, step in enumerate(steps):
        if step.type in BLOCK_START_TYPES:
            stack.append(i)
        elif step.type in BLOCK_END_TYPES:
            start = stack.pop()
            block_map.start_to_end[start] = i
            block_map.end_to_start[i] = start
    return block_map


def compile_steps(steps: list[Step]) -> tuple[CompiledStep, ...]:
    """Compile a flat step list into nodes with explicit jump indices.

    Raises:
        CompileError: If the block structure is invalid.
    """
    block_map = resolve_blocks(steps)
    compiled: list[CompiledStep] = []
    stack: list[int] = []

    for i, step in enumerate(steps):
        if step.type in BLOCK_END_TYPES:
            stack.pop()
        parent = stack[-1] if stack else None
        partner = block_map.start_to_end.get(i, block_map.end_to_start.get(i))
        compiled.append(CompiledStep(
            index=i,
            step=step,
            partner=partner,
            parent=parent,
            depth=len(stack),
        ))
        if step.type in BLOCK_START_TYPES:
            stack.append(i)

    return tuple(compiled)
