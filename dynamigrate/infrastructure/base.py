"""Interface to the declarative infrastructure tool."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from dynamigrate.core.exceptions import InfrastructureApplyError
from dynamigrate.core.tables import ReadinessState


@dataclass
class ApplyOutcome:
    """Result of applying a template to a stack.

    Attributes:
        template: Template that was applied
        stack_name: Target stack
        ok: Whether the tool reported success
        returncode: Exit status of the tool, if it ran
        output: Captured tool output
    """

    template: str
    stack_name: str
    ok: bool
    returncode: int | None = None
    output: str = ""

    def tail(self, lines: int = 20) -> str:
        return "\n".join(self.output.strip().splitlines()[-lines:])

    def raise_for_status(self) -> None:
        """Raise InfrastructureApplyError unless the apply succeeded."""
        if not self.ok:
            raise InfrastructureApplyError(
                self.template,
                self.stack_name,
                detail=self.tail() or None,
                returncode=self.returncode,
            )


@runtime_checkable
class InfrastructureTool(Protocol):
    """Operations the migration needs from the infrastructure tool."""

    stack_name: str
    required_tools: tuple[str, ...]

    async def apply(self, template: Path, parameters: dict[str, str]) -> ApplyOutcome:
        """Apply a template with parameter overrides."""
        ...

    async def describe_stack(self) -> ReadinessState:
        """Probe the stack."""
        ...

    async def delete_stack(self) -> bool:
        """Request stack deletion; False if there was no stack."""
        ...

    async def stack_outputs(self) -> dict[str, str]:
        """Stack outputs keyed by output name."""
        ...
