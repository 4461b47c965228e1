from dynamigrate.infrastructure.base import ApplyOutcome, InfrastructureTool
from dynamigrate.infrastructure.sam import SamCliTool, stack_state

__all__ = ["ApplyOutcome", "InfrastructureTool", "SamCliTool", "stack_state"]
