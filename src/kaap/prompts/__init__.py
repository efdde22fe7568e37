"""Prompt management and system instruction assembly."""

from .instructions import (
    WORK_MODE_ALIASES,
    SystemInstructionBuilder,
    WorkMode,
    parse_work_mode,
)
from .keys import InstructionPrompts
from .manager import PromptManager

__all__ = [
    "PromptManager",
    "InstructionPrompts",
    "SystemInstructionBuilder",
    "WorkMode",
    "WORK_MODE_ALIASES",
    "parse_work_mode",
]
