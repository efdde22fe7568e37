"""Turn orchestration services."""

from .orchestrator import CandidateOutcome, TurnOrchestrator, TurnStream
from .schemas import (
    ChatTurnRequest,
    ConnectionTestRequest,
    ConnectionTestResult,
    InstructionContext,
    ModelResult,
    MultiTurnRequest,
    MultiTurnResult,
    TurnCompletion,
)

__all__ = [
    "TurnOrchestrator",
    "TurnStream",
    "CandidateOutcome",
    "InstructionContext",
    "ChatTurnRequest",
    "ConnectionTestRequest",
    "ConnectionTestResult",
    "MultiTurnRequest",
    "MultiTurnResult",
    "ModelResult",
    "TurnCompletion",
]
