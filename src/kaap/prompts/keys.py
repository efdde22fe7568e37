"""Prompt key enums for type-safe prompt management."""

from enum import Enum


class InstructionPrompts(str, Enum):
    """Keys in instructions.yaml."""

    PERSONA = "persona"
    MODEL_TONES = "model_tones"
    WORK_MODES = "work_modes"
    CONTEXT_BLOCKS = "context_blocks"
    MERGE_PROMPT = "merge_prompt"
    TEST_PROMPT = "test_prompt"
