"""System instruction assembly.

The instruction sent to a model is built from a fixed persona, a per-model
tone addendum, an optional work-mode addendum and optional delimited
context blocks. Later blocks are more specific and are read by the model
as overriding earlier ones, so the order below is fixed:

    persona, tone, work mode, master prompt, model system prompt,
    memory, pinned facts
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Any

from .keys import InstructionPrompts
from .manager import PromptManager

PROMPTS_FILE = "instructions"
DEFAULT_TONE_KEY = "default"


class WorkMode(str, Enum):
    """Named sampling/tone presets."""

    FAST = "fast"
    ANALYTICAL = "analytical"
    CREATIVE = "creative"
    ECONOMICAL = "economical"


# Mode names stored by earlier clients
WORK_MODE_ALIASES: dict[str, WorkMode] = {
    "szybki": WorkMode.FAST,
    "analityczny": WorkMode.ANALYTICAL,
    "kreatywny": WorkMode.CREATIVE,
    "oszczedny": WorkMode.ECONOMICAL,
}


def parse_work_mode(value: str | None) -> WorkMode | None:
    """Map a mode name (or legacy alias) to a WorkMode; None if unknown."""
    if not value:
        return None
    key = value.strip().lower()
    if key in WORK_MODE_ALIASES:
        return WORK_MODE_ALIASES[key]
    try:
        return WorkMode(key)
    except ValueError:
        return None


def _present(value: str | None) -> bool:
    return bool(value and value.strip())


class SystemInstructionBuilder:
    """Builds system instructions and multi-mode merge prompts."""

    def __init__(self, prompts: PromptManager | None = None) -> None:
        """Initialize the builder.

        Args:
            prompts: Prompt manager (defaults to the packaged prompts)
        """
        self.prompts = prompts or PromptManager()

    def _data(self, key: InstructionPrompts) -> Any:
        return self.prompts.get_data(PROMPTS_FILE, key)

    def tone_for(self, model_id: str) -> str:
        """Tone addendum for an exact model id, or the default tone."""
        tones: dict[str, str] = self._data(InstructionPrompts.MODEL_TONES)
        return str(tones.get(model_id) or tones[DEFAULT_TONE_KEY]).strip()

    def mode_addendum(self, work_mode: str | None) -> str | None:
        mode = parse_work_mode(work_mode)
        if mode is None:
            return None
        modes: dict[str, dict[str, Any]] = self._data(InstructionPrompts.WORK_MODES)
        entry = modes.get(mode.value)
        return str(entry["text"]).strip() if entry else None

    def mode_temperature(self, work_mode: str | None) -> float | None:
        """Default temperature for a work mode; None if unknown."""
        mode = parse_work_mode(work_mode)
        if mode is None:
            return None
        modes: dict[str, dict[str, Any]] = self._data(InstructionPrompts.WORK_MODES)
        entry = modes.get(mode.value)
        return float(entry["temperature"]) if entry else None

    def effective_temperature(
        self,
        profile_temperature: float | None,
        work_mode: str | None,
        fallback: float | None,
    ) -> float | None:
        """Per-model profile temperature, else the mode's, else ``fallback``."""
        if profile_temperature is not None:
            return profile_temperature
        mode_temperature = self.mode_temperature(work_mode)
        if mode_temperature is not None:
            return mode_temperature
        return fallback

    def build(
        self,
        model_id: str,
        master_prompt: str | None = None,
        model_system_prompt: str | None = None,
        memory: str | None = None,
        pinned_facts: str | None = None,
        work_mode: str | None = None,
    ) -> str:
        """Assemble the full system instruction for one model.

        Optional blocks are omitted entirely when absent or blank.

        Args:
            model_id: Normalized model id (selects the tone addendum)
            master_prompt: User-wide instructions
            model_system_prompt: System prompt for this model
            memory: Conversation memory
            pinned_facts: Pinned facts
            work_mode: Work mode name

        Returns:
            Instruction text
        """
        sections = [
            str(self._data(InstructionPrompts.PERSONA)).strip(),
            self.tone_for(model_id),
        ]

        mode_text = self.mode_addendum(work_mode)
        if mode_text:
            sections.append(mode_text)

        labels: dict[str, str] = self._data(InstructionPrompts.CONTEXT_BLOCKS)
        blocks = (
            ("master_prompt", master_prompt),
            ("model_system_prompt", model_system_prompt),
            ("memory", memory),
            ("pinned_facts", pinned_facts),
        )
        for key, body in blocks:
            if _present(body):
                sections.append(_delimited(labels[key], body or ""))

        return "\n\n".join(sections)

    def test_prompt(self) -> str:
        """Trivial prompt used for connectivity tests."""
        return str(self._data(InstructionPrompts.TEST_PROMPT)).strip()

    def build_merge_prompt(self, results: Sequence[Any]) -> str:
        """Prompt asking one model to reconcile several answers.

        Args:
            results: Objects with ``model``, ``text`` and ``error`` attributes

        Returns:
            Merge prompt listing every output or error, labeled by model id
        """
        return self.prompts.render(
            PROMPTS_FILE,
            InstructionPrompts.MERGE_PROMPT,
            results=list(results),
        )


def _delimited(label: str, body: str) -> str:
    header = f"=== {label} ==="
    return f"{header}\n{body}\n{'=' * len(header)}"
