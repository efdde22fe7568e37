"""Turn orchestration request/result models."""

from pydantic import BaseModel, ConfigDict, Field

from kaap.llm.schemas import ChatMessage, ProviderCredentials, UsageInfo


class InstructionContext(BaseModel):
    """User-supplied context folded into every system instruction."""

    model_config = ConfigDict(protected_namespaces=())

    master_prompt: str | None = None
    model_system_prompt: str | None = None
    model_system_prompts: dict[str, str] = Field(default_factory=dict)
    memory: str | None = None
    pinned_facts: str | None = None
    work_mode: str | None = None

    def system_prompt_for(self, model_id: str) -> str | None:
        """Per-model system prompt if present, else the request-level one."""
        if model_id in self.model_system_prompts:
            return self.model_system_prompts[model_id]
        return self.model_system_prompt


class ChatTurnRequest(InstructionContext):
    """Single-turn request with ordered fallback models."""

    messages: list[ChatMessage] = Field(default_factory=list)
    model_id: str | None = None
    fallback_model_ids: list[str] = Field(default_factory=list)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    credentials: ProviderCredentials | None = None


class ConnectionTestRequest(InstructionContext):
    """One-shot credential/model connectivity check."""

    model_id: str | None = None
    credentials: ProviderCredentials | None = None


class MultiTurnRequest(InstructionContext):
    """Parallel comparison of several models plus a merge pass.

    ``model_id`` names the primary model, which is also the merge target.
    """

    model_ids: list[str] = Field(default_factory=list)
    messages: list[ChatMessage] = Field(default_factory=list)
    model_id: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    credentials: ProviderCredentials | None = None


class TurnCompletion(BaseModel):
    """Metadata attached to the end of a served turn."""

    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class ConnectionTestResult(BaseModel):
    """Successful connectivity check."""

    model: str
    text: str


class ModelResult(BaseModel):
    """Outcome of one model in a multi-mode comparison."""

    model: str
    text: str | None = None
    error: str | None = None
    usage: UsageInfo | None = None


class MultiTurnResult(BaseModel):
    """Per-model comparison results plus the merged answer."""

    results: list[ModelResult]
    merged_text: str
