"""Request schemas for API endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kaap.chat import UIMessage, to_chat_messages
from kaap.llm.schemas import ProviderCredentials
from kaap.services.schemas import (
    ChatTurnRequest,
    ConnectionTestRequest,
    InstructionContext,
    MultiTurnRequest,
)


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``.

    One payload serves all three actions; fields an action does not use
    are ignored. Keys are camelCase on the wire.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )

    action: Literal["chat", "test", "multi"] = Field(
        default="chat",
        description="chat (streamed, with fallback), test (connectivity) or multi (compare + merge)",
    )
    messages: list[UIMessage] = Field(default_factory=list)
    model: str | None = Field(default=None, description="Primary model (and multi merge target)")
    fallback_models: list[str] = Field(default_factory=list)
    models: list[str] = Field(default_factory=list, description="Models compared in multi mode")
    master_prompt: str | None = None
    model_system_prompt: str | None = None
    model_system_prompts: dict[str, str] = Field(default_factory=dict)
    memory: str | None = None
    pinned_facts: str | None = None
    mode: str | None = Field(default=None, description="Work mode")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    api_keys: ProviderCredentials | None = None

    def _context(self) -> dict[str, Any]:
        return InstructionContext(
            master_prompt=self.master_prompt,
            model_system_prompt=self.model_system_prompt,
            model_system_prompts=self.model_system_prompts,
            memory=self.memory,
            pinned_facts=self.pinned_facts,
            work_mode=self.mode,
        ).model_dump()

    def to_chat_turn(self) -> ChatTurnRequest:
        return ChatTurnRequest(
            **self._context(),
            messages=to_chat_messages(self.messages),
            model_id=self.model,
            fallback_model_ids=self.fallback_models,
            temperature=self.temperature,
            top_p=self.top_p,
            credentials=self.api_keys,
        )

    def to_connection_test(self) -> ConnectionTestRequest:
        return ConnectionTestRequest(
            **self._context(),
            model_id=self.model,
            credentials=self.api_keys,
        )

    def to_multi_turn(self) -> MultiTurnRequest:
        return MultiTurnRequest(
            **self._context(),
            model_ids=self.models,
            messages=to_chat_messages(self.messages),
            model_id=self.model,
            temperature=self.temperature,
            top_p=self.top_p,
            credentials=self.api_keys,
        )
