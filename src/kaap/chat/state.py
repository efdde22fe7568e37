"""Chat state models shared with the browser client.

Field names serialize to the camelCase keys the UI stores.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ClientModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
        extra="ignore",
    )


class MessageMetadata(_ClientModel):
    """Per-message annotations: usage on success, error details on failure."""

    model: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    error: bool | None = None
    warning: bool | None = None
    error_message: str | None = None
    error_code: str | None = None
    error_description: str | None = None
    attempted_text: str | None = None
    error_model: str | None = None
    error_provider: str | None = None


class MessagePart(_ClientModel):
    type: str = "text"
    text: str | None = None


class UIMessage(_ClientModel):
    """Message as the UI sends it: text parts or a plain content string."""

    id: str | None = None
    role: Literal["system", "user", "assistant"]
    parts: list[MessagePart] = Field(default_factory=list)
    content: str | None = None
    metadata: MessageMetadata | None = None


class Attachment(_ClientModel):
    """File attached to a submission.

    Text files contribute the selected line range to the message; images
    are passed along separately.
    """

    name: str
    type: Literal["text", "image"] = "text"
    content: str = ""
    start_line: int = 1
    end_line: int | None = None
    included: bool = True

    @property
    def line_count(self) -> int:
        return len(self.content.split("\n"))


class ChatFolder(_ClientModel):
    id: str
    name: str


class ChatSession(_ClientModel):
    """One conversation with its per-chat memory and pinned facts."""

    id: str
    name: str
    folder_id: str | None = None
    messages: list[UIMessage] = Field(default_factory=list)
    created_at: int = 0
    memory: str | None = None
    pinned_facts: str | None = None
    private_notes: str | None = None


class ModelProfile(_ClientModel):
    """Per-model sampling overrides and fallback list."""

    temperature: float | None = None
    top_p: float | None = None
    fallbacks: list[str] = Field(default_factory=list)
