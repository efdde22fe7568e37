"""Chat state and message composition."""

from .helpers import (
    compose_submission,
    create_id,
    get_message_text,
    render_multi_response,
    to_chat_messages,
    validate_submission,
)
from .state import (
    Attachment,
    ChatFolder,
    ChatSession,
    MessageMetadata,
    MessagePart,
    ModelProfile,
    UIMessage,
)

__all__ = [
    "Attachment",
    "ChatFolder",
    "ChatSession",
    "MessageMetadata",
    "MessagePart",
    "ModelProfile",
    "UIMessage",
    "compose_submission",
    "create_id",
    "get_message_text",
    "render_multi_response",
    "to_chat_messages",
    "validate_submission",
]
