"""Chat composition helpers.

Turn UI messages into provider messages, compose a submission from typed
text and attachments, and render multi-mode results as one message.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from kaap.llm.errors import EmptySubmissionError
from kaap.llm.schemas import ChatMessage
from kaap.services.schemas import MultiTurnResult

from .state import Attachment, UIMessage


def create_id() -> str:
    return str(uuid.uuid4())


def get_message_text(message: UIMessage) -> str:
    """Concatenated text parts, or the plain content when there are none."""
    text = "".join(part.text or "" for part in message.parts if part.type == "text")
    if text:
        return text
    return message.content or ""


def to_chat_messages(messages: Sequence[UIMessage]) -> list[ChatMessage]:
    """Convert UI messages to provider messages, dropping empty ones."""
    result: list[ChatMessage] = []
    for message in messages:
        text = get_message_text(message)
        if text:
            result.append(ChatMessage(role=message.role, content=text))
    return result


def validate_submission(text: str, attachments: Sequence[Attachment] = ()) -> None:
    """Reject a submission with no text and no attachments.

    Raises:
        EmptySubmissionError: Nothing to send
    """
    if not text.strip() and not attachments:
        raise EmptySubmissionError()


def _file_context(attachment: Attachment) -> str:
    lines = attachment.content.split("\n")
    line_count = attachment.line_count
    end_line = attachment.end_line if attachment.end_line is not None else line_count
    start = max(1, min(attachment.start_line, line_count))
    end = max(start, min(end_line, line_count))
    body = "\n".join(lines[start - 1 : end])
    return f"\n\n[File: {attachment.name} | Lines: {start}-{end}]\n{body}"


def compose_submission(text: str, attachments: Sequence[Attachment] = ()) -> str:
    """Build the user message text from typed text and attached files.

    Included text files are appended as labeled line ranges. A submission
    carrying only images gets a single space so the message is not empty.

    Raises:
        EmptySubmissionError: No text and no attachments
    """
    validate_submission(text, attachments)

    text_files = [a for a in attachments if a.included and a.type == "text"]
    has_images = any(a.included and a.type == "image" for a in attachments)

    file_context = "".join(_file_context(a) for a in text_files)
    full_text = f"{text}\n\nAttached files:{file_context}" if file_context else text

    if not full_text.strip() and has_images:
        full_text = " "
    return full_text


def render_multi_response(result: MultiTurnResult) -> str:
    """Markdown message showing each model's answer and the merged answer."""
    sections = ["### Model comparison"]
    for item in result.results:
        if item.text:
            sections.append(f"#### {item.model}\n{item.text}")
        else:
            sections.append(f"#### {item.model}\nError: {item.error or 'Unknown error'}")
    if result.merged_text:
        sections.append(f"### Merged\n{result.merged_text}")
    return "\n\n".join(sections)
