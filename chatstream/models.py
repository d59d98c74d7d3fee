"""Conversation and streaming models."""
import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Roles a message can hold in a conversation."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"


class ChannelName(str, Enum):
    """Logical sub-streams of one response."""
    CONTENT = "content"
    THINKING = "thinking"
    USAGE = "usage"
    TOOL_CALLS = "tool_calls"
    BUFFERS = "buffers"


class Attachment(BaseModel):
    """Binary or remote payload sent alongside a user message."""
    type: str
    data: Optional[str] = None  # base64
    mime_type: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_jpeg(cls, data: str) -> "Attachment":
        return cls(type="image", data=data, mime_type="image/jpeg")

    @classmethod
    def from_png(cls, data: str) -> "Attachment":
        return cls(type="image", data=data, mime_type="image/png")

    @classmethod
    def from_pdf(cls, data: str) -> "Attachment":
        return cls(type="document", data=data, mime_type="application/pdf")

    @classmethod
    def from_image_url(cls, url: str) -> "Attachment":
        return cls(type="image", url=url)

    def to_part(self) -> Dict[str, Any]:
        """Generic part representation consumed by provider adapters."""
        if self.type == "document":
            return {
                "type": "document",
                "document": {"data": self.data, "mime_type": self.mime_type},
            }
        if self.data is not None:
            url = f"data:{self.mime_type};base64,{self.data}"
        else:
            url = self.url
        return {"type": "image_url", "image_url": {"url": url}}


class ExtendedContent(BaseModel):
    """User content with attachments."""
    type: str = "text"
    text: str
    attachments: List[Attachment] = Field(default_factory=list)


class ToolCall(BaseModel):
    """Function call requested by the model."""
    id: Optional[str] = None
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolDefinition(BaseModel):
    """Function the model may call."""
    name: str
    description: str = ""
    input_schema: Optional[Dict[str, Any]] = None


class Message(BaseModel):
    """Individual message in a conversation.

    ``content`` is plain text or a structured payload (ExtendedContent,
    ToolCall, or any JSON-compatible value). ``role`` cannot be reassigned.
    """
    id: str = Field(default_factory=_new_id)
    role: MessageRole = Field(frozen=True)
    content: Any
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UsageRecord(BaseModel):
    """Token counts as reported by the provider."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    thinking_tokens: int = 0


class Usage(UsageRecord):
    """Usage record with derived totals and cost."""
    local: bool = False
    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0


class ConversationMetadata(BaseModel):
    total_tokens: int = 0
    total_cost: float = 0.0
    message_count: int = 0


class Conversation(BaseModel):
    """Append-only ordered message history.

    A conversation owns its messages exclusively. Anything handed out for
    reading (snapshots, reconciled responses) is a deep copy.
    """
    id: str = Field(default_factory=_new_id)
    title: str = "New Chat"
    messages: List[Message] = Field(default_factory=list)
    metadata: ConversationMetadata = Field(default_factory=ConversationMetadata)
    created: datetime = Field(default_factory=_utcnow)
    updated: datetime = Field(default_factory=_utcnow)

    def __len__(self) -> int:
        return len(self.messages)

    def add_message(
        self,
        role: MessageRole,
        content: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        message = Message(role=role, content=content, metadata=metadata or {})
        self.messages.append(message)
        self.metadata.message_count += 1
        self.updated = _utcnow()
        return message

    def user(self, content: str, attachments: Optional[List[Attachment]] = None) -> Message:
        if attachments:
            return self.add_message(
                MessageRole.USER,
                ExtendedContent(text=content, attachments=list(attachments)),
            )
        return self.add_message(MessageRole.USER, content)

    def assistant(self, content: Any) -> Message:
        return self.add_message(MessageRole.ASSISTANT, content)

    def system(self, content: str) -> Message:
        return self.add_message(MessageRole.SYSTEM, content)

    def thinking(self, content: str) -> Message:
        return self.add_message(MessageRole.THINKING, content)

    def tool_call(self, tool: ToolCall) -> Message:
        return self.add_message(MessageRole.TOOL_CALL, tool)

    def delete_message(self, message_id: str) -> bool:
        for idx, message in enumerate(self.messages):
            if message.id == message_id:
                del self.messages[idx]
                self.metadata.message_count -= 1
                self.updated = _utcnow()
                return True
        return False

    def snapshot(self) -> List[Message]:
        """Deep copy of the current message list."""
        return [m.model_copy(deep=True) for m in self.messages]

    def record_usage(self, usage: Optional[Usage]) -> None:
        if usage is None:
            return
        self.metadata.total_tokens += usage.total_tokens
        self.metadata.total_cost += usage.total_cost
        self.updated = _utcnow()

    def clear(self) -> None:
        """Drop everything except system messages and reset the totals."""
        self.messages = [m for m in self.messages if m.role == MessageRole.SYSTEM]
        self.metadata = ConversationMetadata(message_count=len(self.messages))
        self.updated = _utcnow()

    def stats(self) -> Dict[str, Any]:
        return {
            "message_count": self.metadata.message_count,
            "total_tokens": self.metadata.total_tokens,
            "total_cost": self.metadata.total_cost,
            "created": self.created,
            "updated": self.updated,
        }

    def search(self, query: str) -> List[Message]:
        """Messages whose text content contains ``query`` (case-insensitive)."""
        needle = query.lower()
        return [
            m for m in self.messages
            if isinstance(m.content, str) and needle in m.content.lower()
        ]

    def to_markdown(self) -> str:
        lines = [
            f"## {self.title}",
            "",
            f"Created: {self.created.isoformat()}",
            f"Updated: {self.updated.isoformat()}",
            f"Messages: {self.metadata.message_count}",
            "",
        ]
        for message in self.messages:
            content = message.content
            if isinstance(content, BaseModel):
                content = content.model_dump_json()
            elif not isinstance(content, str):
                content = json.dumps(content)
            lines.extend([f"### {message.role.value.capitalize()}", "", content, ""])
        return "\n".join(lines)

    def export_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def import_json(cls, text: str) -> "Conversation":
        return cls.model_validate_json(text)


class StreamEvent(BaseModel):
    """One incremental event of a response stream.

    ``content`` is the channel delta, or the committed buffer map for the
    final ``buffers`` event.
    """
    type: str
    content: Any


class ModelInfo(BaseModel):
    """Model description returned by a provider's model listing."""
    model: str
    name: str
    max_input_tokens: int = 0
    max_output_tokens: int = 0
    supports_reasoning: bool = False
    supports_function_calling: bool = False
    supports_vision: bool = False


class ChatOptions(BaseModel):
    """Provider-neutral request handed to an adapter's build_wire_request."""
    model: str
    system: List[str] = Field(default_factory=list)
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    stream: bool = False
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    think: bool = False
    max_thinking_tokens: Optional[int] = None
    tools: Optional[List[ToolDefinition]] = None


class ReconciledResponse(BaseModel):
    """Final structured result of one request."""
    service_id: str
    options: Dict[str, Any] = Field(default_factory=dict)
    usage: Optional[Usage] = None
    content: Any = ""
    thinking: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    messages: List[Message] = Field(default_factory=list)
    aborted: bool = False
