"""Tests for conversation models."""
import pytest
from pydantic import ValidationError

from chatstream.models import (
    Attachment,
    Conversation,
    ExtendedContent,
    Message,
    MessageRole,
    ToolCall,
    Usage,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def conversation():
    conversation = Conversation(title="Weather")
    conversation.system("You are terse.")
    conversation.user("What is the weather in Paris?")
    conversation.assistant("Sunny.")
    return conversation


class TestMessage:
    """Test Message invariants."""

    def test_role_cannot_be_reassigned(self):
        message = Message(role=MessageRole.USER, content="hi")

        with pytest.raises(ValidationError):
            message.role = MessageRole.ASSISTANT

    def test_content_is_mutable(self):
        message = Message(role=MessageRole.USER, content="hi")
        message.content = "hello"
        assert message.content == "hello"

    def test_ids_are_unique(self):
        assert Message(role="user", content="a").id != Message(role="user", content="b").id


class TestAttachment:
    """Test attachment part conversion."""

    def test_inline_image(self):
        part = Attachment.from_png("aGVsbG8=").to_part()
        assert part == {"type": "image_url", "image_url": {"url": "data:image/png;base64,aGVsbG8="}}

    def test_remote_image(self):
        part = Attachment.from_image_url("https://x.test/a.jpg").to_part()
        assert part == {"type": "image_url", "image_url": {"url": "https://x.test/a.jpg"}}

    def test_pdf_document(self):
        part = Attachment.from_pdf("JVBERi0=").to_part()
        assert part == {"type": "document", "document": {"data": "JVBERi0=", "mime_type": "application/pdf"}}


class TestConversation:
    """Test Conversation operations."""

    def test_append_order_and_count(self, conversation):
        assert [m.role for m in conversation.messages] == [
            MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT,
        ]
        assert conversation.metadata.message_count == 3
        assert len(conversation) == 3

    def test_user_with_attachments(self):
        conversation = Conversation()

        message = conversation.user("Look", [Attachment.from_jpeg("abc=")])

        assert isinstance(message.content, ExtendedContent)
        assert message.content.attachments[0].mime_type == "image/jpeg"

    def test_tool_call_message(self):
        conversation = Conversation()
        message = conversation.tool_call(ToolCall(id="c1", name="lookup"))
        assert message.role == MessageRole.TOOL_CALL
        assert message.content.name == "lookup"

    def test_delete_message(self, conversation):
        target = conversation.messages[1]

        assert conversation.delete_message(target.id) is True
        assert conversation.delete_message(target.id) is False
        assert len(conversation) == 2
        assert conversation.metadata.message_count == 2

    def test_snapshot_is_deep_copy(self, conversation):
        """Test that mutating a snapshot never affects the conversation."""
        snapshot = conversation.snapshot()

        snapshot[2].content = "Rainy."
        snapshot.append(Message(role="user", content="extra"))

        assert conversation.messages[2].content == "Sunny."
        assert len(conversation) == 3

    def test_record_usage_accumulates(self, conversation):
        conversation.record_usage(Usage(total_tokens=10, total_cost=0.5))
        conversation.record_usage(Usage(total_tokens=5, total_cost=0.25))
        conversation.record_usage(None)

        assert conversation.metadata.total_tokens == 15
        assert conversation.metadata.total_cost == 0.75

    def test_clear_keeps_system_messages(self, conversation):
        """Test that clear() drops turns but keeps system instructions."""
        conversation.record_usage(Usage(total_tokens=10))

        conversation.clear()

        assert [m.role for m in conversation.messages] == [MessageRole.SYSTEM]
        assert conversation.metadata.message_count == 1
        assert conversation.metadata.total_tokens == 0

    def test_search_is_case_insensitive(self, conversation):
        results = conversation.search("PARIS")
        assert [m.role for m in results] == [MessageRole.USER]

    def test_stats(self, conversation):
        stats = conversation.stats()
        assert stats["message_count"] == 3
        assert stats["total_tokens"] == 0

    def test_to_markdown(self, conversation):
        conversation.tool_call(ToolCall(id="c1", name="lookup", input={"city": "Paris"}))

        markdown = conversation.to_markdown()

        assert markdown.startswith("## Weather")
        assert "### User\n\nWhat is the weather in Paris?" in markdown
        assert "### Assistant\n\nSunny." in markdown
        assert '"name":"lookup"' in markdown

    def test_export_import_preserves_messages(self, conversation):
        restored = Conversation.import_json(conversation.export_json())

        assert restored.id == conversation.id
        assert restored.title == "Weather"
        assert [(m.id, m.role, m.content) for m in restored.messages] == [
            (m.id, m.role, m.content) for m in conversation.messages
        ]
