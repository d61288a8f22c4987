from collections import defaultdict
from datetime import UTC, datetime
from typing import Literal, Protocol

from pydantic import BaseModel, Field

from github_analyst.responses.classifier import StructuredResponse
from github_analyst.tools.results import AuditEntry


class AssistantMessage(BaseModel):
    """The stored answer to a question, along with the tool calls made to produce it."""

    session_id: str
    role: Literal["assistant"] = "assistant"
    content: str = Field(description="A plain-text summary of the response.")
    response: StructuredResponse
    tool_calls: list[AuditEntry] | None = Field(default=None, description="The tool calls made, or None when no tools were called.")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class MessageStore(Protocol):
    async def add_assistant_message(self, message: AssistantMessage) -> None: ...

    async def list_messages(self, session_id: str) -> list[AssistantMessage]: ...


class InMemoryMessageStore:
    """Keeps the messages of each session in memory, oldest first."""

    messages: defaultdict[str, list[AssistantMessage]]

    def __init__(self):
        self.messages = defaultdict(list)

    async def add_assistant_message(self, message: AssistantMessage) -> None:
        self.messages[message.session_id].append(message)

    async def list_messages(self, session_id: str) -> list[AssistantMessage]:
        return list(self.messages.get(session_id, []))
