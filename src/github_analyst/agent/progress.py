from datetime import UTC, datetime
from typing import Protocol

from pydantic import BaseModel, Field

ANALYZING_STATUS = "analyzing"

STARTING_STEP = "🤖 Starting AI analysis"
PROCESSING_STEP = "💬 Processing your question"
ANALYZING_RESULTS_STEP = "🧠 Analyzing results"
GENERATING_RESPONSE_STEP = "✨ Generating response"


class Progress(BaseModel):
    """A snapshot of what an in-flight analysis is doing. Each update replaces the previous one."""

    session_id: str
    status: str
    current_step: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class ProgressTracker(Protocol):
    async def update(self, session_id: str, current_step: str, status: str = ANALYZING_STATUS) -> None: ...

    async def get(self, session_id: str) -> Progress | None: ...

    async def clear(self, session_id: str) -> None: ...


class InMemoryProgressTracker:
    """Keeps the latest progress of each session in memory."""

    progress: dict[str, Progress]

    def __init__(self):
        self.progress = {}

    async def update(self, session_id: str, current_step: str, status: str = ANALYZING_STATUS) -> None:
        self.progress[session_id] = Progress(session_id=session_id, status=status, current_step=current_step)

    async def get(self, session_id: str) -> Progress | None:
        return self.progress.get(session_id)

    async def clear(self, session_id: str) -> None:
        _ = self.progress.pop(session_id, None)
