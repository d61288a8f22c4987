import asyncio
import json
from types import SimpleNamespace
from typing import Any, override
from unittest.mock import MagicMock

import pytest
from inline_snapshot import snapshot

from github_analyst.agent.loop import DEFAULT_MAX_ITERATIONS, AnalysisRequest, RepositoryAnalyst, get_default_model_id, get_max_iterations
from github_analyst.agent.messages import InMemoryMessageStore
from github_analyst.agent.progress import InMemoryProgressTracker
from github_analyst.clients.github import GitHubAnalystClient
from github_analyst.clients.models.github import RepositoryContext
from github_analyst.providers.base import ModelTurn, ProviderError, ProviderKind, ProviderSession
from github_analyst.providers.factory import create_session
from github_analyst.tools.declarations import ToolDeclaration
from github_analyst.tools.registry import ToolRegistry
from github_analyst.tools.results import AuditEntry, ToolInvocation, ToolResult
from tests.conftest import EndlessToolSession, ScriptedSession, set_rest_response

TOP_CONTRIBUTORS_TABLE = json.dumps(
    {
        "type": "table",
        "data": {
            "title": "Top contributors",
            "headers": ["Login", "Contributions"],
            "rows": [["alice", 120], ["bob", 75]],
            "summary": "alice leads",
        },
    }
)


class RecordingProgressTracker(InMemoryProgressTracker):
    """Remembers every step an analysis reported, in order."""

    steps: list[str]

    def __init__(self):
        super().__init__()
        self.steps = []

    @override
    async def update(self, session_id: str, current_step: str, status: str = "analyzing") -> None:
        self.steps.append(current_step)
        await super().update(session_id=session_id, current_step=current_step, status=status)


class DelayedToolRegistry(ToolRegistry):
    """Echoes the label of tool calls (or their name) back after the delay given in their arguments, remembering the order they finished in."""

    finished: list[str]

    def __init__(self):
        super().__init__(github_client=MagicMock())
        self.finished = []

    @override
    async def execute(self, name: str, arguments: dict[str, Any]) -> Any:
        label: str = arguments.get("label", name)
        await asyncio.sleep(arguments.get("delay", 0))
        self.finished.append(label)
        return {"label": label}


def session_factory_for(session: ProviderSession):
    def session_factory(kind: ProviderKind, model_id: str, system_prompt: str, declarations: list[ToolDeclaration]) -> ProviderSession:  # noqa: ARG001
        return session

    return session_factory


def analysis_request(repository: RepositoryContext, query: str = "Who are the top contributors?", model_id: str | None = None) -> AnalysisRequest:
    return AnalysisRequest(session_id="session-1", query=query, repository=repository, model_id=model_id)


@pytest.fixture
def recording_progress() -> RecordingProgressTracker:
    return RecordingProgressTracker()


def test_settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("DEFAULT_MODEL_ID", raising=False)
    monkeypatch.delenv("AGENT_MAX_ITERATIONS", raising=False)

    assert get_default_model_id() == "gemini-2.0-flash"
    assert get_max_iterations() == DEFAULT_MAX_ITERATIONS

    monkeypatch.setenv("DEFAULT_MODEL_ID", "llama-3.3-70b-versatile")
    monkeypatch.setenv("AGENT_MAX_ITERATIONS", "3")

    assert get_default_model_id() == "llama-3.3-70b-versatile"
    assert get_max_iterations() == 3


async def test_top_contributors_table(
    mocked_github_client: GitHubAnalystClient,
    mock_githubkit: MagicMock,
    acme_widgets: RepositoryContext,
    recording_progress: RecordingProgressTracker,
    message_store: InMemoryMessageStore,
):
    list_contributors = set_rest_response(
        mock_githubkit,
        "repos.async_list_contributors",
        [
            SimpleNamespace(login="alice", contributions=120, avatar_url=None, html_url=None, type="User"),
            SimpleNamespace(login="bob", contributions=75, avatar_url=None, html_url=None, type="User"),
        ],
    )

    session = ScriptedSession(
        turns=[
            ModelTurn(
                tool_invocations=[
                    ToolInvocation(call_id="call-1", tool_name="getContributors", arguments={"owner": "acme", "repo": "widgets", "limit": 30.0})
                ]
            ),
            ModelTurn(assistant_text=TOP_CONTRIBUTORS_TABLE),
        ]
    )

    analyst = RepositoryAnalyst(
        registry=ToolRegistry(github_client=mocked_github_client),
        progress=recording_progress,
        messages=message_store,
        session_factory=session_factory_for(session),
    )

    result = await analyst.analyze(analysis_request(repository=acme_widgets))

    assert result.type == "table"
    assert result.data["rows"] == [["alice", 120], ["bob", 75]]
    assert result.tool_calls == [
        AuditEntry(name="getContributors", args={"owner": "acme", "repo": "widgets", "limit": 30.0}, result="success")
    ]

    assert list_contributors.await_args.kwargs["per_page"] == 30

    assert session.user_messages == snapshot(
        [
            """\
Repository: acme/widgets (owner: acme, repo: widgets)

Repository metadata:
- Stars: 1200
- Forks: 80
- Language: Python
- Open Issues: 14
- Contributors: 2

User question: Who are the top contributors?\
"""
        ]
    )

    fed_back: list[ToolResult] = session.fed_back[0]

    assert fed_back[0].payload == [
        {"login": "alice", "contributions": 120, "avatarUrl": None, "profileUrl": None, "type": "User"},
        {"login": "bob", "contributions": 75, "avatarUrl": None, "profileUrl": None, "type": "User"},
    ]

    assert recording_progress.steps == snapshot(
        [
            "🤖 Starting AI analysis",
            "💬 Processing your question",
            "👥 Fetching contributors",
            "🧠 Analyzing results",
            "✨ Generating response",
        ]
    )
    assert await recording_progress.get(session_id="session-1") is None

    messages = await message_store.list_messages(session_id="session-1")

    assert len(messages) == 1
    assert messages[0].content == "Table: Top contributors"
    assert messages[0].response.type == "table"
    assert messages[0].tool_calls == result.tool_calls


async def test_plain_answer_without_tools(acme_widgets: RepositoryContext, message_store: InMemoryMessageStore):
    session = ScriptedSession(turns=[ModelTurn(assistant_text="widgets is a Python library for widgets.")])

    analyst = RepositoryAnalyst(registry=DelayedToolRegistry(), messages=message_store, session_factory=session_factory_for(session))

    result = await analyst.analyze(analysis_request(repository=acme_widgets, query="What is this?"))

    assert result.type == "text"
    assert result.data == {"content": "widgets is a Python library for widgets."}
    assert result.tool_calls == []
    assert session.fed_back == []

    messages = await message_store.list_messages(session_id="session-1")

    assert messages[0].content == "widgets is a Python library for widgets."
    assert messages[0].tool_calls is None


async def test_tools_run_concurrently_and_results_keep_order(acme_widgets: RepositoryContext):
    registry = DelayedToolRegistry()

    session = ScriptedSession(
        turns=[
            ModelTurn(
                tool_invocations=[
                    ToolInvocation(call_id="call-a", tool_name="getCommits", arguments={"label": "a", "delay": 0}),
                    ToolInvocation(call_id="call-b", tool_name="getIssues", arguments={"label": "b", "delay": 0.05}),
                    ToolInvocation(call_id="call-c", tool_name="getBranches", arguments={"label": "c", "delay": 0}),
                ]
            ),
            ModelTurn(assistant_text="Done."),
        ]
    )

    analyst = RepositoryAnalyst(registry=registry, session_factory=session_factory_for(session))

    result = await analyst.analyze(analysis_request(repository=acme_widgets))

    assert registry.finished[-1] == "b"
    assert [tool_result.invocation.call_id for tool_result in session.fed_back[0]] == ["call-a", "call-b", "call-c"]
    assert [tool_result.payload for tool_result in session.fed_back[0]] == [{"label": "a"}, {"label": "b"}, {"label": "c"}]
    assert [audit_entry.name for audit_entry in result.tool_calls] == ["getCommits", "getIssues", "getBranches"]


async def test_iteration_ceiling(acme_widgets: RepositoryContext):
    session = EndlessToolSession()

    analyst = RepositoryAnalyst(registry=DelayedToolRegistry(), session_factory=session_factory_for(session))

    result = await analyst.analyze(analysis_request(repository=acme_widgets))

    assert session.converse_turns == 1
    assert session.continue_turns == DEFAULT_MAX_ITERATIONS
    assert len(result.tool_calls) == DEFAULT_MAX_ITERATIONS
    assert result.type == "text"
    assert result.data == {"content": f"still working {DEFAULT_MAX_ITERATIONS}"}


async def test_configured_iteration_ceiling(acme_widgets: RepositoryContext):
    session = EndlessToolSession()

    analyst = RepositoryAnalyst(registry=DelayedToolRegistry(), session_factory=session_factory_for(session), max_iterations=2)

    _ = await analyst.analyze(analysis_request(repository=acme_widgets))

    assert session.continue_turns == 2


async def test_unknown_tool_is_reported_to_the_model(acme_widgets: RepositoryContext, mocked_github_client: GitHubAnalystClient):
    session = ScriptedSession(
        turns=[
            ModelTurn(tool_invocations=[ToolInvocation(call_id="call-1", tool_name="getWeather", arguments={"city": "Paris"})]),
            ModelTurn(assistant_text="I cannot check the weather."),
        ]
    )

    analyst = RepositoryAnalyst(registry=ToolRegistry(github_client=mocked_github_client), session_factory=session_factory_for(session))

    result = await analyst.analyze(analysis_request(repository=acme_widgets))

    assert session.fed_back[0][0].payload == {"error": "Unknown tool: getWeather"}
    assert result.tool_calls == [AuditEntry(name="getWeather", args={"city": "Paris"}, result={"error": "Unknown tool: getWeather"})]


async def test_missing_credential(
    monkeypatch: pytest.MonkeyPatch,
    acme_widgets: RepositoryContext,
    recording_progress: RecordingProgressTracker,
    message_store: InMemoryMessageStore,
):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)

    analyst = RepositoryAnalyst(
        registry=DelayedToolRegistry(), progress=recording_progress, messages=message_store, session_factory=create_session
    )

    result = await analyst.analyze(analysis_request(repository=acme_widgets, model_id="llama-3.3-70b-versatile"))

    assert result.type == "text"
    assert "`GROQ_API_KEY`" in result.data["content"]
    assert result.tool_calls == []
    assert recording_progress.steps == []

    messages = await message_store.list_messages(session_id="session-1")

    assert messages[0].content == result.data["content"]


class RateLimitedSession(ProviderSession):
    def __init__(self):
        super().__init__(model_id="gemini-2.0-flash", system_prompt="", declarations=[])

    async def converse_turn(self, user_message: str) -> ModelTurn:  # noqa: ARG002
        raise ProviderError(message="Resource has been exhausted", status=429, retry_delay_seconds=90, model_id=self.model_id)

    async def continue_with_tool_results(self, results: list[ToolResult]) -> ModelTurn:  # noqa: ARG002
        raise NotImplementedError


async def test_rate_limit(acme_widgets: RepositoryContext, recording_progress: RecordingProgressTracker, message_store: InMemoryMessageStore):
    analyst = RepositoryAnalyst(
        registry=DelayedToolRegistry(),
        progress=recording_progress,
        messages=message_store,
        session_factory=session_factory_for(RateLimitedSession()),
    )

    result = await analyst.analyze(analysis_request(repository=acme_widgets, model_id="gemini-2.0-flash"))

    assert result.type == "text"
    assert "Rate Limit Reached" in result.data["content"]
    assert "**gemini-2.0-flash**" in result.data["content"]
    assert "Please try again in about 2 minutes." in result.data["content"]

    assert recording_progress.steps == ["🤖 Starting AI analysis", "💬 Processing your question"]
    assert await recording_progress.get(session_id="session-1") is None

    messages = await message_store.list_messages(session_id="session-1")

    assert len(messages) == 1
    assert messages[0].response.type == "text"


class BrokenResponseSession(ProviderSession):
    def __init__(self):
        super().__init__(model_id="gemini-2.0-flash", system_prompt="", declarations=[])

    async def converse_turn(self, user_message: str) -> ModelTurn:  # noqa: ARG002
        msg = "Could not decode the model response"
        raise ValueError(msg)

    async def continue_with_tool_results(self, results: list[ToolResult]) -> ModelTurn:  # noqa: ARG002
        raise NotImplementedError


async def test_unexpected_session_failure(
    acme_widgets: RepositoryContext, recording_progress: RecordingProgressTracker, message_store: InMemoryMessageStore
):
    analyst = RepositoryAnalyst(
        registry=DelayedToolRegistry(),
        progress=recording_progress,
        messages=message_store,
        session_factory=session_factory_for(BrokenResponseSession()),
    )

    result = await analyst.analyze(analysis_request(repository=acme_widgets, model_id="gemini-2.0-flash"))

    assert result.type == "text"
    assert result.data == {
        "content": "❌ **Error analyzing repository**\n\nCould not decode the model response\n\nPlease try again or rephrase your question."
    }
    assert await recording_progress.get(session_id="session-1") is None

    messages = await message_store.list_messages(session_id="session-1")

    assert [message.content for message in messages] == [result.data["content"]]


async def test_unparseable_final_answer(acme_widgets: RepositoryContext, message_store: InMemoryMessageStore):
    deeply_nested: str = '{"type": "table", "data": {"rows": ' + "[" * 100_000 + "]" * 100_000 + "}}"

    session = ScriptedSession(turns=[ModelTurn(assistant_text=deeply_nested)])

    analyst = RepositoryAnalyst(registry=DelayedToolRegistry(), messages=message_store, session_factory=session_factory_for(session))

    result = await analyst.analyze(analysis_request(repository=acme_widgets))

    assert result.type == "text"
    assert result.data == {"content": deeply_nested}
    assert len(await message_store.list_messages(session_id="session-1")) == 1
