import os
from collections.abc import AsyncGenerator, Sequence
from types import SimpleNamespace
from typing import Any, overload
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from githubkit.exception import RequestFailed as GitHubKitRequestFailed
from githubkit.github import GitHub
from pydantic import BaseModel

from github_analyst.agent.messages import InMemoryMessageStore
from github_analyst.agent.progress import InMemoryProgressTracker
from github_analyst.clients.github import GitHubAnalystClient, get_githubkit_client
from github_analyst.clients.models.github import RepositoryContext, RepositoryMetadata
from github_analyst.providers.base import ModelTurn, ProviderSession
from github_analyst.tools.results import ToolInvocation, ToolResult

requires_github_token = pytest.mark.skipif(
    not (os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PERSONAL_ACCESS_TOKEN")), reason="GITHUB_TOKEN is not set"
)


@pytest.fixture
async def githubkit_client() -> AsyncGenerator[GitHub[Any], Any]:
    githubkit_client = get_githubkit_client()

    async with githubkit_client:
        yield githubkit_client


# Mocked GitHub


def githubkit_response(parsed_data: Any, headers: dict[str, str] | None = None) -> SimpleNamespace:  # pyright: ignore[reportAny]
    """Stand in for a githubkit Response: the client only reads `parsed_data` and `headers`."""
    return SimpleNamespace(parsed_data=parsed_data, headers=httpx.Headers(headers or {}))


def request_failed(status_code: int, path: str) -> GitHubKitRequestFailed:
    """A githubkit RequestFailed error for a request to a path, without going through the network."""

    error: GitHubKitRequestFailed = GitHubKitRequestFailed.__new__(GitHubKitRequestFailed)
    error.request = httpx.Request("GET", f"https://api.github.com{path}")
    error.response = SimpleNamespace(status_code=status_code)  # pyright: ignore[reportAttributeAccessIssue]
    return error


@pytest.fixture
def mock_githubkit() -> MagicMock:
    """A githubkit client where every REST method must be given a return value (or side effect) by the test."""
    return MagicMock()


@pytest.fixture
def mocked_github_client(mock_githubkit: MagicMock) -> GitHubAnalystClient:
    return GitHubAnalystClient(githubkit_client=mock_githubkit)


def set_rest_response(mock_githubkit: MagicMock, path: str, parsed_data: Any, headers: dict[str, str] | None = None) -> AsyncMock:  # pyright: ignore[reportAny]
    """Make a REST method, e.g. `repos.async_get`, return the given data."""

    namespace, method = path.split(".")

    async_mock = AsyncMock(return_value=githubkit_response(parsed_data=parsed_data, headers=headers))

    setattr(getattr(mock_githubkit.rest, namespace), method, async_mock)

    return async_mock


# Fake providers


class ScriptedSession(ProviderSession):
    """A provider session that replays a list of model turns and records what it was sent."""

    turns: list[ModelTurn]
    user_messages: list[str]
    fed_back: list[list[ToolResult]]

    def __init__(self, turns: Sequence[ModelTurn]):
        super().__init__(model_id="fake-model", system_prompt="", declarations=[])
        self.turns = list(turns)
        self.user_messages = []
        self.fed_back = []

    async def converse_turn(self, user_message: str) -> ModelTurn:
        self.user_messages.append(user_message)
        return self.turns.pop(0)

    async def continue_with_tool_results(self, results: list[ToolResult]) -> ModelTurn:
        self.fed_back.append(results)
        return self.turns.pop(0)


class EndlessToolSession(ProviderSession):
    """A provider session whose model never stops asking for tools."""

    converse_turns: int
    continue_turns: int

    def __init__(self):
        super().__init__(model_id="fake-model", system_prompt="", declarations=[])
        self.converse_turns = 0
        self.continue_turns = 0

    def _next_turn(self) -> ModelTurn:
        index: int = self.converse_turns + self.continue_turns
        return ModelTurn(
            assistant_text=f"still working {index}",
            tool_invocations=[ToolInvocation(call_id=f"call-{index}", tool_name="getLanguages", arguments={"owner": "acme", "repo": "widgets"})],
        )

    async def converse_turn(self, user_message: str) -> ModelTurn:  # noqa: ARG002
        self.converse_turns += 1
        return self._next_turn()

    async def continue_with_tool_results(self, results: list[ToolResult]) -> ModelTurn:  # noqa: ARG002
        self.continue_turns += 1
        return self._next_turn()


@pytest.fixture
def progress_tracker() -> InMemoryProgressTracker:
    return InMemoryProgressTracker()


@pytest.fixture
def message_store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def acme_widgets() -> RepositoryContext:
    return RepositoryContext(
        owner="acme",
        name="widgets",
        full_name="acme/widgets",
        metadata=RepositoryMetadata(stars=1200, forks=80, language="Python", open_issues=14, contributor_count=2),
    )


# E2E Test Data


class E2ERepository(BaseModel):
    owner: str
    repo: str


@pytest.fixture
def e2e_repository() -> E2ERepository:
    """Points to the github-issues-e2e-test repository."""
    return E2ERepository(owner="strawgate", repo="github-issues-e2e-test")


@pytest.fixture
def e2e_missing_repository() -> E2ERepository:
    """Points to a missing repository."""
    return E2ERepository(owner="strawgate", repo="missing")


def handle_exclude_keys(dictionary: dict[str, Any], exclude_keys: list[str] | None = None) -> dict[str, Any]:
    if exclude_keys is None:
        return dictionary
    return {key: value for key, value in dictionary.items() if key not in exclude_keys}


@overload
def dump_for_snapshot(
    basemodel: None,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> None: ...


@overload
def dump_for_snapshot(
    basemodel: BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any]: ...


def dump_for_snapshot(
    basemodel: None | BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any] | None:
    if basemodel is None:
        return None

    return handle_exclude_keys(basemodel.model_dump(exclude_none=exclude_none, **dump_kwargs), exclude_keys)


def dump_list_for_snapshot(
    basemodel: None | Sequence[BaseModel],
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> list[dict[str, Any]]:
    if basemodel is None:
        return []

    return [dump_for_snapshot(item, exclude_keys, exclude_none, **dump_kwargs) for item in basemodel]
