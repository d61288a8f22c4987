from logging import Logger
from typing import Any

from fastmcp.server import FastMCP
from fastmcp.tools import Tool
from fastmcp.utilities.logging import get_logger

from github_analyst.agent.errors import describe_repository_error
from github_analyst.agent.loop import AnalysisRequest, AnalysisResult, RepositoryAnalyst
from github_analyst.agent.messages import AssistantMessage
from github_analyst.agent.progress import Progress
from github_analyst.clients.errors.github import RequestError
from github_analyst.clients.github import GitHubAnalystClient
from github_analyst.clients.models.github import RepositoryContext
from github_analyst.servers.annotations import FOCUS_CONTRIBUTORS, MODEL_ID, OWNER, QUERY, REPO, SESSION_ID
from github_analyst.tools.registry import ToolRegistry


def default_session_id(owner: str, repo: str) -> str:
    return f"{owner}/{repo}"


class AnalystServer:
    github_client: GitHubAnalystClient
    analyst: RepositoryAnalyst
    logger: Logger

    def __init__(
        self,
        github_client: GitHubAnalystClient | None = None,
        analyst: RepositoryAnalyst | None = None,
        logger: Logger | None = None,
    ):
        self.logger = logger or get_logger(name=__name__)
        self.github_client = github_client or GitHubAnalystClient()
        self.analyst = analyst or RepositoryAnalyst(registry=ToolRegistry(github_client=self.github_client))

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.analyze_repository))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.get_progress))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.list_messages))

        return fastmcp

    async def analyze_repository(
        self,
        owner: OWNER,
        repo: REPO,
        query: QUERY,
        session_id: SESSION_ID = None,
        focus_contributors: FOCUS_CONTRIBUTORS = None,
        model_id: MODEL_ID = None,
    ) -> AnalysisResult:
        """Answer a question about a GitHub repository. The answer is text, a diff, a chart, a table, or a mix of these,
        along with the tool calls made to produce it."""

        session_id = session_id or default_session_id(owner=owner, repo=repo)

        try:
            repository: RepositoryContext = await self.github_client.get_repository_context(owner=owner, repo=repo)
        except RequestError as e:
            self.logger.warning(f"Cannot analyze {owner}/{repo}: {e}")

            return await self.analyst.respond_with_error(session_id=session_id, content=describe_repository_error(error=e, owner=owner, repo=repo))

        self.logger.info(f"Analyzing {repository.full_name} with {model_id or 'the default model'}")

        return await self.analyst.analyze(
            AnalysisRequest(
                session_id=session_id,
                query=query,
                repository=repository,
                focus_contributors=focus_contributors,
                model_id=model_id,
            )
        )

    async def get_progress(self, owner: OWNER, repo: REPO, session_id: SESSION_ID = None) -> Progress | None:
        """Get the current step of an analysis in progress, or nothing when no analysis is running."""

        return await self.analyst.progress.get(session_id=session_id or default_session_id(owner=owner, repo=repo))

    async def list_messages(self, owner: OWNER, repo: REPO, session_id: SESSION_ID = None) -> list[AssistantMessage]:
        """List the answers given in a conversation, oldest first."""

        return await self.analyst.messages.list_messages(session_id=session_id or default_session_id(owner=owner, repo=repo))
