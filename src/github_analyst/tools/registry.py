from collections.abc import Awaitable, Callable, Sequence
from logging import Logger
from typing import Any

from fastmcp.utilities.logging import get_logger

from github_analyst.clients.errors.github import ResourceTypeMismatchError
from github_analyst.clients.github import GitHubAnalystClient
from github_analyst.clients.models.github import ToolPayload
from github_analyst.tools.arguments import (
    BranchesArguments,
    CommitDiffArguments,
    CommitsArguments,
    CompareBranchesArguments,
    ContributorsArguments,
    FileContentArguments,
    FileTreeArguments,
    IssuesArguments,
    LanguagesArguments,
    PullRequestDetailsArguments,
    PullRequestsArguments,
    RepositoryOverviewArguments,
    SearchCodeArguments,
    ToolArguments,
)
from github_analyst.tools.declarations import TOOL_DECLARATIONS, TOOL_DEFINITIONS_BY_NAME, ToolDeclaration

logger: Logger = get_logger(name=__name__)

ToolHandler = Callable[[Any], Awaitable[ToolPayload | Sequence[ToolPayload] | dict[str, Any]]]


class ToolRegistryMismatchError(Exception):
    """The declared tools and the tool handlers disagree."""

    def __init__(self, missing_handlers: set[str], missing_declarations: set[str]):
        super().__init__(f"Declared tools without a handler: {sorted(missing_handlers)}. Handlers without a declaration: {sorted(missing_declarations)}")


def serialize_payload(result: ToolPayload | Sequence[ToolPayload] | dict[str, Any]) -> Any:  # pyright: ignore[reportAny]
    if isinstance(result, ToolPayload):
        return result.to_payload()

    if isinstance(result, dict):
        return result

    return [item.to_payload() for item in result]


class ToolRegistry:
    """Declares the tools available to the model and runs them against GitHub."""

    github_client: GitHubAnalystClient
    handlers: dict[str, ToolHandler]

    def __init__(self, github_client: GitHubAnalystClient | None = None):
        self.github_client = github_client or GitHubAnalystClient()

        self.handlers = {
            "getRepositoryOverview": self._get_repository_overview,
            "getContributors": self._get_contributors,
            "getPullRequests": self._get_pull_requests,
            "getPullRequestDetails": self._get_pull_request_details,
            "getIssues": self._get_issues,
            "getCommits": self._get_commits,
            "getFileTree": self._get_file_tree,
            "getFileContent": self._get_file_content,
            "getCommitDiff": self._get_commit_diff,
            "compareBranches": self._compare_branches,
            "searchCode": self._search_code,
            "getBranches": self._get_branches,
            "getLanguages": self._get_languages,
        }

        declared_names: set[str] = {declaration.name for declaration in TOOL_DECLARATIONS}

        if declared_names != set(self.handlers):
            raise ToolRegistryMismatchError(
                missing_handlers=declared_names - set(self.handlers), missing_declarations=set(self.handlers) - declared_names
            )

    def declarations(self) -> list[ToolDeclaration]:
        return list(TOOL_DECLARATIONS)

    async def execute(self, name: str, arguments: dict[str, Any]) -> Any:  # pyright: ignore[reportAny]
        """Run a tool by name. Never raises: failures are returned as an object with an `error` key."""

        if (handler := self.handlers.get(name)) is None:
            logger.warning(f"Model requested unknown tool {name}")
            return {"error": f"Unknown tool: {name}"}

        arguments_model: type[ToolArguments] = TOOL_DEFINITIONS_BY_NAME[name].arguments_model

        try:
            tool_arguments: ToolArguments = arguments_model.model_validate(arguments)

            return serialize_payload(await handler(tool_arguments))
        except Exception as e:
            logger.warning(f"Tool {name} failed with arguments {arguments}: {e}")

            return {"error": f"Tool error: {e}"}

    async def _get_repository_overview(self, arguments: RepositoryOverviewArguments) -> ToolPayload:
        return await self.github_client.get_repository_overview(owner=arguments.owner, repo=arguments.repo)

    async def _get_contributors(self, arguments: ContributorsArguments) -> Sequence[ToolPayload]:
        return await self.github_client.list_contributors(owner=arguments.owner, repo=arguments.repo, limit=arguments.limit)

    async def _get_pull_requests(self, arguments: PullRequestsArguments) -> Sequence[ToolPayload]:
        return await self.github_client.list_pull_requests(
            owner=arguments.owner, repo=arguments.repo, state=arguments.state, limit=arguments.limit
        )

    async def _get_pull_request_details(self, arguments: PullRequestDetailsArguments) -> ToolPayload:
        return await self.github_client.get_pull_request_details(owner=arguments.owner, repo=arguments.repo, pr_number=arguments.pr_number)

    async def _get_issues(self, arguments: IssuesArguments) -> Sequence[ToolPayload]:
        return await self.github_client.list_issues(
            owner=arguments.owner, repo=arguments.repo, state=arguments.state, labels=arguments.labels, limit=arguments.limit
        )

    async def _get_commits(self, arguments: CommitsArguments) -> Sequence[ToolPayload]:
        return await self.github_client.list_commits(
            owner=arguments.owner, repo=arguments.repo, author=arguments.author, path=arguments.path, limit=arguments.limit
        )

    async def _get_file_tree(self, arguments: FileTreeArguments) -> ToolPayload:
        return await self.github_client.get_file_tree(owner=arguments.owner, repo=arguments.repo, path=arguments.path, branch=arguments.branch)

    async def _get_file_content(self, arguments: FileContentArguments) -> ToolPayload | dict[str, Any]:
        try:
            return await self.github_client.get_file_content(
                owner=arguments.owner, repo=arguments.repo, path=arguments.path, branch=arguments.branch
            )
        except ResourceTypeMismatchError as e:
            if e.actual_type == "directory":
                return {"error": "Path is a directory, not a file"}

            return {"error": "Path is not a file"}

    async def _get_commit_diff(self, arguments: CommitDiffArguments) -> ToolPayload:
        return await self.github_client.get_commit_diff(owner=arguments.owner, repo=arguments.repo, sha=arguments.sha)

    async def _compare_branches(self, arguments: CompareBranchesArguments) -> ToolPayload:
        return await self.github_client.compare_branches(owner=arguments.owner, repo=arguments.repo, base=arguments.base, head=arguments.head)

    async def _search_code(self, arguments: SearchCodeArguments) -> ToolPayload:
        return await self.github_client.search_code(
            owner=arguments.owner, repo=arguments.repo, query=arguments.query, extension=arguments.extension
        )

    async def _get_branches(self, arguments: BranchesArguments) -> ToolPayload:
        return await self.github_client.list_branches(owner=arguments.owner, repo=arguments.repo)

    async def _get_languages(self, arguments: LanguagesArguments) -> ToolPayload:
        return await self.github_client.get_languages(owner=arguments.owner, repo=arguments.repo)
