import asyncio
import os
import re
from collections.abc import Awaitable, Callable, Sequence
from logging import Logger
from typing import TYPE_CHECKING, Any, Literal

from async_lru import alru_cache
from fastmcp.utilities.logging import get_logger
from githubkit import GitHub as GitHubKit
from githubkit.auth.token import TokenAuthStrategy
from githubkit.exception import GitHubException as GitHubKitGitHubException
from githubkit.exception import RequestFailed as GitHubKitRequestFailed
from githubkit.response import Response as GitHubKitResponse
from githubkit.retry import RetryChainDecision, RetryRateLimit, RetryServerError
from githubkit.utils import UNSET
from githubkit.versions.v2022_11_28.models import ContentFile as GitHubKitContentFile

from github_analyst.clients.errors.github import RequestError, ResourceNotFoundError, ResourceTypeMismatchError
from github_analyst.clients.models.github import (
    Branch,
    BranchComparison,
    BranchList,
    CodeSearchMatch,
    CodeSearchResult,
    CommitDiff,
    CommitSummary,
    Contributor,
    FileContent,
    FileTree,
    IssueSummary,
    LanguageBreakdown,
    PullRequestDetails,
    PullRequestSummary,
    RepositoryContext,
    RepositoryMetadata,
    RepositoryOverview,
)
from github_analyst.clients.utility import GITHUBKIT_RESPONSE_TYPE, extract_response

if TYPE_CHECKING:
    from githubkit.versions.v2022_11_28.models import FullRepository as GitHubKitFullRepository

logger: Logger = get_logger(name=__name__)

NOT_FOUND_ERROR = 404

ONE_HOUR_IN_SECONDS = 60 * 60

DEFAULT_CONTRIBUTORS_LIMIT = 30
DEFAULT_PULL_REQUESTS_LIMIT = 20
DEFAULT_ISSUES_LIMIT = 20
DEFAULT_COMMITS_LIMIT = 30
DEFAULT_PULL_REQUEST_FILES_LIMIT = 100
DEFAULT_COMMIT_DIFF_FILES_LIMIT = 50
DEFAULT_COMPARISON_COMMITS_LIMIT = 50
DEFAULT_COMPARISON_FILES_LIMIT = 100
DEFAULT_CODE_SEARCH_LIMIT = 20
DEFAULT_BRANCHES_LIMIT = 50

MAX_PER_PAGE = 100

LAST_PAGE_PATTERN = re.compile(r'page=(\d+)>; rel="last"')


def get_github_token() -> str | None:
    for env_var in ("GITHUB_TOKEN", "GITHUB_PERSONAL_ACCESS_TOKEN"):
        if token := os.environ.get(env_var):
            return token

    return None


def get_githubkit_client() -> GitHubKit[Any]:
    # Retry server errors up to 3 times
    retry_server_error = RetryServerError()

    # Retry rate limit errors up to 3 times
    retry_rate_limit = RetryRateLimit(max_retry=3)

    retry_chain = RetryChainDecision(
        retry_server_error,
        retry_rate_limit,
    )

    if token := get_github_token():
        return GitHubKit[TokenAuthStrategy](auth=TokenAuthStrategy(token=token), auto_retry=retry_chain)

    logger.warning("GITHUB_TOKEN or GITHUB_PERSONAL_ACCESS_TOKEN is not set, only public repositories are reachable at a lower rate limit")

    return GitHubKit(auto_retry=retry_chain)


def count_from_link_header(link_header: str | None, default: int) -> int:
    """Read the page number of the `last` relation from a Link header, which is the total when paging one item at a time."""

    if link_header and (match := LAST_PAGE_PATTERN.search(link_header)):
        return int(match.group(1))

    return default


class GitHubAnalystClient:
    """Reads repository data from GitHub and normalizes it into size-capped payloads for the model."""

    githubkit_client: GitHubKit[Any]
    logger: Logger

    log_requests: bool
    log_responses: bool
    log_on_error: bool

    def __init__(
        self,
        githubkit_client: GitHubKit[Any] | None = None,
        logger: Logger | None = None,
        log_requests: bool = True,
        log_responses: bool = False,
        log_on_error: bool = True,
    ):
        self.githubkit_client = githubkit_client or get_githubkit_client()
        self.logger = logger or get_logger(name=__name__)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.log_on_error = log_on_error

    def _get_loggers(
        self, log_request: bool | None = None, log_response: bool | None = None, log_on_error: bool | None = None
    ) -> tuple[Callable[[str], Any], Callable[[str], Any], Callable[[BaseException | str], Any]]:
        request_logger = self.logger.info if log_request or self.log_requests else self.logger.debug
        response_logger = self.logger.info if log_response or self.log_responses else self.logger.debug
        error_logger = self.logger.exception if log_on_error or self.log_on_error else self.logger.debug
        return request_logger, response_logger, error_logger

    async def _perform_rest_response[T: GITHUBKIT_RESPONSE_TYPE](
        self,
        action: str,
        log_request: bool | None = None,
        log_on_error: bool | None = None,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[T]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> GitHubKitResponse[T]:
        """Perform a request and return the raw response, for callers that need the response headers.

        Raises:
            ResourceNotFoundError: If the resource is not found.
            RequestError: If the request fails.
        """

        request_logger, _, error_logger = self._get_loggers(log_request=log_request, log_on_error=log_on_error)

        request_logger(f"Performing {action} with kwargs {request_args}")

        try:
            return await method(**request_args)
        except GitHubKitRequestFailed as e:
            if e.response.status_code == NOT_FOUND_ERROR:
                raise ResourceNotFoundError(action=action, resource=e.request.url.path) from e

            error_logger(f"RequestFailed error performing {action} with kwargs {request_args}: {e}")

            raise RequestError(action=action, message=str(e)) from e
        except GitHubKitGitHubException as e:
            error_logger(f"Error performing {action} with kwargs {request_args}: {e}")

            raise RequestError(action=action, message=str(e)) from e

    async def _perform_rest_request[T: GITHUBKIT_RESPONSE_TYPE](
        self,
        action: str,
        log_request: bool | None = None,
        log_response: bool | None = None,
        log_on_error: bool | None = None,
        *,
        method: Callable[..., Awaitable[GitHubKitResponse[T]]],
        **request_args: Any,  # pyright: ignore[reportAny]
    ) -> T:
        """Perform a request and extract the response.

        Args:
            action: The action being performed.
            log_request: Whether to log the request.
            log_response: Whether to log the response.
            log_on_error: Whether to log on error.

        Raises:
            ResourceNotFoundError: If the resource is not found.
            RequestError: If the request fails.
        """

        _, response_logger, _ = self._get_loggers(log_response=log_response)

        response: GitHubKitResponse[T] = await self._perform_rest_response(
            action, log_request=log_request, log_on_error=log_on_error, method=method, **request_args
        )

        extracted_response = extract_response(response)

        response_logger(f"Extracted response for {action} with kwargs {request_args}: {extracted_response}")

        return extracted_response

    async def _get_full_repository(self, owner: str, repo: str) -> "GitHubKitFullRepository":
        return await self._perform_rest_request(
            action="Get repository",
            method=self.githubkit_client.rest.repos.async_get,
            owner=owner,
            repo=repo,
        )

    async def get_repository_overview(self, owner: str, repo: str) -> RepositoryOverview:
        """Get an overview of a repository: stats, language, description and metadata."""

        full_repository = await self._get_full_repository(owner=owner, repo=repo)

        return RepositoryOverview.from_full_repository(full_repository=full_repository)

    @alru_cache(maxsize=100, ttl=ONE_HOUR_IN_SECONDS)
    async def get_default_branch(self, owner: str, repo: str) -> str:
        """Get the default branch of a repository."""

        full_repository = await self._get_full_repository(owner=owner, repo=repo)

        return full_repository.default_branch

    async def get_repository_context(self, owner: str, repo: str) -> RepositoryContext:
        """Get the repository identity and a metadata snapshot, including the number of contributors."""

        full_repository = await self._get_full_repository(owner=owner, repo=repo)

        contributor_count: int = 0

        try:
            response = await self._perform_rest_response(
                action="Count contributors",
                log_on_error=False,
                method=self.githubkit_client.rest.repos.async_list_contributors,
                owner=owner,
                repo=repo,
                per_page=1,
            )
        except RequestError as e:
            self.logger.warning(f"Could not count contributors of {owner}/{repo}: {e}")
        else:
            contributor_count = count_from_link_header(response.headers.get("link"), default=len(response.parsed_data))

        return RepositoryContext(
            owner=owner,
            name=repo,
            full_name=full_repository.full_name,
            metadata=RepositoryMetadata(
                stars=full_repository.stargazers_count,
                forks=full_repository.forks_count,
                language=full_repository.language,
                open_issues=full_repository.open_issues_count,
                contributor_count=contributor_count,
            ),
        )

    async def list_contributors(self, owner: str, repo: str, limit: int = DEFAULT_CONTRIBUTORS_LIMIT) -> list[Contributor]:
        """List the contributors of a repository with their contribution counts."""

        contributors = await self._perform_rest_request(
            action="List contributors",
            method=self.githubkit_client.rest.repos.async_list_contributors,
            owner=owner,
            repo=repo,
            per_page=min(limit, MAX_PER_PAGE),
        )

        return [Contributor.from_contributor(contributor=contributor) for contributor in contributors[:limit]]

    async def list_pull_requests(
        self,
        owner: str,
        repo: str,
        state: Literal["open", "closed", "all"] = "all",
        limit: int = DEFAULT_PULL_REQUESTS_LIMIT,
    ) -> list[PullRequestSummary]:
        """List the most recently updated pull requests of a repository."""

        pull_requests = await self._perform_rest_request(
            action="List pull requests",
            method=self.githubkit_client.rest.pulls.async_list,
            owner=owner,
            repo=repo,
            state=state,
            sort="updated",
            direction="desc",
            per_page=min(limit, MAX_PER_PAGE),
        )

        return [PullRequestSummary.from_pull_request_simple(pull_request=pull_request) for pull_request in pull_requests[:limit]]

    async def get_pull_request_details(self, owner: str, repo: str, pr_number: int) -> PullRequestDetails:
        """Get a pull request along with its changed files and their (truncated) patches."""

        pull_request, diff_entries = await asyncio.gather(
            self._perform_rest_request(
                action="Get pull request",
                method=self.githubkit_client.rest.pulls.async_get,
                owner=owner,
                repo=repo,
                pull_number=pr_number,
            ),
            self._perform_rest_request(
                action="List pull request files",
                method=self.githubkit_client.rest.pulls.async_list_files,
                owner=owner,
                repo=repo,
                pull_number=pr_number,
                per_page=DEFAULT_PULL_REQUEST_FILES_LIMIT,
            ),
        )

        return PullRequestDetails.from_pull_request(pull_request=pull_request, diff_entries=list(diff_entries))

    async def list_issues(
        self,
        owner: str,
        repo: str,
        state: Literal["open", "closed", "all"] = "all",
        labels: str | None = None,
        limit: int = DEFAULT_ISSUES_LIMIT,
    ) -> list[IssueSummary]:
        """List the issues of a repository. Pull requests returned by the issues endpoint are left out."""

        issues = await self._perform_rest_request(
            action="List issues",
            method=self.githubkit_client.rest.issues.async_list_for_repo,
            owner=owner,
            repo=repo,
            state=state,
            labels=labels or UNSET,
            per_page=min(limit, MAX_PER_PAGE),
        )

        return [IssueSummary.from_issue(issue=issue) for issue in issues if not IssueSummary.is_pull_request(issue)][:limit]

    async def list_commits(
        self,
        owner: str,
        repo: str,
        author: str | None = None,
        path: str | None = None,
        limit: int = DEFAULT_COMMITS_LIMIT,
    ) -> list[CommitSummary]:
        """List the recent commits of a repository, optionally filtered by author or path."""

        commits = await self._perform_rest_request(
            action="List commits",
            method=self.githubkit_client.rest.repos.async_list_commits,
            owner=owner,
            repo=repo,
            author=author or UNSET,
            path=path or UNSET,
            per_page=min(limit, MAX_PER_PAGE),
        )

        return [CommitSummary.from_commit(commit=commit) for commit in commits[:limit]]

    async def get_file_tree(self, owner: str, repo: str, path: str = "", branch: str | None = None) -> FileTree:
        """List the files and directories at a path of a repository.

        Args:
            owner: The owner of the repository.
            repo: The name of the repository.
            path: The path of the directory. The root of the repository when empty.
            branch: The branch to list. The default branch when not provided.
        """

        if branch is None:
            branch = await self.get_default_branch(owner=owner, repo=repo)

        contents = await self._perform_rest_request(
            action="Get file tree",
            method=self.githubkit_client.rest.repos.async_get_content,
            owner=owner,
            repo=repo,
            path=path,
            ref=branch,
        )

        if not isinstance(contents, Sequence):
            raise ResourceTypeMismatchError(action="Get file tree", resource=path, expected_type="directory", actual_type="file")

        return FileTree.from_content_directory(path=path, branch=branch, items=list(contents))

    async def get_file_content(self, owner: str, repo: str, path: str, branch: str | None = None) -> FileContent:
        """Get the decoded content of a file.

        Args:
            owner: The owner of the repository.
            repo: The name of the repository.
            path: The path of the file.
            branch: The branch to read from. The default branch when not provided.
        """

        if branch is None:
            branch = await self.get_default_branch(owner=owner, repo=repo)

        content = await self._perform_rest_request(
            action="Get file content",
            method=self.githubkit_client.rest.repos.async_get_content,
            owner=owner,
            repo=repo,
            path=path,
            ref=branch,
        )

        if isinstance(content, Sequence):
            raise ResourceTypeMismatchError(action="Get file content", resource=path, expected_type="file", actual_type="directory")

        if not isinstance(content, GitHubKitContentFile):
            raise ResourceTypeMismatchError(action="Get file content", resource=path, expected_type="file", actual_type=content.type)

        return FileContent.from_content_file(content_file=content, branch=branch)

    async def get_commit_diff(self, owner: str, repo: str, sha: str, limit_files: int = DEFAULT_COMMIT_DIFF_FILES_LIMIT) -> CommitDiff:
        """Get the changes introduced by a single commit."""

        commit = await self._perform_rest_request(
            action="Get commit",
            method=self.githubkit_client.rest.repos.async_get_commit,
            owner=owner,
            repo=repo,
            ref=sha,
        )

        return CommitDiff.from_commit(commit=commit, limit_files=limit_files)

    async def compare_branches(
        self,
        owner: str,
        repo: str,
        base: str,
        head: str,
        limit_commits: int = DEFAULT_COMPARISON_COMMITS_LIMIT,
        limit_files: int = DEFAULT_COMPARISON_FILES_LIMIT,
    ) -> BranchComparison:
        """Compare two branches or commits."""

        comparison = await self._perform_rest_request(
            action="Compare branches",
            method=self.githubkit_client.rest.repos.async_compare_commits,
            owner=owner,
            repo=repo,
            basehead=f"{base}...{head}",
        )

        return BranchComparison.from_commit_comparison(comparison=comparison, limit_commits=limit_commits, limit_files=limit_files)

    async def search_code(
        self, owner: str, repo: str, query: str, extension: str | None = None, limit: int = DEFAULT_CODE_SEARCH_LIMIT
    ) -> CodeSearchResult:
        """Search the code of a repository."""

        query_parts: list[str] = [query, f"repo:{owner}/{repo}"]

        if extension:
            query_parts.append(f"extension:{extension}")

        search_results = await self._perform_rest_request(
            action="Search code",
            method=self.githubkit_client.rest.search.async_code,
            q=" ".join(query_parts),
            per_page=limit,
        )

        return CodeSearchResult(
            total_count=search_results.total_count,
            results=[
                CodeSearchMatch(filename=item.name, path=item.path, url=item.html_url) for item in search_results.items[:limit]
            ],
        )

    async def list_branches(self, owner: str, repo: str, limit: int = DEFAULT_BRANCHES_LIMIT) -> BranchList:
        """List the branches of a repository, marking the default branch."""

        branches, default_branch = await asyncio.gather(
            self._perform_rest_request(
                action="List branches",
                method=self.githubkit_client.rest.repos.async_list_branches,
                owner=owner,
                repo=repo,
                per_page=limit,
            ),
            self.get_default_branch(owner=owner, repo=repo),
        )

        return BranchList(
            default_branch=default_branch,
            branches=[
                Branch(name=branch.name, protected=branch.protected, is_default=branch.name == default_branch)
                for branch in branches[:limit]
            ],
        )

    async def get_languages(self, owner: str, repo: str) -> LanguageBreakdown:
        """Get the languages of a repository with their share of the code."""

        languages = await self._perform_rest_request(
            action="Get languages",
            method=self.githubkit_client.rest.repos.async_list_languages,
            owner=owner,
            repo=repo,
        )

        return LanguageBreakdown.from_byte_counts(byte_counts=languages.model_dump())

