from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from github_analyst.clients.github import (
    DEFAULT_COMMITS_LIMIT,
    DEFAULT_CONTRIBUTORS_LIMIT,
    DEFAULT_ISSUES_LIMIT,
    DEFAULT_PULL_REQUESTS_LIMIT,
)

StateFilter = Literal["open", "closed", "all"]


class ToolArguments(BaseModel):
    """The arguments of a tool, as the model sends them. Field names are exposed in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    owner: str = Field(description="Repository owner/organization")
    repo: str = Field(description="Repository name")


class RepositoryOverviewArguments(ToolArguments):
    pass


class ContributorsArguments(ToolArguments):
    limit: int = Field(
        default=DEFAULT_CONTRIBUTORS_LIMIT, description=f"Maximum number of contributors to return (default: {DEFAULT_CONTRIBUTORS_LIMIT})"
    )


class PullRequestsArguments(ToolArguments):
    state: StateFilter = Field(default="all", description="Filter by PR state (default: all)")
    limit: int = Field(
        default=DEFAULT_PULL_REQUESTS_LIMIT, description=f"Maximum number of PRs to return (default: {DEFAULT_PULL_REQUESTS_LIMIT})"
    )


class PullRequestDetailsArguments(ToolArguments):
    pr_number: int = Field(description="Pull request number")


class IssuesArguments(ToolArguments):
    state: StateFilter = Field(default="all", description="Filter by issue state (default: all)")
    labels: str | None = Field(default=None, description="Comma-separated list of labels to filter by")
    limit: int = Field(default=DEFAULT_ISSUES_LIMIT, description=f"Maximum number of issues to return (default: {DEFAULT_ISSUES_LIMIT})")


class CommitsArguments(ToolArguments):
    author: str | None = Field(default=None, description="Filter by commit author username")
    path: str | None = Field(default=None, description="Filter by file path")
    limit: int = Field(default=DEFAULT_COMMITS_LIMIT, description=f"Maximum number of commits to return (default: {DEFAULT_COMMITS_LIMIT})")


class FileTreeArguments(ToolArguments):
    path: str = Field(default="", description="Path to a specific directory (default: root)")
    branch: str | None = Field(default=None, description="Branch name (default: the default branch)")


class FileContentArguments(ToolArguments):
    path: str = Field(description="Full path to the file (e.g., 'src/index.ts')")
    branch: str | None = Field(default=None, description="Branch name (default: the default branch)")


class CommitDiffArguments(ToolArguments):
    sha: str = Field(description="Commit SHA (can be short or full)")


class CompareBranchesArguments(ToolArguments):
    base: str = Field(description="Base branch or commit SHA")
    head: str = Field(description="Head branch or commit SHA to compare")


class SearchCodeArguments(ToolArguments):
    query: str = Field(description="Search query (code pattern or text to find)")
    extension: str | None = Field(default=None, description="Limit search to files with this extension (e.g., 'ts', 'py')")


class BranchesArguments(ToolArguments):
    pass


class LanguagesArguments(ToolArguments):
    pass
