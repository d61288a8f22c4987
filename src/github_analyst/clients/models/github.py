from datetime import datetime
from typing import Any, Self

from githubkit.utils import UNSET
from githubkit.versions.v2022_11_28.models import Commit as GitHubKitCommit
from githubkit.versions.v2022_11_28.models import CommitComparison as GitHubKitCommitComparison
from githubkit.versions.v2022_11_28.models import ContentDirectoryItems as GitHubKitContentDirectoryItems
from githubkit.versions.v2022_11_28.models import ContentFile as GitHubKitContentFile
from githubkit.versions.v2022_11_28.models import Contributor as GitHubKitContributor
from githubkit.versions.v2022_11_28.models import DiffEntry as GitHubKitDiffEntry
from githubkit.versions.v2022_11_28.models import FullRepository as GitHubKitFullRepository
from githubkit.versions.v2022_11_28.models import Issue as GitHubKitIssue
from githubkit.versions.v2022_11_28.models import PullRequest as GitHubKitPullRequest
from githubkit.versions.v2022_11_28.models import PullRequestSimple as GitHubKitPullRequestSimple
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from github_analyst.clients.utility import decode_content

DEFAULT_TRUNCATE_FILE_CHARACTERS = 50000
DEFAULT_TRUNCATE_PATCH_CHARACTERS = 10000
DEFAULT_TRUNCATE_COMPARISON_PATCH_CHARACTERS = 5000

PATCH_TRUNCATION_MARKER = "\n\n... [Diff truncated - file too large]"

LANGUAGE_BY_EXTENSION: dict[str, str] = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "py": "python",
    "rb": "ruby",
    "go": "go",
    "rs": "rust",
    "java": "java",
    "kt": "kotlin",
    "swift": "swift",
    "cs": "csharp",
    "cpp": "cpp",
    "c": "c",
    "h": "c",
    "hpp": "cpp",
    "php": "php",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "md": "markdown",
    "sql": "sql",
    "sh": "bash",
    "bash": "bash",
    "dockerfile": "dockerfile",
}


def unset_to_none[T](value: T, /) -> T | None:
    """githubkit marks fields missing from a response as UNSET."""
    return None if value is UNSET else value


def login_of(user: Any) -> str | None:  # pyright: ignore[reportAny]
    """Commit authors can be a user, an empty object, or null."""
    return unset_to_none(getattr(user, "login", None))


def first_line(message: str) -> str:
    return message.split("\n")[0]


def short_sha(sha: str) -> str:
    return sha[:7]


def language_for_path(path: str) -> str:
    extension = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return LANGUAGE_BY_EXTENSION.get(extension, extension)


class ToolPayload(BaseModel):
    """A normalized payload returned to the model by a tool. Serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RepositoryOverview(ToolPayload):
    """An overview of a repository."""

    name: str = Field(description="The name of the repository.")
    full_name: str = Field(description="The owner/name of the repository.")
    description: str | None = Field(description="The description of the repository.")
    language: str | None = Field(description="The primary language of the repository.")
    stars: int = Field(description="The number of stars the repository has.")
    forks: int = Field(description="The number of forks of the repository.")
    open_issues: int = Field(description="The number of open issues and pull requests.")
    watchers: int = Field(description="The number of watchers.")
    default_branch: str = Field(description="The default branch of the repository.")
    created_at: datetime = Field(description="When the repository was created.")
    updated_at: datetime = Field(description="When the repository was last updated.")
    pushed_at: datetime = Field(description="When the repository was last pushed to.")
    topics: list[str] = Field(description="The topics of the repository.")
    license: str | None = Field(description="The name of the license of the repository.")
    has_wiki: bool = Field(description="Whether the repository has a wiki.")
    has_issues: bool = Field(description="Whether the repository has issues enabled.")
    archived: bool = Field(description="Whether the repository is archived.")
    url: str = Field(description="The URL of the repository.")

    @classmethod
    def from_full_repository(cls, full_repository: GitHubKitFullRepository) -> Self:
        return cls(
            name=full_repository.name,
            full_name=full_repository.full_name,
            description=full_repository.description,
            language=full_repository.language,
            stars=full_repository.stargazers_count,
            forks=full_repository.forks_count,
            open_issues=full_repository.open_issues_count,
            watchers=full_repository.watchers_count,
            default_branch=full_repository.default_branch,
            created_at=full_repository.created_at,
            updated_at=full_repository.updated_at,
            pushed_at=full_repository.pushed_at,
            topics=unset_to_none(full_repository.topics) or [],
            license=full_repository.license_.name if full_repository.license_ else None,
            has_wiki=full_repository.has_wiki,
            has_issues=full_repository.has_issues,
            archived=full_repository.archived,
            url=full_repository.html_url,
        )


class Contributor(ToolPayload):
    login: str | None = Field(description="The login of the contributor.")
    contributions: int = Field(description="The number of contributions.")
    avatar_url: str | None = Field(default=None, description="The avatar URL of the contributor.")
    profile_url: str | None = Field(default=None, description="The profile URL of the contributor.")
    type: str = Field(description="The type of the account.")

    @classmethod
    def from_contributor(cls, contributor: GitHubKitContributor) -> Self:
        return cls(
            login=unset_to_none(contributor.login),
            contributions=contributor.contributions,
            avatar_url=unset_to_none(contributor.avatar_url),
            profile_url=unset_to_none(contributor.html_url),
            type=contributor.type,
        )


class PullRequestSummary(ToolPayload):
    number: int
    title: str
    state: str
    author: str | None
    created_at: datetime
    updated_at: datetime
    merged_at: datetime | None
    closed_at: datetime | None
    draft: bool | None
    labels: list[str]
    url: str

    @classmethod
    def from_pull_request_simple(cls, pull_request: GitHubKitPullRequestSimple) -> Self:
        return cls(
            number=pull_request.number,
            title=pull_request.title,
            state=pull_request.state,
            author=login_of(pull_request.user),
            created_at=pull_request.created_at,
            updated_at=pull_request.updated_at,
            merged_at=pull_request.merged_at,
            closed_at=pull_request.closed_at,
            draft=unset_to_none(pull_request.draft),
            labels=[label.name for label in pull_request.labels],
            url=pull_request.html_url,
        )


class FileDiff(ToolPayload):
    """The change to a single file, with its patch capped in size."""

    filename: str = Field(description="The path of the file.")
    status: str = Field(description="The status of the file, e.g. added, removed, modified, renamed.")
    additions: int = Field(description="The number of added lines.")
    deletions: int = Field(description="The number of removed lines.")
    patch: str = Field(default="", description="The patch of the file.")
    truncated: bool = Field(default=False, description="Whether the patch has been truncated to reduce response size.")

    @classmethod
    def from_diff_entry(cls, diff_entry: GitHubKitDiffEntry, truncate: int = DEFAULT_TRUNCATE_PATCH_CHARACTERS) -> Self:
        file_diff: Self = cls(
            filename=diff_entry.filename,
            status=diff_entry.status,
            additions=diff_entry.additions,
            deletions=diff_entry.deletions,
            patch=unset_to_none(diff_entry.patch) or "",
        )

        return file_diff.truncate(truncate=truncate)

    def truncate(self, truncate: int) -> Self:
        if len(self.patch) > truncate:
            return self.model_copy(update={"patch": self.patch[:truncate] + PATCH_TRUNCATION_MARKER, "truncated": True})

        return self


class PullRequestDetails(ToolPayload):
    number: int
    title: str
    body: str | None
    state: str
    author: str | None
    merged: bool
    mergeable: bool | None
    additions: int
    deletions: int
    changed_files: int
    commits: int
    created_at: datetime
    merged_at: datetime | None
    base_branch: str
    head_branch: str
    files: list[FileDiff]
    url: str

    @classmethod
    def from_pull_request(
        cls,
        pull_request: GitHubKitPullRequest,
        diff_entries: list[GitHubKitDiffEntry],
        truncate: int = DEFAULT_TRUNCATE_PATCH_CHARACTERS,
    ) -> Self:
        return cls(
            number=pull_request.number,
            title=pull_request.title,
            body=pull_request.body,
            state=pull_request.state,
            author=login_of(pull_request.user),
            merged=pull_request.merged,
            mergeable=pull_request.mergeable,
            additions=pull_request.additions,
            deletions=pull_request.deletions,
            changed_files=pull_request.changed_files,
            commits=pull_request.commits,
            created_at=pull_request.created_at,
            merged_at=pull_request.merged_at,
            base_branch=pull_request.base.ref,
            head_branch=pull_request.head.ref,
            files=[FileDiff.from_diff_entry(diff_entry=diff_entry, truncate=truncate) for diff_entry in diff_entries],
            url=pull_request.html_url,
        )


class IssueSummary(ToolPayload):
    number: int
    title: str
    state: str
    author: str | None
    labels: list[str]
    assignees: list[str]
    comments: int
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None
    url: str

    @classmethod
    def from_issue(cls, issue: GitHubKitIssue) -> Self:
        labels: list[str] = [label if isinstance(label, str) else unset_to_none(label.name) or "" for label in issue.labels]

        return cls(
            number=issue.number,
            title=issue.title,
            state=issue.state,
            author=login_of(issue.user),
            labels=labels,
            assignees=[assignee.login for assignee in unset_to_none(issue.assignees) or []],
            comments=issue.comments,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
            closed_at=issue.closed_at,
            url=issue.html_url,
        )

    @staticmethod
    def is_pull_request(issue: GitHubKitIssue) -> bool:
        """The issues endpoint also lists pull requests."""
        return unset_to_none(issue.pull_request) is not None


class CommitSummary(ToolPayload):
    sha: str = Field(description="The abbreviated SHA of the commit.")
    full_sha: str = Field(description="The full SHA of the commit.")
    message: str = Field(description="The first line of the commit message.")
    full_message: str = Field(description="The full commit message.")
    author: str | None = Field(description="The login of the author, or the git author name.")
    author_email: str | None = Field(description="The git author email.")
    date: datetime | None = Field(description="When the commit was authored.")
    url: str = Field(description="The URL of the commit.")

    @classmethod
    def from_commit(cls, commit: GitHubKitCommit) -> Self:
        git_author = commit.commit.author

        return cls(
            sha=short_sha(commit.sha),
            full_sha=commit.sha,
            message=first_line(commit.commit.message),
            full_message=commit.commit.message,
            author=login_of(commit.author) or (unset_to_none(git_author.name) if git_author else None),
            author_email=unset_to_none(git_author.email) if git_author else None,
            date=unset_to_none(git_author.date) if git_author else None,
            url=commit.html_url,
        )


class FileTreeEntry(ToolPayload):
    name: str
    path: str
    type: str = Field(description="Either `directory` or `file`.")
    size: int

    @classmethod
    def from_content_directory_item(cls, item: GitHubKitContentDirectoryItems) -> Self:
        return cls(name=item.name, path=item.path, type="directory" if item.type == "dir" else "file", size=item.size)


class FileTree(ToolPayload):
    path: str
    branch: str
    items: list[FileTreeEntry] = Field(description="The entries of the directory, directories first, then sorted by name.")

    @classmethod
    def from_content_directory(cls, path: str, branch: str, items: list[GitHubKitContentDirectoryItems]) -> Self:
        entries: list[FileTreeEntry] = [FileTreeEntry.from_content_directory_item(item=item) for item in items]

        entries.sort(key=lambda entry: (entry.type != "directory", entry.name))

        return cls(path=path or "/", branch=branch, items=entries)


class FileContent(ToolPayload):
    """The content of a file, truncated to a maximum number of characters."""

    path: str
    name: str
    branch: str
    size: int
    content: str
    language: str
    truncated: bool = Field(default=False, description="Whether the content has been truncated.")

    @classmethod
    def from_content_file(
        cls, content_file: GitHubKitContentFile, branch: str, truncate_characters: int = DEFAULT_TRUNCATE_FILE_CHARACTERS
    ) -> Self:
        content: str = decode_content(content_file.content) if content_file.encoding == "base64" else content_file.content

        return cls(
            path=content_file.path,
            name=content_file.name,
            branch=branch,
            size=content_file.size,
            content=content[:truncate_characters],
            language=language_for_path(content_file.path),
            truncated=len(content) > truncate_characters,
        )


class CommitStats(ToolPayload):
    additions: int = 0
    deletions: int = 0
    total: int = 0


class CommitDiff(ToolPayload):
    sha: str
    full_sha: str
    message: str
    author: str | None
    date: datetime | None
    stats: CommitStats
    total_files: int
    files_shown: int
    files: list[FileDiff]

    @classmethod
    def from_commit(cls, commit: GitHubKitCommit, limit_files: int, truncate: int = DEFAULT_TRUNCATE_PATCH_CHARACTERS) -> Self:
        diff_entries: list[GitHubKitDiffEntry] = unset_to_none(commit.files) or []
        stats = unset_to_none(commit.stats)
        git_author = commit.commit.author

        return cls(
            sha=short_sha(commit.sha),
            full_sha=commit.sha,
            message=commit.commit.message,
            author=login_of(commit.author) or (unset_to_none(git_author.name) if git_author else None),
            date=unset_to_none(git_author.date) if git_author else None,
            stats=CommitStats(
                additions=unset_to_none(stats.additions) or 0,
                deletions=unset_to_none(stats.deletions) or 0,
                total=unset_to_none(stats.total) or 0,
            )
            if stats
            else CommitStats(),
            total_files=len(diff_entries),
            files_shown=min(len(diff_entries), limit_files),
            files=[FileDiff.from_diff_entry(diff_entry=diff_entry, truncate=truncate) for diff_entry in diff_entries[:limit_files]],
        )


class BranchComparisonStats(ToolPayload):
    additions: int
    deletions: int
    changed_files: int


class BranchComparison(ToolPayload):
    status: str = Field(description="One of ahead, behind, diverged, identical.")
    ahead_by: int
    behind_by: int
    total_commits: int
    commits: list[CommitSummary]
    files: list[FileDiff]
    stats: BranchComparisonStats
    url: str

    @classmethod
    def from_commit_comparison(
        cls,
        comparison: GitHubKitCommitComparison,
        limit_commits: int,
        limit_files: int,
        truncate: int = DEFAULT_TRUNCATE_COMPARISON_PATCH_CHARACTERS,
    ) -> Self:
        diff_entries: list[GitHubKitDiffEntry] = unset_to_none(comparison.files) or []

        return cls(
            status=comparison.status,
            ahead_by=comparison.ahead_by,
            behind_by=comparison.behind_by,
            total_commits=comparison.total_commits,
            commits=[CommitSummary.from_commit(commit=commit) for commit in comparison.commits[:limit_commits]],
            files=[FileDiff.from_diff_entry(diff_entry=diff_entry, truncate=truncate) for diff_entry in diff_entries[:limit_files]],
            stats=BranchComparisonStats(
                additions=sum(diff_entry.additions for diff_entry in diff_entries),
                deletions=sum(diff_entry.deletions for diff_entry in diff_entries),
                changed_files=len(diff_entries),
            ),
            url=comparison.html_url,
        )


class CodeSearchMatch(ToolPayload):
    filename: str
    path: str
    url: str


class CodeSearchResult(ToolPayload):
    total_count: int
    results: list[CodeSearchMatch]


class Branch(ToolPayload):
    name: str
    protected: bool
    is_default: bool


class BranchList(ToolPayload):
    default_branch: str
    branches: list[Branch]


class LanguageShare(ToolPayload):
    language: str
    bytes: int
    percentage: str = Field(description="The share of the repository's code, e.g. `42.0%`.")


class LanguageBreakdown(ToolPayload):
    languages: list[LanguageShare] = Field(description="The languages of the repository, largest first.")

    @classmethod
    def from_byte_counts(cls, byte_counts: dict[str, int]) -> Self:
        total: int = sum(byte_counts.values())

        languages: list[LanguageShare] = [
            LanguageShare(language=language, bytes=count, percentage=f"{(count / total * 100) if total else 0:.1f}%")
            for language, count in byte_counts.items()
        ]

        languages.sort(key=lambda share: share.bytes, reverse=True)

        return cls(languages=languages)


class RepositoryMetadata(BaseModel):
    """A snapshot of the repository metadata given to the model on the first turn."""

    model_config = ConfigDict(frozen=True)

    stars: int = 0
    forks: int = 0
    language: str | None = None
    open_issues: int = 0
    contributor_count: int = 0


class RepositoryContext(BaseModel):
    """The repository an analysis is about."""

    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    full_name: str
    metadata: RepositoryMetadata = Field(default_factory=RepositoryMetadata)
