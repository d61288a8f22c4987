from types import NoneType, UnionType
from typing import Any, Literal, Self, Union, get_args, get_origin

from pydantic import BaseModel, Field
from pydantic.fields import FieldInfo

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

ParameterType = Literal["string", "number"]


class ToolParameter(BaseModel):
    type: ParameterType
    description: str
    enum: list[str] | None = None

    @classmethod
    def from_field_info(cls, field_info: FieldInfo) -> Self:
        annotation: Any = field_info.annotation  # pyright: ignore[reportAny]

        # Optional parameters are declared by their inner type and left out of `required`.
        if get_origin(annotation) in (Union, UnionType):
            annotation = next(arg for arg in get_args(annotation) if arg is not NoneType)  # pyright: ignore[reportAny]

        if get_origin(annotation) is Literal:
            return cls(type="string", description=field_info.description or "", enum=[str(value) for value in get_args(annotation)])

        parameter_type: ParameterType = "number" if annotation in (int, float) else "string"

        return cls(type=parameter_type, description=field_info.description or "")


class ToolDeclaration(BaseModel):
    """A provider-neutral description of a tool, from which each provider's wire schema is derived."""

    name: str = Field(description="The unique name of the tool.")
    description: str = Field(description="What the tool does, for the model.")
    parameters: dict[str, ToolParameter] = Field(description="The parameters of the tool, keyed by their camelCase name.")
    required: list[str] = Field(description="The names of the parameters the model must provide.")

    @classmethod
    def from_arguments_model(cls, name: str, description: str, arguments_model: type[ToolArguments]) -> Self:
        parameters: dict[str, ToolParameter] = {}
        required: list[str] = []

        for field_name, field_info in arguments_model.model_fields.items():
            parameter_name: str = field_info.alias or field_name

            parameters[parameter_name] = ToolParameter.from_field_info(field_info=field_info)

            if field_info.is_required():
                required.append(parameter_name)

        return cls(name=name, description=description, parameters=parameters, required=required)


class ToolDefinition(BaseModel):
    name: str
    description: str
    arguments_model: type[ToolArguments]
    progress_label: str

    def to_declaration(self) -> ToolDeclaration:
        return ToolDeclaration.from_arguments_model(name=self.name, description=self.description, arguments_model=self.arguments_model)


TOOL_DEFINITIONS: list[ToolDefinition] = [
    ToolDefinition(
        name="getRepositoryOverview",
        description="Get an overview of the repository including stats, language, description, and metadata",
        arguments_model=RepositoryOverviewArguments,
        progress_label="📊 Getting repository overview",
    ),
    ToolDefinition(
        name="getContributors",
        description="Get the list of contributors to the repository with their contribution counts",
        arguments_model=ContributorsArguments,
        progress_label="👥 Fetching contributors",
    ),
    ToolDefinition(
        name="getPullRequests",
        description="Get pull requests from the repository with their status, author, and basic info",
        arguments_model=PullRequestsArguments,
        progress_label="🔀 Loading pull requests",
    ),
    ToolDefinition(
        name="getPullRequestDetails",
        description="Get detailed information about a specific pull request including the code diff and changed files",
        arguments_model=PullRequestDetailsArguments,
        progress_label="📝 Analyzing PR details",
    ),
    ToolDefinition(
        name="getIssues",
        description="Get issues from the repository with their status, labels, and assignees",
        arguments_model=IssuesArguments,
        progress_label="🐛 Fetching issues",
    ),
    ToolDefinition(
        name="getCommits",
        description="Get recent commits from the repository with author, message, and timestamp",
        arguments_model=CommitsArguments,
        progress_label="📜 Loading commit history",
    ),
    ToolDefinition(
        name="getFileTree",
        description="Get the file and directory structure of the repository at a specific path",
        arguments_model=FileTreeArguments,
        progress_label="📁 Browsing file structure",
    ),
    ToolDefinition(
        name="getFileContent",
        description="Get the content of a specific file in the repository. Use this to read source code files.",
        arguments_model=FileContentArguments,
        progress_label="📄 Reading source code",
    ),
    ToolDefinition(
        name="getCommitDiff",
        description="Get the diff/changes introduced by a specific commit",
        arguments_model=CommitDiffArguments,
        progress_label="🔍 Analyzing code changes",
    ),
    ToolDefinition(
        name="compareBranches",
        description="Compare two branches or commits to see the differences",
        arguments_model=CompareBranchesArguments,
        progress_label="⚖️ Comparing branches",
    ),
    ToolDefinition(
        name="searchCode",
        description="Search for code patterns or text within the repository",
        arguments_model=SearchCodeArguments,
        progress_label="🔎 Searching code",
    ),
    ToolDefinition(
        name="getBranches",
        description="Get list of branches in the repository",
        arguments_model=BranchesArguments,
        progress_label="🌿 Listing branches",
    ),
    ToolDefinition(
        name="getLanguages",
        description="Get the programming languages used in the repository with their percentages",
        arguments_model=LanguagesArguments,
        progress_label="💻 Analyzing languages",
    ),
]

TOOL_DEFINITIONS_BY_NAME: dict[str, ToolDefinition] = {definition.name: definition for definition in TOOL_DEFINITIONS}

TOOL_DECLARATIONS: list[ToolDeclaration] = [definition.to_declaration() for definition in TOOL_DEFINITIONS]

TOOL_PROGRESS_LABELS: dict[str, str] = {definition.name: definition.progress_label for definition in TOOL_DEFINITIONS}


def progress_label_for(tool_name: str) -> str:
    return TOOL_PROGRESS_LABELS.get(tool_name, f"⚙️ Running {tool_name}")
