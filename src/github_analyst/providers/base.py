import os
from abc import ABC, abstractmethod
from enum import Enum

from pydantic import BaseModel, Field

from github_analyst.tools.declarations import ToolDeclaration
from github_analyst.tools.results import ToolInvocation, ToolResult

CHAT_COMPLETIONS_MODEL_PREFIXES: tuple[str, ...] = (
    "llama",
    "openai/",
    "meta-llama/",
    "mixtral",
    "gemma",
    "qwen",
    "deepseek",
    "moonshotai/",
    "groq/",
)


class ProviderKind(str, Enum):
    NATIVE_FUNCTION_CALLING = "native_function_calling"
    CHAT_COMPLETIONS = "chat_completions"


def select_provider(model_id: str) -> ProviderKind:
    """Route a model to the provider that hosts it. Unknown models go to the native function-calling provider."""

    if model_id.lower().startswith(CHAT_COMPLETIONS_MODEL_PREFIXES):
        return ProviderKind.CHAT_COMPLETIONS

    return ProviderKind.NATIVE_FUNCTION_CALLING


class ModelTurn(BaseModel):
    """What the model produced in one turn: text, tool calls, or both."""

    assistant_text: str = Field(default="", description="The text produced by the model, empty when it only called tools.")
    tool_invocations: list[ToolInvocation] = Field(default_factory=list, description="The tools the model asked to run, in order.")

    @property
    def has_tool_invocations(self) -> bool:
        return len(self.tool_invocations) > 0


class ProviderError(Exception):
    """A failure talking to the upstream model provider."""

    status: int | None
    message: str
    retry_delay_seconds: int | None
    model_id: str | None

    def __init__(self, message: str, status: int | None = None, retry_delay_seconds: int | None = None, model_id: str | None = None):
        self.status = status
        self.message = message
        self.retry_delay_seconds = retry_delay_seconds
        self.model_id = model_id
        super().__init__(message)


class MissingCredentialError(ProviderError):
    """The credential for a provider is not configured."""

    env_var: str

    def __init__(self, env_var: str, model_id: str | None = None):
        self.env_var = env_var
        super().__init__(message=f"{env_var} must be set", model_id=model_id)


def get_credential(*env_vars: str) -> str:
    """Get the first configured credential out of the given environment variables."""

    for env_var in env_vars:
        if value := os.environ.get(env_var):
            return value

    raise MissingCredentialError(env_var=env_vars[0])


class ProviderSession(ABC):
    """A conversation with an upstream model, holding the provider's own transcript.

    `converse_turn` is called once with the first user message; every later turn is driven by
    `continue_with_tool_results` with the results of the tools the model asked for.
    """

    model_id: str
    system_prompt: str
    declarations: list[ToolDeclaration]

    def __init__(self, model_id: str, system_prompt: str, declarations: list[ToolDeclaration]):
        self.model_id = model_id
        self.system_prompt = system_prompt
        self.declarations = declarations

    @abstractmethod
    async def converse_turn(self, user_message: str) -> ModelTurn: ...

    @abstractmethod
    async def continue_with_tool_results(self, results: list[ToolResult]) -> ModelTurn: ...
