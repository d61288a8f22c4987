import asyncio
import os
from collections.abc import Callable
from logging import Logger

from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel, Field

from github_analyst.agent.errors import describe_missing_credential, describe_provider_error
from github_analyst.agent.messages import AssistantMessage, InMemoryMessageStore, MessageStore
from github_analyst.agent.progress import (
    ANALYZING_RESULTS_STEP,
    GENERATING_RESPONSE_STEP,
    PROCESSING_STEP,
    STARTING_STEP,
    InMemoryProgressTracker,
    ProgressTracker,
)
from github_analyst.agent.prompts import SYSTEM_PROMPT, build_context_message
from github_analyst.clients.models.github import RepositoryContext
from github_analyst.providers.base import MissingCredentialError, ModelTurn, ProviderError, ProviderKind, ProviderSession, select_provider
from github_analyst.providers.factory import create_session
from github_analyst.responses.classifier import StructuredResponse, classify, summarize
from github_analyst.tools.declarations import ToolDeclaration, progress_label_for
from github_analyst.tools.registry import ToolRegistry
from github_analyst.tools.results import AuditEntry, ToolInvocation, ToolResult

logger: Logger = get_logger(name=__name__)

DEFAULT_MODEL_ID = "gemini-2.0-flash"
DEFAULT_MAX_ITERATIONS = 10

SessionFactory = Callable[[ProviderKind, str, str, list[ToolDeclaration]], ProviderSession]


def get_default_model_id() -> str:
    return os.getenv("DEFAULT_MODEL_ID") or DEFAULT_MODEL_ID


def get_max_iterations() -> int:
    if max_iterations := os.getenv("AGENT_MAX_ITERATIONS"):
        return int(max_iterations)

    return DEFAULT_MAX_ITERATIONS


class AnalysisRequest(BaseModel):
    session_id: str = Field(description="The conversation the question belongs to. Progress and messages are keyed by it.")
    query: str = Field(description="The question about the repository.")
    repository: RepositoryContext = Field(description="The repository to analyze.")
    focus_contributors: list[str] | None = Field(default=None, description="Contributors the analysis should focus on.")
    model_id: str | None = Field(default=None, description="The model to use. The default model when not provided.")


class AnalysisResult(StructuredResponse):
    tool_calls: list[AuditEntry] = Field(default_factory=list, description="The tool calls made to produce the response, in order.")


class RepositoryAnalyst:
    """Answers questions about a repository by letting a model call GitHub tools until it has an answer.

    The model is sent the question once, then each batch of tool calls it asks for is run concurrently and
    the results are sent back, until it stops asking for tools or `max_iterations` batches have been sent.
    """

    registry: ToolRegistry
    progress: ProgressTracker
    messages: MessageStore
    session_factory: SessionFactory
    max_iterations: int

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        progress: ProgressTracker | None = None,
        messages: MessageStore | None = None,
        session_factory: SessionFactory = create_session,
        max_iterations: int | None = None,
    ):
        self.registry = registry or ToolRegistry()
        self.progress = progress or InMemoryProgressTracker()
        self.messages = messages or InMemoryMessageStore()
        self.session_factory = session_factory
        self.max_iterations = max_iterations if max_iterations is not None else get_max_iterations()

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Answer a question about a repository.

        Failures do not raise: they are returned (and stored) as a text response describing the failure.
        """

        model_id: str = request.model_id or get_default_model_id()

        kind: ProviderKind = select_provider(model_id=model_id)

        try:
            session: ProviderSession = self.session_factory(kind, model_id, SYSTEM_PROMPT, self.registry.declarations())
        except MissingCredentialError as e:
            logger.warning(f"Cannot analyze {request.repository.full_name} with {model_id}: {e}")

            return await self.respond_with_error(session_id=request.session_id, content=describe_missing_credential(e))

        try:
            return await self._converse(request=request, session=session)
        except ProviderError as e:
            logger.exception(f"Provider error analyzing {request.repository.full_name} with {model_id}")

            return await self.respond_with_error(session_id=request.session_id, content=describe_provider_error(error=e, model_id=model_id))
        except Exception as e:
            logger.exception(f"Unexpected error analyzing {request.repository.full_name} with {model_id}")

            error = ProviderError(message=str(e) or type(e).__name__, model_id=model_id)

            return await self.respond_with_error(session_id=request.session_id, content=describe_provider_error(error=error, model_id=model_id))
        finally:
            await self.progress.clear(session_id=request.session_id)

    async def _converse(self, request: AnalysisRequest, session: ProviderSession) -> AnalysisResult:
        await self.progress.update(session_id=request.session_id, current_step=STARTING_STEP)
        await self.progress.update(session_id=request.session_id, current_step=PROCESSING_STEP)

        context_message: str = build_context_message(
            repository=request.repository, query=request.query, focus_contributors=request.focus_contributors
        )

        model_turn: ModelTurn = await session.converse_turn(user_message=context_message)

        audit_log: list[AuditEntry] = []
        iterations: int = 0

        while model_turn.has_tool_invocations:
            if iterations >= self.max_iterations:
                logger.warning(
                    f"Stopping analysis of {request.repository.full_name} after {iterations} tool rounds "
                    f"with {len(model_turn.tool_invocations)} tool calls pending"
                )
                break

            logger.info(f"Running {len(model_turn.tool_invocations)} tool calls for {request.repository.full_name}")

            tool_results: list[ToolResult] = await self._execute_tools(
                session_id=request.session_id, invocations=model_turn.tool_invocations
            )

            audit_log.extend(AuditEntry.from_tool_result(tool_result=tool_result) for tool_result in tool_results)

            await self.progress.update(session_id=request.session_id, current_step=ANALYZING_RESULTS_STEP)

            model_turn = await session.continue_with_tool_results(results=tool_results)

            iterations += 1

        await self.progress.update(session_id=request.session_id, current_step=GENERATING_RESPONSE_STEP)

        response: StructuredResponse = classify(model_turn.assistant_text)

        await self.messages.add_assistant_message(
            AssistantMessage(
                session_id=request.session_id,
                content=summarize(response),
                response=response,
                tool_calls=audit_log or None,
            )
        )

        return AnalysisResult(type=response.type, data=response.data, tool_calls=audit_log)

    async def _execute_tools(self, session_id: str, invocations: list[ToolInvocation]) -> list[ToolResult]:
        """Run a batch of tool calls concurrently. Results are returned in the order of the invocations."""

        return await asyncio.gather(*[self._execute_tool(session_id=session_id, invocation=invocation) for invocation in invocations])

    async def _execute_tool(self, session_id: str, invocation: ToolInvocation) -> ToolResult:
        await self.progress.update(session_id=session_id, current_step=progress_label_for(invocation.tool_name))

        payload = await self.registry.execute(name=invocation.tool_name, arguments=invocation.arguments)  # pyright: ignore[reportAny]

        return ToolResult(invocation=invocation, payload=payload)

    async def respond_with_error(self, session_id: str, content: str) -> AnalysisResult:
        """Store and return a text response describing why a question could not be answered."""

        response: StructuredResponse = StructuredResponse.text(content=content)

        await self.messages.add_assistant_message(AssistantMessage(session_id=session_id, content=content, response=response))

        return AnalysisResult(type=response.type, data=response.data)
