import json
from logging import Logger
from typing import Any, override

from fastmcp.utilities.logging import get_logger
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI
from openai.types.chat import (
    ChatCompletion,
    ChatCompletionMessageParam,
    ChatCompletionMessageToolCallParam,
    ChatCompletionToolParam,
)

from github_analyst.providers.base import ModelTurn, ProviderError, ProviderSession
from github_analyst.tools.declarations import ToolDeclaration
from github_analyst.tools.results import ToolInvocation, ToolResult

logger: Logger = get_logger(name=__name__)

DEFAULT_GROQ_BASE_URL = "https://api.groq.com/openai/v1"


def declaration_to_tool_param(declaration: ToolDeclaration) -> ChatCompletionToolParam:
    return {
        "type": "function",
        "function": {
            "name": declaration.name,
            "description": declaration.description,
            "parameters": {
                "type": "object",
                "properties": {
                    name: parameter.model_dump(exclude_none=True) for name, parameter in declaration.parameters.items()
                },
                "required": declaration.required,
            },
        },
    }


def parse_retry_after(error: APIStatusError) -> int | None:
    if retry_after := error.response.headers.get("retry-after"):
        try:
            return int(float(retry_after))
        except ValueError:
            return None

    return None


class ChatCompletionsSession(ProviderSession):
    """A conversation with a model behind an OpenAI-style chat completions API.

    The transcript is a linear message list: the system prompt, the user message, then each assistant
    message followed by one `tool` message per tool call it made.
    """

    client: AsyncOpenAI
    messages: list[ChatCompletionMessageParam]

    def __init__(self, model_id: str, system_prompt: str, declarations: list[ToolDeclaration], client: AsyncOpenAI | None = None):
        super().__init__(model_id=model_id, system_prompt=system_prompt, declarations=declarations)
        self.client = client or AsyncOpenAI(base_url=DEFAULT_GROQ_BASE_URL)
        self.messages = [{"role": "system", "content": system_prompt}]

    async def _complete(self) -> ModelTurn:
        try:
            completion: ChatCompletion = await self.client.chat.completions.create(
                model=self.model_id,
                messages=self.messages,
                tools=[declaration_to_tool_param(declaration) for declaration in self.declarations],
                tool_choice="auto",
            )
        except APIStatusError as e:
            raise ProviderError(message=e.message, status=e.status_code, retry_delay_seconds=parse_retry_after(e), model_id=self.model_id) from e
        except (APIConnectionError, APIError) as e:
            raise ProviderError(message=e.message, model_id=self.model_id) from e

        if not completion.choices:
            msg = f"No choices in completion from {self.model_id}"
            raise ProviderError(message=msg, model_id=self.model_id)

        message = completion.choices[0].message

        tool_calls: list[ChatCompletionMessageToolCallParam] = []
        tool_invocations: list[ToolInvocation] = []

        for tool_call in message.tool_calls or []:
            if tool_call.type != "function":
                continue

            try:
                arguments: Any = json.loads(tool_call.function.arguments or "{}")  # pyright: ignore[reportAny]
            except json.JSONDecodeError as e:
                msg = f"Malformed arguments for tool call {tool_call.function.name}: {tool_call.function.arguments}"
                raise ProviderError(message=msg, model_id=self.model_id) from e

            if not isinstance(arguments, dict):
                msg = f"Malformed arguments for tool call {tool_call.function.name}: {tool_call.function.arguments}"
                raise ProviderError(message=msg, model_id=self.model_id)

            tool_calls.append(
                {
                    "id": tool_call.id,
                    "type": "function",
                    "function": {"name": tool_call.function.name, "arguments": tool_call.function.arguments},
                }
            )
            tool_invocations.append(ToolInvocation(call_id=tool_call.id, tool_name=tool_call.function.name, arguments=arguments))  # pyright: ignore[reportUnknownArgumentType]

        if tool_calls:
            self.messages.append({"role": "assistant", "content": message.content, "tool_calls": tool_calls})
        else:
            self.messages.append({"role": "assistant", "content": message.content or ""})

        logger.debug(f"{self.model_id} responded with {len(tool_invocations)} tool calls")

        return ModelTurn(assistant_text=message.content or "", tool_invocations=tool_invocations)

    @override
    async def converse_turn(self, user_message: str) -> ModelTurn:
        self.messages.append({"role": "user", "content": user_message})

        return await self._complete()

    @override
    async def continue_with_tool_results(self, results: list[ToolResult]) -> ModelTurn:
        for result in results:
            self.messages.append(
                {
                    "role": "tool",
                    "tool_call_id": result.invocation.call_id,
                    "content": json.dumps(result.as_struct()),
                }
            )

        return await self._complete()
