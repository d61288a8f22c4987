from logging import Logger
from typing import Any, override

import httpx
from fastmcp.utilities.logging import get_logger
from google.genai import Client as GoogleGenaiClient
from google.genai.chats import AsyncChat
from google.genai.errors import APIError
from google.genai.types import (
    AutomaticFunctionCallingConfig,
    FunctionDeclaration,
    GenerateContentConfig,
    GenerateContentResponse,
    Part,
    PartUnionDict,
    Schema,
    Tool,
    Type,
)

from github_analyst.providers.base import ModelTurn, ProviderError, ProviderSession
from github_analyst.tools.declarations import ToolDeclaration, ToolParameter
from github_analyst.tools.results import ToolInvocation, ToolResult

logger: Logger = get_logger(name=__name__)

RETRY_INFO_TYPE = "RetryInfo"


def parameter_to_schema(parameter: ToolParameter) -> Schema:
    return Schema(
        type=Type.NUMBER if parameter.type == "number" else Type.STRING,
        description=parameter.description,
        enum=parameter.enum,
    )


def declaration_to_function_declaration(declaration: ToolDeclaration) -> FunctionDeclaration:
    return FunctionDeclaration(
        name=declaration.name,
        description=declaration.description,
        parameters=Schema(
            type=Type.OBJECT,
            properties={name: parameter_to_schema(parameter) for name, parameter in declaration.parameters.items()},
            required=declaration.required,
        ),
    )


def get_text_from_response(response: GenerateContentResponse) -> str:
    """Join the text parts of the first candidate, skipping thoughts and function calls."""

    if not response.candidates or not (content := response.candidates[0].content) or not content.parts:
        return ""

    return "".join(part.text for part in content.parts if part.text and not part.thought)


def get_invocations_from_response(response: GenerateContentResponse) -> list[ToolInvocation]:
    return [
        ToolInvocation(
            call_id=function_call.id or ToolInvocation.fallback_call_id(tool_name=function_call.name or "", index=index),
            tool_name=function_call.name or "",
            arguments=function_call.args or {},
        )
        for index, function_call in enumerate(response.function_calls or [])
    ]


def parse_retry_delay(error_details: Any) -> int | None:  # pyright: ignore[reportAny]
    """Find the retry delay (e.g. `90s`) in the `RetryInfo` detail of an error response."""

    if not isinstance(error_details, dict):
        return None

    error_body: dict[str, Any] = error_details.get("error", error_details)  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]

    details: Any = error_body.get("details") or []  # pyright: ignore[reportAny]

    for detail in details:  # pyright: ignore[reportAny]
        if isinstance(detail, dict) and RETRY_INFO_TYPE in str(detail.get("@type", "")) and (retry_delay := detail.get("retryDelay")):  # pyright: ignore[reportUnknownMemberType]
            try:
                return int(float(str(retry_delay).rstrip("s")))  # pyright: ignore[reportUnknownArgumentType]
            except ValueError:
                return None

    return None


class GeminiSession(ProviderSession):
    """A chat with a Gemini model using native function calling."""

    client: GoogleGenaiClient
    chat: AsyncChat | None

    def __init__(self, model_id: str, system_prompt: str, declarations: list[ToolDeclaration], client: GoogleGenaiClient | None = None):
        super().__init__(model_id=model_id, system_prompt=system_prompt, declarations=declarations)
        self.client = client or GoogleGenaiClient()
        self.chat = None

    def _generate_content_config(self) -> GenerateContentConfig:
        return GenerateContentConfig(
            system_instruction=self.system_prompt,
            tools=[Tool(function_declarations=[declaration_to_function_declaration(declaration) for declaration in self.declarations])],
            automatic_function_calling=AutomaticFunctionCallingConfig(disable=True),
        )

    async def _send(self, message: str | list[PartUnionDict]) -> ModelTurn:
        if self.chat is None:
            self.chat = self.client.aio.chats.create(model=self.model_id, config=self._generate_content_config())

        try:
            response: GenerateContentResponse = await self.chat.send_message(message=message)
        except APIError as e:
            raise ProviderError(
                message=e.message or str(e),
                status=e.code,
                retry_delay_seconds=parse_retry_delay(e.details),
                model_id=self.model_id,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(message=str(e) or type(e).__name__, model_id=self.model_id) from e

        model_turn = ModelTurn(assistant_text=get_text_from_response(response), tool_invocations=get_invocations_from_response(response))

        logger.debug(f"{self.model_id} responded with {len(model_turn.tool_invocations)} tool calls")

        return model_turn

    @override
    async def converse_turn(self, user_message: str) -> ModelTurn:
        return await self._send(message=user_message)

    @override
    async def continue_with_tool_results(self, results: list[ToolResult]) -> ModelTurn:
        parts: list[PartUnionDict] = [
            Part.from_function_response(name=result.invocation.tool_name, response=result.as_struct()) for result in results
        ]

        return await self._send(message=parts)
