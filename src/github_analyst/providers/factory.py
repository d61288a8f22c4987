import os
from typing import assert_never

from google.genai import Client as GoogleGenaiClient
from openai import AsyncOpenAI

from github_analyst.providers.base import ProviderKind, ProviderSession, get_credential
from github_analyst.providers.chat_completions import DEFAULT_GROQ_BASE_URL, ChatCompletionsSession
from github_analyst.providers.gemini import GeminiSession
from github_analyst.tools.declarations import ToolDeclaration


def create_session(kind: ProviderKind, model_id: str, system_prompt: str, declarations: list[ToolDeclaration]) -> ProviderSession:
    """Create a session with the provider for a model.

    Raises:
        MissingCredentialError: If the provider's API key is not set. Raised before any client is created.
    """

    match kind:
        case ProviderKind.NATIVE_FUNCTION_CALLING:
            api_key: str = get_credential("GEMINI_API_KEY", "GOOGLE_API_KEY")

            return GeminiSession(
                model_id=model_id, system_prompt=system_prompt, declarations=declarations, client=GoogleGenaiClient(api_key=api_key)
            )
        case ProviderKind.CHAT_COMPLETIONS:
            api_key = get_credential("GROQ_API_KEY")

            return ChatCompletionsSession(
                model_id=model_id,
                system_prompt=system_prompt,
                declarations=declarations,
                client=AsyncOpenAI(api_key=api_key, base_url=os.getenv("GROQ_BASE_URL") or DEFAULT_GROQ_BASE_URL),
            )
        case _:
            assert_never(kind)
