import math
import re

from github_analyst.clients.errors.github import RequestError, ResourceNotFoundError
from github_analyst.providers.base import MissingCredentialError, ProviderError

RATE_LIMIT_STATUS = 429
INVALID_REQUEST_STATUS = 400
ACCESS_DENIED_STATUS = 403
MODEL_NOT_FOUND_STATUS = 404

RATE_LIMIT_KEYWORDS: tuple[str, ...] = ("quota", "rate limit", "too many requests")

MODEL_NAME_PATTERN = re.compile(r"model:\s*([^\s,]+)")

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


def is_rate_limit(error: ProviderError) -> bool:
    if error.status == RATE_LIMIT_STATUS:
        return True

    message: str = error.message.lower()

    return any(keyword in message for keyword in RATE_LIMIT_KEYWORDS)


def describe_retry_delay(seconds: int) -> str:
    if seconds > 60:  # noqa: PLR2004
        return f"Please try again in about {math.ceil(seconds / 60)} minutes."

    return f"Please try again in {seconds} seconds."


def describe_missing_credential(error: MissingCredentialError) -> str:
    return (
        f"⚠️ **API key not configured**\n\n"
        f"The selected model needs the `{error.env_var}` environment variable to be set on the server."
    )


def describe_provider_error(error: ProviderError, model_id: str) -> str:
    """Turn a provider failure into a message for the user, by category."""

    if isinstance(error, MissingCredentialError):
        return describe_missing_credential(error)

    if is_rate_limit(error):
        model_match = MODEL_NAME_PATTERN.search(error.message)
        model_name: str = model_match.group(1) if model_match else (error.model_id or model_id)

        retry_info: str = f" {describe_retry_delay(error.retry_delay_seconds)}" if error.retry_delay_seconds is not None else ""

        return (
            f"⏱️ **Rate Limit Reached**\n\n"
            f"You've reached the request limit for the **{model_name}** model.{retry_info}\n\n"
            "**What you can do:**\n"
            "- Wait a moment and try again\n"
            "- Switch to a different model\n"
            "- Upgrade your API plan for higher limits\n\n"
            "💡 *Tip: Different models have separate rate limits, so switching models can help!*"
        )

    if error.status == INVALID_REQUEST_STATUS:
        return (
            "❌ **Invalid Request**\n\n"
            "There was an issue with the request format.\n\n"
            "This might be a temporary issue. Please try:\n"
            "- Rephrasing your question\n"
            "- Trying a different model\n"
            "- Waiting a moment and trying again"
        )

    if error.status == ACCESS_DENIED_STATUS:
        return (
            "🔒 **Access Denied**\n\n"
            "The API key doesn't have permission for this operation.\n\n"
            "Please check:\n"
            "- Your API key is valid\n"
            "- The API key has the necessary permissions\n"
            "- Your API quota hasn't been exceeded"
        )

    if error.status == MODEL_NOT_FOUND_STATUS:
        return (
            f"🔍 **Model Not Found**\n\n"
            f"The selected AI model ({model_id}) couldn't be found.\n\n"
            "This might mean:\n"
            "- The model is not available in your region\n"
            "- The model name has changed\n"
            "- The model requires a different API tier\n\n"
            "Try selecting a different model."
        )

    short_error: str = error.message.split("\n")[0] or GENERIC_ERROR_MESSAGE

    return f"❌ **Error analyzing repository**\n\n{short_error}\n\nPlease try again or rephrase your question."


def describe_repository_error(error: RequestError, owner: str, repo: str) -> str:
    """Turn a failure to look up the repository on GitHub into a message for the user."""

    if isinstance(error, ResourceNotFoundError):
        return (
            f"🔍 **Repository Not Found**\n\n"
            f"The repository {owner}/{repo} couldn't be found on GitHub.\n\n"
            "Please check:\n"
            "- The owner and repository names are spelled correctly\n"
            "- The repository is public, or the server's GitHub token can access it"
        )

    return f"❌ **Error fetching repository**\n\n{error}\n\nPlease try again in a moment."
