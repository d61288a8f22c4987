import json
from typing import Any, Literal, get_args

from pydantic import BaseModel, Field, ValidationError

ResponseType = Literal["text", "diff", "chart", "table", "mixed"]

RESPONSE_TYPES: tuple[str, ...] = get_args(ResponseType)

MIXED_FALLBACK_SUMMARY = "Mixed analysis"
TEXT_FALLBACK_SUMMARY = "Text response"


class StructuredResponse(BaseModel):
    """The final answer of the model, classified into one of the renderable response types."""

    type: ResponseType = Field(description="How the response should be rendered.")
    data: dict[str, Any] = Field(description="The payload for the response type, e.g. `content` for text.")

    @classmethod
    def text(cls, content: str) -> "StructuredResponse":
        return cls(type="text", data={"content": content})


def classify(raw: str) -> StructuredResponse:
    """Turn the final text of the model into a structured response.

    Text that is a JSON object with a known `type` and a `data` key is taken as is. Anything else,
    including malformed JSON, is wrapped as a text response with the raw text as its content.
    """

    stripped: str = raw.strip()

    if not (stripped.startswith("{") and stripped.endswith("}")):
        return StructuredResponse.text(content=raw)

    try:
        parsed: Any = json.loads(stripped)  # pyright: ignore[reportAny]
    except (ValueError, RecursionError):
        # Malformed, too deeply nested, or holding numbers too long to convert
        return StructuredResponse.text(content=raw)

    if not isinstance(parsed, dict) or parsed.get("type") not in RESPONSE_TYPES or "data" not in parsed:  # pyright: ignore[reportUnknownMemberType]
        return StructuredResponse.text(content=raw)

    data: Any = parsed["data"]  # pyright: ignore[reportAny]

    if data is None:
        data = {"content": raw}

    if not isinstance(data, dict):
        return StructuredResponse.text(content=raw)

    try:
        return StructuredResponse(type=parsed["type"], data=data)  # pyright: ignore[reportUnknownArgumentType]
    except ValidationError:
        return StructuredResponse.text(content=raw)


def summarize(response: StructuredResponse) -> str:
    """A short plain-text version of a response, stored as the content of the message."""

    match response.type:
        case "text":
            content: Any = response.data.get("content")  # pyright: ignore[reportAny]
            return content if isinstance(content, str) else TEXT_FALLBACK_SUMMARY
        case "mixed":
            for section in response.data.get("sections") or []:  # pyright: ignore[reportAny]
                if isinstance(section, dict) and section.get("type") == "text":  # pyright: ignore[reportUnknownMemberType]
                    section_data: Any = section.get("data")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
                    if isinstance(section_data, dict) and isinstance(section_data.get("content"), str):  # pyright: ignore[reportUnknownMemberType]
                        return section_data["content"]  # pyright: ignore[reportUnknownVariableType]
            return MIXED_FALLBACK_SUMMARY
        case _:
            label: str = response.type.capitalize()
            if title := response.data.get("title"):  # pyright: ignore[reportAny]
                return f"{label}: {title}"
            return f"{label} response"
