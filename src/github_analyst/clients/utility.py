import base64
from collections.abc import Sequence

from githubkit.response import Response
from pydantic import BaseModel

GITHUBKIT_RESPONSE_TYPE = BaseModel | Sequence[BaseModel]


def extract_response[T: GITHUBKIT_RESPONSE_TYPE](response: Response[T], /) -> T:
    """Extract the response from a response."""

    return response.parsed_data


def decode_content(content: str) -> str:
    return base64.b64decode(content).decode("utf-8")
