from typing import Annotated

from pydantic import Field

OWNER_DESCRIPTION = "The owner of the repository."
OWNER = Annotated[str, Field(description=OWNER_DESCRIPTION)]

REPO_DESCRIPTION = "The name of the repository."
REPO = Annotated[str, Field(description=REPO_DESCRIPTION)]

QUERY_DESCRIPTION = "The question to answer about the repository."
QUERY = Annotated[str, Field(description=QUERY_DESCRIPTION)]

SESSION_ID_DESCRIPTION = "The conversation the question belongs to. Defaults to `owner/repo`."
SESSION_ID = Annotated[str | None, Field(description=SESSION_ID_DESCRIPTION)]

FOCUS_CONTRIBUTORS_DESCRIPTION = "The logins of contributors the analysis should focus on."
FOCUS_CONTRIBUTORS = Annotated[list[str] | None, Field(description=FOCUS_CONTRIBUTORS_DESCRIPTION)]

MODEL_ID_DESCRIPTION = "The model to answer with, e.g. `gemini-2.0-flash` or `llama-3.3-70b-versatile`. Defaults to the server's default model."
MODEL_ID = Annotated[str | None, Field(description=MODEL_ID_DESCRIPTION)]
