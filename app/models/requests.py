"""
Request models for the GPT quota proxy API.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AskRequest(BaseModel):
    """
    Body of ``POST /gpt/ask``.

    ``messages`` is passed through to the upstream API as given. Only its
    shape (an array) is checked, by the proxy service.
    """

    messages: Any = Field(
        default=None,
        description="Chat messages forwarded to the upstream API",
    )

    model_config = ConfigDict(extra="ignore")
