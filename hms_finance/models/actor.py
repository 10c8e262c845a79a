"""
Actor Models

The core never authenticates anyone. It receives an already-validated
identity from the caller and only enforces what each role may do.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """
    Actor roles, from most to least trusted.

    ADMIN: full trust, mutates directly and resolves requests
    ASSISTANT: limited trust, every mutation becomes a PendingRequest
    USER: read-only viewer
    """
    ADMIN = "admin"
    ASSISTANT = "assistant"
    USER = "user"


class Actor(BaseModel):
    """An authenticated caller."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    username: str = Field(..., min_length=1)
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
