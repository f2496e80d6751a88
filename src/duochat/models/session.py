"""
Participant and session models.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class Participant(BaseModel):
    """A directory entry. Wire shape: {_id, name, email}."""
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    display_name: str = Field(default="", validation_alias=AliasChoices("name", "displayName", "display_name"))
    email: str = ""

    model_config = {"frozen": True, "populate_by_name": True}


class SessionContext(BaseModel):
    """The authenticated participant and token. Read-only input to the engine."""
    user: Participant
    token: str
    base_url: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def user_id(self) -> str:
        return self.user.id
