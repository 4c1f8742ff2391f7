"""Contact domain model."""

from pydantic import BaseModel, Field


class Contact(BaseModel):
    """A person as known to the member directory or a project roster."""

    person_id: str = Field(..., description="Stable membership number")
    name: str = Field(..., description="Display name")
    channel_address: str | None = Field(default=None, description="Telegram chat id, if registered")
    channel_handle: str | None = Field(default=None, description="Telegram username, if known")
    email: str | None = Field(default=None, description="Email address from the roster")
    phone: str | None = Field(default=None, description="Phone number from the roster")

    @property
    def is_reachable(self) -> bool:
        """Whether a message can be delivered to this contact."""
        return bool(self.channel_address)
