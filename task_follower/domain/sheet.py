"""Registered spreadsheet model."""

from datetime import datetime

from pydantic import BaseModel, Field


class Sheet(BaseModel):
    """A spreadsheet the service follows."""

    sheet_id: str = Field(..., description="Google spreadsheet id")
    name: str = Field(default="", description="Human-readable label")
    created_at: datetime | None = Field(default=None, description="Registration time")


class SheetCreate(BaseModel):
    """Payload for registering a spreadsheet."""

    sheet_id: str = Field(..., min_length=1, description="Google spreadsheet id")
    name: str = Field(default="", description="Human-readable label")
