"""Authentication schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class CurrentUser(BaseModel):
    """Current authenticated user information."""

    id: str = Field(..., description="User ID from the token subject")
    email: Optional[str] = Field(None, description="User email")
    role: str = Field(default="user", description="CRM role, e.g. admin, manager, agent")
