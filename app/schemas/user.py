from pydantic import BaseModel
from typing import Optional


class AuthIdentity(BaseModel):
    """Claims taken from the auth provider's access token."""
    id: str
    email: str = ""
    full_name: Optional[str] = None


class CurrentUser(BaseModel):
    id: str
    email: str
    full_name: str = ""


class LogoutResponse(BaseModel):
    success: bool
    steps: dict[str, bool]
