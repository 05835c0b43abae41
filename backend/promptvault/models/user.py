"""Authenticated principal as reported by Supabase Auth."""

from pydantic import BaseModel, ConfigDict


class AuthUser(BaseModel):
    """The signed-in user. Carries the access token so remote calls run as them."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    email: str | None = None
    role: str = "authenticated"
    access_token: str | None = None

    def __repr__(self) -> str:
        return f"<AuthUser id={self.id} email={self.email!r}>"
