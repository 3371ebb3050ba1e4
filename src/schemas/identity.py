"""Identity issued by the session provider."""
from pydantic import BaseModel, ConfigDict


class IdentityMetadata(BaseModel):
    """Optional display metadata supplied by the OAuth provider."""

    model_config = ConfigDict(frozen=True)

    avatar_url: str | None = None
    full_name: str | None = None


class Identity(BaseModel):
    """
    The authenticated actor on whose behalf bookmarks are owned and queried.

    Immutable: sign-in and sign-out replace the whole value.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    email: str | None = None
    user_metadata: IdentityMetadata | None = None

    @property
    def avatar_letter(self) -> str:
        """First letter of the email, upper-cased, or '?' when unknown."""
        if self.email:
            return self.email[0].upper()
        return "?"
