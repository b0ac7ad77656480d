# models/domain/oauth_domain.py
"""
OAuth domain models shared by the provider adapters and the OAuth flow.
"""

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field


class TokenSet(BaseModel):
    """Tokens issued by a provider token endpoint (code exchange or refresh)."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scope: str = ""
    token_type: str = "Bearer"

    @classmethod
    def from_token_response(
        cls, data: dict, default_expires_in: int | None = None
    ) -> "TokenSet":
        """Build from a raw OAuth token endpoint JSON body."""
        expires_in = data.get("expires_in") or default_expires_in
        expires_at = None
        if expires_in:
            expires_at = datetime.now(UTC) + timedelta(seconds=int(expires_in))

        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
            scope=data.get("scope", ""),
            token_type=data.get("token_type", "Bearer"),
        )


class ProviderCredentials(BaseModel):
    """
    Live credentials for one sync run.

    Adapters mutate this object in place when they refresh the access
    token, so later pages of the same run use the new token.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def needs_refresh(self, buffer_seconds: int = 60) -> bool:
        if not self.expires_at or not self.refresh_token:
            return False
        return datetime.now(UTC) + timedelta(seconds=buffer_seconds) >= self.expires_at

    def apply(self, tokens: TokenSet) -> None:
        self.access_token = tokens.access_token
        self.expires_at = tokens.expires_at
        if tokens.refresh_token:
            self.refresh_token = tokens.refresh_token


class AccountProfile(BaseModel):
    """Identity of the provider account that granted access."""

    account_id: str
    email: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    display_name: str | None = None


class OAuthStatePayload(BaseModel):
    """Intent carried across the stateless OAuth redirect."""

    tenant_id: str = Field(alias="tenantId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
