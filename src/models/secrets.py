"""Secret payload schemas.

A credential's decrypted secret has a shape fixed by its (kind, provider)
pair. ``validate_secret`` is the single entry point; it is pure and never
touches the database.

Field names may be sent in snake_case or camelCase (``refreshToken``).
Stored payloads are always snake_case.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from src.core.errors import ValidationError


class CredentialKind(str, Enum):
    """How a credential authenticates."""

    OAUTH = "OAUTH"
    API_KEY = "API_KEY"


class CredentialProvider(str, Enum):
    """Third-party service a credential belongs to."""

    GOOGLE = "GOOGLE"
    SLACK = "SLACK"
    HUBSPOT = "HUBSPOT"
    FIRECRAWL = "FIRECRAWL"
    CUSTOM = "CUSTOM"


class CredentialValidationError(ValidationError):
    """Secret payload does not match its schema."""

    pass


class UnsupportedCredentialKind(CredentialValidationError):
    """No schema exists for the (kind, provider) pair."""

    def __init__(self, kind: str, provider: str) -> None:
        super().__init__(
            f"Unsupported credential type/provider combination: {kind}/{provider}",
            errors=[f"provider: {provider} does not support {kind} credentials"],
        )
        self.kind = kind
        self.provider = provider


class SecretModel(BaseModel):
    """Base for secret payload models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        loc_by_alias=False,
        extra="ignore",
    )


class OAuthSecret(SecretModel):
    """Base OAuth secret.

    ``expires_in`` is the absolute expiry instant in epoch milliseconds.
    """

    access_token: str = Field(min_length=1)
    refresh_token: str | None = None
    expires_in: int | None = None
    scopes: list[str] | None = None


class GoogleOAuthSecret(OAuthSecret):
    refresh_token: str = Field(min_length=1)
    expires_in: int
    scopes: list[str]


class SlackOAuthSecret(OAuthSecret):
    team_id: str = Field(min_length=1)


class HubspotOAuthSecret(OAuthSecret):
    refresh_token: str = Field(min_length=1)
    hub_id: int | str


class ApiKeySecret(SecretModel):
    api_key: str = Field(min_length=1)


class FirecrawlApiKeySecret(ApiKeySecret):
    pass


class CustomApiKeySecret(ApiKeySecret):
    api_url: str | None = None


SECRET_SCHEMAS: dict[tuple[CredentialKind, CredentialProvider], type[SecretModel]] = {
    (CredentialKind.OAUTH, CredentialProvider.GOOGLE): GoogleOAuthSecret,
    (CredentialKind.OAUTH, CredentialProvider.SLACK): SlackOAuthSecret,
    (CredentialKind.OAUTH, CredentialProvider.HUBSPOT): HubspotOAuthSecret,
    (CredentialKind.API_KEY, CredentialProvider.FIRECRAWL): FirecrawlApiKeySecret,
    (CredentialKind.API_KEY, CredentialProvider.CUSTOM): CustomApiKeySecret,
}


def _format_errors(exc: PydanticValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "secret"
        messages.append(f"{location}: {error['msg']}")
    return messages


def get_secret_schema(
    kind: CredentialKind | str,
    provider: CredentialProvider | str,
) -> type[SecretModel]:
    """Look up the schema for a (kind, provider) pair.

    Raises:
        UnsupportedCredentialKind: If the pair has no schema
    """
    try:
        key = (CredentialKind(kind), CredentialProvider(provider))
    except ValueError as e:
        raise UnsupportedCredentialKind(str(kind), str(provider)) from e

    schema = SECRET_SCHEMAS.get(key)
    if schema is None:
        raise UnsupportedCredentialKind(key[0].value, key[1].value)
    return schema


def validate_secret(
    kind: CredentialKind | str,
    provider: CredentialProvider | str,
    payload: dict[str, Any],
) -> SecretModel:
    """Validate a secret payload against its (kind, provider) schema.

    Args:
        kind: Credential kind
        provider: Credential provider
        payload: Raw secret fields

    Returns:
        Parsed secret model

    Raises:
        UnsupportedCredentialKind: If the pair has no schema
        CredentialValidationError: If the payload is invalid, with one
            message per offending field
    """
    schema = get_secret_schema(kind, provider)
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as e:
        errors = _format_errors(e)
        raise CredentialValidationError(
            f"Invalid {schema.__name__} payload: {'; '.join(errors)}",
            errors=errors,
        ) from e


def dump_secret(secret: SecretModel) -> dict[str, Any]:
    """Serialize a secret for encryption (snake_case, unset optionals dropped)."""
    return secret.model_dump(mode="json", exclude_none=True)
