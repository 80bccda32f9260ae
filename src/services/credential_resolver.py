"""Credential resolver.

Runs before a workflow's business logic. Finds the workflow instance the
event belongs to, decrypts its linked credentials and builds the provider
clients the handlers use. The result is an immutable ExecutionContext passed
explicitly to handlers.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ValidationError
from src.integrations.google import GmailClient, SheetsClient
from src.integrations.slack import SlackClient
from src.models.credential import Credential
from src.models.secrets import CredentialKind, CredentialProvider, validate_secret
from src.models.workflow import WorkflowCredential, WorkflowInstance
from src.services.credential_service import CredentialService, CredentialServiceError
from src.services.token_refresher import OAuthTokenRefresher, TokenRefreshClient

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResolvedCredential:
    """A decrypted credential linked to the workflow.

    For OAuth credentials ``refresher`` holds the live token state; read
    the secret through it after a refresh.
    """

    id: str
    kind: CredentialKind
    provider: CredentialProvider
    secret: dict[str, Any] = field(repr=False)
    refresher: OAuthTokenRefresher | None = field(default=None, repr=False)


@dataclass(frozen=True)
class ExecutionContext:
    """Everything a workflow handler may use besides its event."""

    user_id: str
    workflow_id: str | None = None
    workflow_name: str | None = None
    credentials: tuple[ResolvedCredential, ...] = ()
    sheets: SheetsClient | None = None
    gmail: GmailClient | None = None
    slack: SlackClient | None = None

    def credential_for(self, provider: CredentialProvider) -> ResolvedCredential | None:
        """First linked credential for a provider."""
        for credential in self.credentials:
            if credential.provider == provider:
                return credential
        return None


class CredentialResolver:
    """Builds ExecutionContexts for workflow executions.

    Example usage:
        resolver = CredentialResolver(session, vault, get_integration_registry())
        context = await resolver.resolve("workflow/report.requested", user_id)
    """

    def __init__(
        self,
        session: AsyncSession,
        vault: CredentialService,
        token_client: TokenRefreshClient,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._session = session
        self._vault = vault
        self._token_client = token_client
        self._transport = transport

    async def resolve(
        self,
        event_name: str,
        owner_user_id: str,
        workflow_id: str | None = None,
    ) -> ExecutionContext:
        """Resolve credentials for the workflow triggered by an event.

        Args:
            event_name: Business event name (identifies the template)
            owner_user_id: User who owns the workflow instance
            workflow_id: Narrows the lookup when the event carries it

        Returns:
            ExecutionContext; empty when no matching instance exists
        """
        log = logger.bind(event_name=event_name, user_id=owner_user_id)

        query = select(WorkflowInstance).where(
            WorkflowInstance.event_name == event_name,
            WorkflowInstance.user_id == owner_user_id,
        )
        if workflow_id is not None:
            query = query.where(WorkflowInstance.id == workflow_id)
        result = await self._session.execute(query.limit(1))
        workflow = result.scalar_one_or_none()

        if workflow is None:
            log.info("credential_resolution_no_workflow")
            return ExecutionContext(user_id=owner_user_id)

        rows = await self._session.execute(
            select(Credential)
            .join(WorkflowCredential, WorkflowCredential.credential_id == Credential.id)
            .where(
                WorkflowCredential.workflow_id == workflow.id,
                Credential.user_id == owner_user_id,
            )
            .order_by(WorkflowCredential.position)
        )

        credentials: list[ResolvedCredential] = []
        for row in rows.scalars().all():
            resolved = self._resolve_one(row)
            if resolved is not None:
                credentials.append(resolved)

        clients = self._build_clients(credentials)
        log.info(
            "credentials_resolved",
            workflow_id=workflow.id,
            resolved=len(credentials),
            clients=sorted(clients),
        )

        return ExecutionContext(
            user_id=owner_user_id,
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            credentials=tuple(credentials),
            **clients,
        )

    def _resolve_one(self, row: Credential) -> ResolvedCredential | None:
        try:
            decrypted = self._vault.decrypt_entity(row)
            validate_secret(row.kind, row.provider, decrypted.secret)
        except (CredentialServiceError, ValidationError) as e:
            # One bad credential must not block the others.
            logger.warning(
                "credential_resolution_skipped",
                credential_id=row.id,
                error_type=type(e).__name__,
            )
            return None

        refresher = None
        if decrypted.kind == CredentialKind.OAUTH:
            refresher = OAuthTokenRefresher(decrypted, self._vault, self._token_client)

        return ResolvedCredential(
            id=decrypted.id,
            kind=decrypted.kind,
            provider=decrypted.provider,
            secret=decrypted.secret,
            refresher=refresher,
        )

    def _build_clients(self, credentials: list[ResolvedCredential]) -> dict[str, Any]:
        clients: dict[str, Any] = {}
        for credential in credentials:
            if credential.refresher is None:
                continue
            if credential.provider == CredentialProvider.GOOGLE and "sheets" not in clients:
                # Sheets and Gmail share one refresher so a refresh happens once.
                clients["sheets"] = SheetsClient(credential.refresher, self._transport)
                clients["gmail"] = GmailClient(credential.refresher, self._transport)
            elif credential.provider == CredentialProvider.SLACK and "slack" not in clients:
                clients["slack"] = SlackClient(credential.refresher, self._transport)
        return clients
