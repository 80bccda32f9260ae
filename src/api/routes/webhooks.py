"""Identity provider webhooks.

The identity provider signs each lifecycle notification with HMAC-SHA256
over the raw body and sends the hex digest in ``X-Webhook-Signature``.
"""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Header, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError

from src.api.deps import UserServiceDep, WorkflowServiceDep
from src.config import settings
from src.core.encryption import verify_signature
from src.models.user import IdentityWebhookEvent

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/identity")
async def identity_webhook(
    request: Request,
    users: UserServiceDep,
    workflows: WorkflowServiceDep,
    signature: Annotated[str | None, Header(alias="X-Webhook-Signature")] = None,
) -> dict[str, Any]:
    """Mirror identity provider users.

    ``user.created`` also installs the free workflow templates. Unknown
    event types are acknowledged and ignored.

    Raises:
        HTTPException 503: If no webhook secret is configured
        HTTPException 401: If the signature is missing or wrong
        HTTPException 400: If the body is malformed
    """
    if settings.identity_webhook_secret is None:
        logger.error("identity_webhook_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Identity webhook is not configured",
        )

    body = await request.body()
    secret = settings.identity_webhook_secret.get_secret_value()
    if signature is None or not verify_signature(secret, body, signature):
        logger.warning("identity_webhook_bad_signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        event = IdentityWebhookEvent.model_validate_json(body)
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed webhook payload",
        ) from e

    external_id = event.data.id
    log = logger.bind(event_type=event.type, external_id=external_id)

    if event.type in ("user.created", "user.updated"):
        user, created = await users.upsert(
            external_id=external_id,
            email=event.data.email,
            name=event.data.name,
        )
        installed = 0
        if event.type == "user.created":
            installed = await workflows.install_defaults(user.id)
        log.info("identity_webhook_processed", user_id=user.id, created=created, installed=installed)
        return {"status": "ok", "userId": user.id, "installedWorkflows": installed}

    if event.type == "user.deleted":
        deleted = await users.delete_by_external_id(external_id)
        log.info("identity_webhook_processed", deleted=deleted)
        return {"status": "ok", "deleted": deleted}

    log.info("identity_webhook_ignored")
    return {"status": "ignored"}
