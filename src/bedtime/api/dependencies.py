"""FastAPI dependencies for request authentication and shared services.

This module provides reusable FastAPI dependencies for:
- Admin bearer-token and webhook shared-secret authentication
- Access to the UoW factory, artifact store and job processor held in app.state
"""

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from bedtime.core.config import Settings
from bedtime.services.storage.artifact_store import ArtifactStore
from bedtime.workers.job_processor import JobProcessor, UowFactory


def get_settings(request: Request) -> Settings:
    """Get the settings instance loaded at application startup.

    Returns:
        Settings stored in app.state by the lifespan handler.
    """
    return request.app.state.settings


def get_uow_factory(request: Request) -> UowFactory:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.post("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.books.get_by_id(book_id)
    """
    return request.app.state.uow_factory


def get_store(request: Request) -> ArtifactStore:
    """Get the artifact store from app state."""
    return request.app.state.store


def get_processor(request: Request) -> JobProcessor:
    """Get the shared job processor from app state."""
    return request.app.state.processor


def _secrets_match(provided: str, expected: str) -> bool:
    # Constant-time comparison; an unset secret never matches
    if not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def require_admin_key(
    authorization: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    """Require `Authorization: Bearer <ADMIN_API_KEY>`.

    Raises:
        HTTPException: 401 Unauthorized if the header is missing or the key is wrong
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header"
        )

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not _secrets_match(token.strip(), settings.admin_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


async def validate_webhook_secret(
    x_webhook_secret: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> None:
    """Validate the shared secret sent by the database change-notification webhook.

    Raises:
        HTTPException: 401 Unauthorized if the header is missing or does not match
    """
    if not x_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Webhook-Secret header"
        )

    if not _secrets_match(x_webhook_secret, settings.webhook_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret"
        )
