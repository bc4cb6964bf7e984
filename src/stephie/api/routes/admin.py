"""Manual and scheduled metadata resync endpoints."""

import hmac
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse

from stephie import config as config_module
from stephie.api.schemas import SyncResponse
from stephie.tools.admin import resync_metadata

log = structlog.get_logger()


def _bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def _matches(presented: str | None, expected: str) -> bool:
    return presented is not None and hmac.compare_digest(presented, expected)


async def require_admin_token(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Require the admin bearer token in production."""
    cfg = config_module.settings
    if not cfg.is_production:
        return
    expected = cfg.admin_token.get_secret_value()
    if not expected or not _matches(_bearer(authorization), expected):
        log.warning("Rejected admin resync request")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def require_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Require the cron bearer secret."""
    expected = config_module.settings.cron_secret.get_secret_value()
    if not expected or not _matches(_bearer(authorization), expected):
        log.warning("Rejected cron resync request")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_token)],
)

cron_router = APIRouter(
    prefix="/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


def _sync_response(payload: dict) -> JSONResponse:
    body = SyncResponse(**payload)
    code = status.HTTP_200_OK if body.success else status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=code, content=body.model_dump(exclude_none=True))


@router.post("/sync-metadata", response_model=SyncResponse)
async def sync_metadata() -> JSONResponse:
    """Run a full metadata sync on demand."""
    return _sync_response(
        await resync_metadata(timeout_seconds=config_module.settings.metadata_sync_timeout_seconds)
    )


@cron_router.get("/sync-metadata", response_model=SyncResponse)
async def scheduled_sync_metadata() -> JSONResponse:
    """Scheduled full metadata sync."""
    log.info("Scheduled metadata resync triggered")
    return _sync_response(
        await resync_metadata(timeout_seconds=config_module.settings.metadata_sync_timeout_seconds)
    )
