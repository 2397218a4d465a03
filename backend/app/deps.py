"""FastAPI dependencies shared by the routers."""

import logging

from fastapi import Header, HTTPException, Request

from app.config import get_settings
from services.admission import AdmissionGate
from services.auth import bearer_token, verify_access_token
from services.container import PipelineServices
from services.errors import AuthenticationError, PipelineError

logger = logging.getLogger(__name__)


def error_detail(exc: PipelineError) -> dict[str, str]:
    return {"code": exc.code, "message": str(exc)}


def current_owner(authorization: str | None = Header(default=None)) -> str:
    """Owner id from the bearer token."""
    settings = get_settings()
    try:
        return verify_access_token(
            bearer_token(authorization),
            settings.jwt_secret,
            audience=settings.jwt_audience,
        )
    except AuthenticationError as exc:
        logger.info("[auth] rejected request: %s", exc)
        raise HTTPException(status_code=401, detail=error_detail(exc)) from exc


def get_services(request: Request) -> PipelineServices:
    return request.app.state.services


def get_gate(request: Request) -> AdmissionGate:
    return request.app.state.gate
