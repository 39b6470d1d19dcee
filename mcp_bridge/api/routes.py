"""
FastAPI routes for the provider bridge.

Browser-facing OAuth endpoints live under ``/auth/provider``; the tool
endpoints under ``/provider`` expose the same operations the chat
orchestration layer consumes in-process.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, List
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from mcp_bridge.clients.provider_auth import ProviderTokenError
from mcp_bridge.clients.tenant_config import ConfigurationMissingError
from mcp_bridge.dependencies import (
    get_app_settings,
    get_authorization_flow,
    get_provider_tool_service,
    get_tenant_config_store,
)
from mcp_bridge.models.oauth import StoredOAuthToken
from mcp_bridge.schemas import (
    AuthorizationStartResponse,
    ConnectionStatus,
    OAuthCallbackPayload,
    TenantSettingsPayload,
    TenantSettingsResponse,
    ToolInvocationRequest,
    ToolInvocationResult,
    ToolSummary,
)
from mcp_bridge.services.oauth_flow import OAuthFlowError

router = APIRouter()
logger = logging.getLogger(__name__)

SESSION_COOKIE = "provider_oauth_session"

_CALLBACK_ERRORS = (OAuthFlowError, ProviderTokenError, ConfigurationMissingError)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _with_query(base_url: str, params: dict[str, str]) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode(params)}"


def _error_detail(exc: Exception) -> dict[str, str]:
    return {
        "error": getattr(exc, "error_code", "oauth_flow_failed"),
        "message": str(exc),
    }


def _connected_payload(record: StoredOAuthToken) -> dict[str, Any]:
    return {
        "status": "connected",
        "user_id": record.user_id,
        "tenant_id": record.tenant_id,
        "expires_at": record.expires_at.isoformat(),
    }


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/provider/authorize", status_code=HTTPStatus.OK)
async def start_provider_oauth_flow(
    request: Request,
    flow: Annotated[Any, Depends(get_authorization_flow)],
    settings: Annotated[Any, Depends(get_app_settings)],
    user_id: str = Query(..., description="User identifier initiating authentication."),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the provider consent screen.",
    ),
) -> Response:
    """
    Kick off the OAuth flow by creating a PKCE session and authorization URL.
    """
    try:
        auth_request = flow.start(user_id)
    except ConfigurationMissingError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail=_error_detail(exc)
        ) from exc

    session = auth_request.session
    if redirect or _wants_html(request):
        response: Response = RedirectResponse(
            url=auth_request.authorization_url,
            status_code=HTTPStatus.TEMPORARY_REDIRECT,
        )
    else:
        body = AuthorizationStartResponse(
            authorization_url=auth_request.authorization_url,
            state=session.state,
            session_id=session.session_id,
        )
        response = JSONResponse(content=body.model_dump())

    response.set_cookie(
        SESSION_COOKIE,
        session.session_id,
        max_age=settings.oauth.state_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.environment != "development",
    )
    return response


@router.post("/auth/provider/callback", status_code=HTTPStatus.OK)
async def handle_provider_oauth_callback(
    request: Request,
    payload: OAuthCallbackPayload,
    flow: Annotated[Any, Depends(get_authorization_flow)],
) -> dict:
    """Complete the OAuth exchange for API clients that relay the callback."""
    session_id = payload.session_id or request.cookies.get(SESSION_COOKIE)
    try:
        record = await flow.complete(
            session_id=session_id,
            code=payload.code,
            state=payload.state,
            error=payload.error,
        )
    except _CALLBACK_ERRORS as exc:
        logger.warning("Provider callback rejected: %s", _error_detail(exc)["error"])
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail=_error_detail(exc)
        ) from exc
    return _connected_payload(record)


@router.get("/auth/provider/callback", status_code=HTTPStatus.OK)
async def handle_provider_oauth_callback_get(
    request: Request,
    flow: Annotated[Any, Depends(get_authorization_flow)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: str | None = Query(default=None, description="Authorization code."),
    state: str | None = Query(default=None, description="State issued at authorize time."),
    error: str | None = Query(default=None, description="Provider rejection reason."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    """Provider redirect target; the PKCE session comes from the cookie."""
    redirect_target = (
        str(settings.frontend_base_url) if settings.frontend_base_url else None
    )
    should_redirect = bool(redirect_target) and (redirect or _wants_html(request))

    try:
        record = await flow.complete(
            session_id=request.cookies.get(SESSION_COOKIE),
            code=code,
            state=state,
            error=error,
        )
    except _CALLBACK_ERRORS as exc:
        detail = _error_detail(exc)
        logger.warning("Provider callback rejected: %s", detail["error"])
        if should_redirect:
            response: Response = RedirectResponse(
                url=_with_query(
                    redirect_target,
                    {"error": detail["error"], "error_description": detail["message"]},
                ),
                status_code=HTTPStatus.TEMPORARY_REDIRECT,
            )
        else:
            response = JSONResponse(
                status_code=HTTPStatus.BAD_REQUEST, content={"detail": detail}
            )
    else:
        if should_redirect:
            response = RedirectResponse(
                url=_with_query(redirect_target, {"provider_connected": "true"}),
                status_code=HTTPStatus.TEMPORARY_REDIRECT,
            )
        else:
            response = JSONResponse(content=_connected_payload(record))

    response.delete_cookie(SESSION_COOKIE)
    return response


@router.post("/auth/provider/disconnect", status_code=HTTPStatus.OK)
async def disconnect_provider(
    service: Annotated[Any, Depends(get_provider_tool_service)],
    user_id: str = Query(..., description="User identifier to disconnect."),
) -> dict:
    """Delete the user's stored provider token."""
    had_token = service.disconnect(user_id)
    return {"status": "disconnected", "had_token": had_token}


@router.get("/provider/status", response_model=ConnectionStatus)
async def provider_status(
    service: Annotated[Any, Depends(get_provider_tool_service)],
    user_id: str = Query(...),
) -> ConnectionStatus:
    return await service.status(user_id)


@router.get("/provider/tools", response_model=List[ToolSummary])
async def list_provider_tools(
    service: Annotated[Any, Depends(get_provider_tool_service)],
    user_id: str = Query(...),
) -> List[ToolSummary]:
    """List the tools the provider currently offers the user."""
    return await service.list_tool_summaries(user_id)


@router.post(
    "/provider/tools/{tool_name}/invoke", response_model=ToolInvocationResult
)
async def invoke_provider_tool(
    tool_name: str,
    service: Annotated[Any, Depends(get_provider_tool_service)],
    user_id: str = Query(...),
    payload: ToolInvocationRequest | None = None,
) -> ToolInvocationResult:
    """Invoke a tool by original name or sanitized key.

    Failures are reported in the body with ``success: false``.
    """
    arguments = payload.arguments if payload else {}
    return await service.invoke(user_id, tool_name, arguments)


@router.get("/settings/tenant", response_model=TenantSettingsResponse)
async def get_tenant_settings(
    tenant_configs: Annotated[Any, Depends(get_tenant_config_store)],
    user_id: str = Query(...),
) -> TenantSettingsResponse:
    config = tenant_configs.get(user_id)
    if config is None:
        return TenantSettingsResponse(configured=False)
    return TenantSettingsResponse(
        configured=True,
        account_id=config.account_id,
        client_id=config.client_id,
        updated_at=config.updated_at,
    )


@router.put("/settings/tenant", response_model=TenantSettingsResponse)
async def put_tenant_settings(
    payload: TenantSettingsPayload,
    tenant_configs: Annotated[Any, Depends(get_tenant_config_store)],
    user_id: str = Query(...),
) -> TenantSettingsResponse:
    """Register the provider account and public client id for a user."""
    config = tenant_configs.save(
        user_id=user_id, account_id=payload.account_id, client_id=payload.client_id
    )
    logger.info("Tenant settings updated", extra={"user_id": user_id})
    return TenantSettingsResponse(
        configured=True,
        account_id=config.account_id,
        client_id=config.client_id,
        updated_at=config.updated_at,
    )
