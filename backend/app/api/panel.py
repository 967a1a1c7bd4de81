from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse

from app.core.config import settings
from app.core.dependencies import get_access_control
from app.core.security import SESSION_COOKIE_NAME, create_session_token
from app.db.session import ServerGroupRegistry, get_registry
from app.services import accounts, donations, templating
from app.services.authorization import AccessControl
from app.services.dispatcher import DispatchConfig, Route, RouteRequest, resolve_route

logger = logging.getLogger(__name__)

router = APIRouter(include_in_schema=False)


@dataclass
class ActionContext:
    request: Request
    route: Route
    access: AccessControl
    registry: ServerGroupRegistry
    form: dict[str, str]


ActionResult = dict[str, Any] | Response
ActionHandler = Callable[[ActionContext], Awaitable[ActionResult]]
ACTIONS: dict[tuple[str, str], ActionHandler] = {}


def action(module: str, name: str) -> Callable[[ActionHandler], ActionHandler]:
    def register(handler: ActionHandler) -> ActionHandler:
        ACTIONS[(module, name)] = handler
        return handler

    return register


def dispatch_config() -> DispatchConfig:
    return DispatchConfig(
        default_module=settings.default_module,
        default_action=settings.default_action,
        use_clean_urls=settings.use_clean_urls,
        base_uri=settings.base_uri,
    )


def _safe_return_location(value: str | None) -> str | None:
    if not value or not value.startswith("/") or value.startswith("//"):
        return None
    return value


@action("main", "index")
async def main_index(ctx: ActionContext) -> ActionResult:
    return {"server_names": ctx.registry.names()}


@action("unauthorized", "index")
async def unauthorized_index(ctx: ActionContext) -> ActionResult:
    return {}


@action("account", "login")
async def account_login(ctx: ActionContext) -> ActionResult:
    return_to = ctx.route.return_to or ctx.route.params.get("return_to")
    data: dict[str, Any] = {
        "server_names": ctx.registry.names(),
        "return_to": return_to or "",
        "message": ctx.route.message,
        "error": None,
    }
    if ctx.request.method != "POST":
        return data

    server_name = ctx.form.get("server") or (ctx.registry.names() or [""])[0]
    try:
        account = await accounts.authenticate(
            ctx.registry,
            server_name=server_name,
            userid=ctx.form.get("username", ""),
            password=ctx.form.get("password", ""),
        )
    except accounts.AuthenticationError as exc:
        data["error"] = str(exc)
        return data

    token = create_session_token(
        account_id=account.account_id, userid=account.userid, server_name=server_name, level=account.level
    )
    target = _safe_return_location(return_to) or templating.url("account", "view")
    response = RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
        max_age=settings.session_exp_minutes * 60,
    )
    logger.info("Account %s logged in on %s", account.account_id, server_name)
    return response


@action("account", "logout")
async def account_logout(ctx: ActionContext) -> ActionResult:
    response = RedirectResponse(templating.url(settings.default_module, settings.default_action), status_code=303)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response


@action("account", "view")
async def account_view(ctx: ActionContext) -> ActionResult:
    session = ctx.access.session
    overview = None
    if session.account_id is not None and session.server_name:
        overview = await accounts.load_account_overview(
            ctx.registry, server_name=session.server_name, account_id=session.account_id
        )
    return {
        "overview": overview,
        "account": overview.account if overview else None,
        "is_mine": True,
        "allowed_to_donate": ctx.access.allowed_to_donate,
    }


@action("donate", "index")
async def donate_index(ctx: ActionContext) -> ActionResult:
    session = ctx.access.session
    if not settings.donation_enabled or session.account_id is None or not session.server_name:
        return {"form": None}
    origin = settings.site_origin.rstrip("/")
    form = donations.build_donation_form(
        account_id=session.account_id,
        server_name=session.server_name,
        notify_url=f"{origin}/api/v1/paypal/notify",
        return_url=f"{origin}{templating.url('account', 'view')}",
    )
    return {"form": form}


async def _request_params(request: Request) -> tuple[dict[str, str], dict[str, str]]:
    params = dict(request.query_params)
    form: dict[str, str] = {}
    if request.method == "POST":
        submitted = await request.form()
        form = {key: value for key, value in submitted.items() if isinstance(value, str)}
        params.update(form)
    return params, form


@router.api_route("/{path:path}", methods=["GET", "POST"], response_class=HTMLResponse)
async def dispatch(
    request: Request,
    path: str,
    access: AccessControl = Depends(get_access_control),
    registry: ServerGroupRegistry = Depends(get_registry),
) -> Response:
    params, form = await _request_params(request)
    request_uri = request.url.path + (f"?{request.url.query}" if request.url.query else "")
    route = resolve_route(RouteRequest(request_uri=request_uri, params=params), dispatch_config(), access)
    request.state.panel_route = f"{route.module}/{route.action}"

    defaults = {"params": route.params, "session": access.session, "auth": access, "message": route.message}
    handler = ACTIONS.get((route.module, route.action))
    if handler is None:
        logger.info("No action for %s/%s", route.module, route.action)
        html = templating.render_missing_action(route.module, route.action, defaults)
        return HTMLResponse(html, status_code=status.HTTP_404_NOT_FOUND)

    result = await handler(ActionContext(request=request, route=route, access=access, registry=registry, form=form))
    if isinstance(result, Response):
        return result
    return HTMLResponse(templating.render_view(route.module, route.action, {**defaults, **result}))
