from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

LOGIN_MODULE = "account"
LOGIN_ACTION = "login"
UNAUTHORIZED_MODULE = "unauthorized"
LOGIN_REQUIRED_MESSAGE = "Please login to continue."

_UNSAFE_PARTS = ("..", "/", "\\")
_REPEATED_SLASHES = re.compile(r"/+")


class DispatcherConfigError(RuntimeError):
    pass


class Authorizer(Protocol):
    @property
    def logged_in(self) -> bool: ...

    def action_allowed(self, module: str, action: str) -> bool: ...


@dataclass(frozen=True)
class DispatchConfig:
    default_module: str
    default_action: str = "index"
    use_clean_urls: bool = False
    base_uri: str = "/"


@dataclass(frozen=True)
class RouteRequest:
    request_uri: str
    params: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Route:
    module: str
    action: str
    params: dict[str, str]
    message: str | None = None
    return_to: str | None = None


def sanitize_name(value: str | None) -> str:
    cleaned = value or ""
    for part in _UNSAFE_PARTS:
        cleaned = cleaned.replace(part, "")
    return cleaned


def _normalize_path(path: str) -> str:
    return _REPEATED_SLASHES.sub("/", path.rstrip("/")) + "/"


def _clean_url_components(request_uri: str, base_uri: str) -> list[str]:
    base = _normalize_path(base_uri or "/")
    path = _normalize_path(request_uri.split("?", 1)[0])
    remainder = path[len(base):] if path.startswith(base) else path
    return remainder.strip("/").split("/")


def _resolve_names(request: RouteRequest, config: DispatchConfig) -> tuple[str, str]:
    if config.use_clean_urls:
        components = _clean_url_components(request.request_uri, config.base_uri)
        module = sanitize_name(components[0]) if components else ""
        action = sanitize_name(components[1]) if len(components) > 1 else ""
        return module or config.default_module, action or config.default_action

    module = request.params.get("module") or ""
    action = request.params.get("action") or ""
    if not module and not action:
        return config.default_module, config.default_action
    module = sanitize_name(module) or config.default_module
    action = sanitize_name(action) or config.default_action
    return module, action


def resolve_route(request: RouteRequest, config: DispatchConfig, authorizer: Authorizer) -> Route:
    """Pick the module/action for one request, falling back to login or unauthorized on denial."""
    if not config.default_module:
        raise DispatcherConfigError("Default module is not configured (set DEFAULT_MODULE)")
    if not config.default_action:
        raise DispatcherConfigError("Default action is not configured (set DEFAULT_ACTION)")

    module, action = _resolve_names(request, config)
    message = None
    return_to = None
    if not authorizer.action_allowed(module, action):
        if not authorizer.logged_in:
            message = LOGIN_REQUIRED_MESSAGE
            return_to = request.request_uri
            module, action = LOGIN_MODULE, LOGIN_ACTION
        else:
            module, action = UNAUTHORIZED_MODULE, config.default_action

    params = dict(request.params)
    params["module"] = module
    params["action"] = action
    return Route(module=module, action=action, params=params, message=message, return_to=return_to)
