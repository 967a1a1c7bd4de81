from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from app.core.config import settings
from app.services import accounts

TEMPLATE_ROOT = Path(__file__).parent.parent / "templates"
MISSING_VIEW = "errors/missing_view.html"
MISSING_ACTION = "errors/missing_action.html"


def url(module: str, action: str = "index", **params: Any) -> str:
    """Link to a module/action in the configured URL style."""
    base = "/" + (settings.base_uri or "/").strip("/")
    base = base.rstrip("/") + "/"
    query = {k: v for k, v in params.items() if v is not None}
    if settings.use_clean_urls:
        path = f"{base}{module}/{action}"
        return f"{path}?{urlencode(query)}" if query else path
    return f"{base}?{urlencode({'module': module, 'action': action, **query})}"


def format_datetime(value: datetime | None, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    return value.strftime(fmt) if value else ""


@lru_cache
def get_environment(theme: str) -> Environment:
    theme_dir = TEMPLATE_ROOT / theme
    loaders = [str(theme_dir)]
    if theme != "default":
        loaders.append(str(TEMPLATE_ROOT / "default"))
    env = Environment(loader=FileSystemLoader(loaders), autoescape=select_autoescape(["html", "xml"]))
    env.globals.update(
        url=url,
        format_datetime=format_datetime,
        gender_text=accounts.gender_text,
        account_state_text=accounts.account_state_text,
    )
    return env


def view_name(module: str, action: str) -> str:
    return f"{module}/{action}.html"


def render_view(module: str, action: str, context: dict[str, Any]) -> str:
    env = get_environment(settings.theme or "default")
    data = {"app_name": settings.app_name, "module_name": module, "action_name": action, **context}
    try:
        template = env.get_template(view_name(module, action))
    except TemplateNotFound:
        template = env.get_template(MISSING_VIEW)
    return template.render(**data)


def render_missing_action(module: str, action: str, context: dict[str, Any]) -> str:
    env = get_environment(settings.theme or "default")
    data = {"app_name": settings.app_name, "module_name": module, "action_name": action, **context}
    return env.get_template(MISSING_ACTION).render(**data)
