from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from app.core.config import settings

GUEST_LEVEL = -1


@dataclass(frozen=True)
class PanelSession:
    account_id: int | None = None
    userid: str | None = None
    server_name: str | None = None
    level: int = GUEST_LEVEL

    @property
    def logged_in(self) -> bool:
        return self.account_id is not None


class AccessControl:
    """Minimum account level per module/action; ``*`` is the module-wide fallback."""

    def __init__(
        self,
        session: PanelSession,
        levels: Mapping[str, Mapping[str, int]] | None = None,
        default_level: int | None = None,
    ):
        self.session = session
        self.levels = levels if levels is not None else settings.access_levels
        self.default_level = default_level if default_level is not None else settings.access_default_level

    @property
    def logged_in(self) -> bool:
        return self.session.logged_in

    def required_level(self, module: str, action: str) -> int:
        actions = self.levels.get(module)
        if actions is None:
            return self.default_level
        if action in actions:
            return int(actions[action])
        return int(actions.get("*", self.default_level))

    def action_allowed(self, module: str, action: str) -> bool:
        required = self.required_level(module, action)
        if required <= GUEST_LEVEL:
            return True
        return self.session.logged_in and self.session.level >= required

    @property
    def allowed_to_donate(self) -> bool:
        return bool(settings.donation_enabled) and self.action_allowed("donate", "index")
