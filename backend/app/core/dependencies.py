from fastapi import Depends, Request

from app.core.security import SESSION_COOKIE_NAME, decode_token
from app.services.authorization import AccessControl, PanelSession


def get_panel_session(request: Request) -> PanelSession:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return PanelSession()

    payload = decode_token(token)
    if not payload or payload.get("type") != "session":
        return PanelSession()

    try:
        account_id = int(str(payload.get("sub")))
        level = int(payload.get("level", 0))
    except (TypeError, ValueError):
        return PanelSession()

    return PanelSession(
        account_id=account_id,
        userid=payload.get("userid"),
        server_name=payload.get("server"),
        level=level,
    )


def get_access_control(session: PanelSession = Depends(get_panel_session)) -> AccessControl:
    return AccessControl(session)
