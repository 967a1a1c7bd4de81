from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1 import paypal
from app.db.session import ServerGroupRegistry, get_registry

api_router = APIRouter()

api_router.include_router(paypal.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/health/ready", tags=["health"])
async def readiness(registry: ServerGroupRegistry = Depends(get_registry)) -> dict:
    groups: dict[str, str] = {}
    for group in registry:
        try:
            async with group.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            groups[group.name] = "ok"
        except SQLAlchemyError:
            groups[group.name] = "unavailable"
    if any(state != "ok" for state in groups.values()):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail={"server_groups": groups})
    return {"status": "ready", "server_groups": groups}
