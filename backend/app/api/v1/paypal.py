from fastapi import APIRouter, Depends, Request, status

from app.core.config import settings
from app.core.logging_config import configure_paypal_log
from app.db.session import ServerGroupRegistry, get_registry
from app.schemas.paypal import IpnResult
from app.services import paypal as paypal_service
from app.services import paypal_ipn

router = APIRouter(prefix="/paypal", tags=["payments"])


@router.post("/notify", status_code=status.HTTP_200_OK, response_model=IpnResult)
async def paypal_notify(
    request: Request,
    registry: ServerGroupRegistry = Depends(get_registry),
) -> IpnResult:
    # The raw body is parsed here so the fields can be re-posted in PayPal's own charset.
    notification = paypal_service.parse_notification(await request.body())
    configure_paypal_log(settings.paypal_log_path)
    remote_addr = request.client.host if request.client else None
    # PayPal only needs a 2xx; the outcome is returned for operators and tests.
    return await paypal_ipn.process_notification(notification, registry=registry, remote_addr=remote_addr)
