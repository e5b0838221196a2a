"""
Machine-to-machine endpoint called by the mail poller for every Interac
deposit email. Replies use the poller's own ``{error}`` format, not the API
envelope, and never go further than "unauthorized" on a bad token.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from storefront.core.database import get_db
from storefront.core.exceptions import StorefrontError, Unauthorized
from storefront.models.schemas import TransferNotification, TransferVerifyResponse
from storefront.services.payment_service import PaymentReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter()


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):]
    return None


@router.post("/verify-transfer", response_model=TransferVerifyResponse)
async def verify_transfer(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    service = PaymentReconciliationService(db)
    token = _bearer_token(authorization)
    try:
        service.authorize(token)
        try:
            notification = TransferNotification.model_validate(await request.json())
        except (ValueError, ValidationError):
            logger.warning("Transfer notification with unreadable body")
            return JSONResponse(status_code=400, content={"error": "Invalid request body"})

        logger.info(
            f"Received transfer notification {notification.gmail_message_id} from {notification.sender}"
        )
        result = service.handle_transfer_notification(token, notification.sender, notification.body_plain)
    except Unauthorized:
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})
    except StorefrontError as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    except Exception:
        logger.exception("Error processing transfer notification")
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    return TransferVerifyResponse(
        message=result.message,
        order_id=result.order_id,
        new_status=result.status,
    )
