import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.dependencies import ok, require_admin
from storefront.core.database import get_db
from storefront.core.exceptions import OrderNotFound
from storefront.models.database import Order as DBOrder
from storefront.models.schemas import ApiResponse, Order, OrderDetail, OrderStatusUpdate
from storefront.services.order_status import OrderStatusService, allowed_statuses, parse_status

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


def _detail(order: DBOrder) -> OrderDetail:
    detail = OrderDetail.model_validate(order)
    detail.allowed_statuses = allowed_statuses(order.status)
    return detail


@router.get("", response_model=ApiResponse[List[Order]])
async def list_orders(status: Optional[str] = None, db: Session = Depends(get_db)):
    """All orders, newest first; ``status=all`` or no filter returns everything"""
    query = db.query(DBOrder)
    if status and status != "all":
        query = query.filter(DBOrder.status == parse_status(status))
    orders = query.order_by(DBOrder.created_at.desc(), DBOrder.id.desc()).all()
    return ok([Order.model_validate(o) for o in orders])


@router.get("/{order_id}", response_model=ApiResponse[OrderDetail])
async def get_order(order_id: int, db: Session = Depends(get_db)):
    order = db.query(DBOrder).filter(DBOrder.id == order_id).first()
    if not order:
        raise OrderNotFound()
    if not order.items:
        logger.warning(f"Order {order.reference_number} has no items")
    return ok(_detail(order))


@router.patch("/{order_id}/status", response_model=ApiResponse[OrderDetail])
async def update_order_status(order_id: int, data: OrderStatusUpdate, db: Session = Depends(get_db)):
    order = OrderStatusService(db).update_status(order_id, data.status)
    return ok(_detail(order))


@router.delete("/{order_id}", response_model=ApiResponse)
async def delete_order(order_id: int, db: Session = Depends(get_db)):
    OrderStatusService(db).delete_order(order_id)
    return ok({"id": order_id})
