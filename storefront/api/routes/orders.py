from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.dependencies import ok, require_customer, require_principal
from storefront.core.database import get_db
from storefront.core.exceptions import OrderNotFound
from storefront.core.security import Principal
from storefront.models.database import Order as DBOrder
from storefront.models.schemas import ApiResponse, Order, OrderCreate
from storefront.services.order_service import OrderAdmissionService

router = APIRouter()


@router.post("", response_model=ApiResponse[Order])
async def create_order(
    order_data: OrderCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_customer),
):
    """Place an order for a delivery slot; stock is checked against the slot's schedule"""
    service = OrderAdmissionService(db)
    order = await service.submit_order(principal, order_data)
    return ok(Order.model_validate(order))


@router.get("", response_model=ApiResponse[List[Order]])
async def get_my_orders(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
):
    """Order history of the signed-in customer"""
    orders = OrderAdmissionService(db).list_orders_for_user(principal.id)
    return ok([Order.model_validate(o) for o in orders])


@router.get("/{order_id}", response_model=ApiResponse[Order])
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
):
    order = db.query(DBOrder).filter(DBOrder.id == order_id).first()
    # Someone else's order looks exactly like a missing one
    if not order or (order.user_id != principal.id and not principal.is_admin):
        raise OrderNotFound()
    return ok(Order.model_validate(order))
