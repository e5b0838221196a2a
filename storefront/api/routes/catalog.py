from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.dependencies import ok
from storefront.core.database import get_db
from storefront.models.database import Product as DBProduct
from storefront.models.schemas import ApiResponse, Product, ScheduleDelivery
from storefront.services.slot_service import SlotService

router = APIRouter()


@router.get("/products", response_model=ApiResponse[List[Product]])
async def list_products(db: Session = Depends(get_db)):
    """Menu"""
    products = db.query(DBProduct).order_by(DBProduct.id).all()
    return ok([Product.model_validate(p) for p in products])


@router.get("/delivery-slots", response_model=ApiResponse[List[ScheduleDelivery]])
async def list_delivery_slots(db: Session = Depends(get_db)):
    """Slots a customer can order for right now"""
    slots = SlotService(db).list_orderable_slots()
    return ok([ScheduleDelivery.model_validate(s) for s in slots])
