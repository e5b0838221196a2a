from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.dependencies import ok, require_admin
from storefront.core.database import get_db
from storefront.models.schemas import ApiResponse, ProductStock, Requirement
from storefront.services.inventory_service import InventoryService
from storefront.services.schedule_service import ScheduleService

router = APIRouter(dependencies=[Depends(require_admin)])


def _as_list(stock) -> List[ProductStock]:
    return [
        ProductStock(product_id=s.product_id, produced=s.produced, remaining=s.remaining)
        for s in sorted(stock.values(), key=lambda s: s.product_id)
    ]


@router.get("/inventory", response_model=ApiResponse[List[ProductStock]])
async def get_inventory(
    low_stock_threshold: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    """Stock left across published schedules that still deliver in the future"""
    stock = _as_list(InventoryService(db).remaining_across_published_future())
    if low_stock_threshold is not None:
        stock = [s for s in stock if s.remaining <= low_stock_threshold]
    return ok(stock)


@router.get("/inventory/schedules/{schedule_id}", response_model=ApiResponse[List[ProductStock]])
async def get_schedule_inventory(schedule_id: int, db: Session = Depends(get_db)):
    ScheduleService(db).get_schedule(schedule_id)
    return ok(_as_list(InventoryService(db).remaining_for_schedule(schedule_id)))


@router.get("/stats", response_model=ApiResponse[List[Requirement]])
async def get_stats(db: Session = Depends(get_db)):
    """Unfulfilled requirements: what pending and paid orders still need"""
    requirements = InventoryService(db).unfulfilled_requirements()
    return ok([Requirement(**r) for r in requirements])
