from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.dependencies import ok, require_admin
from storefront.core.database import get_db
from storefront.models.schemas import (
    ApiResponse,
    DeliveryOption,
    DeliveryOptionCreate,
    ProductionSchedule,
    ScheduleUpsert,
)
from storefront.services.schedule_service import ScheduleService

router = APIRouter(dependencies=[Depends(require_admin)])


# --- Production schedules ---

@router.get("/schedules", response_model=ApiResponse[List[ProductionSchedule]])
async def list_schedules(db: Session = Depends(get_db)):
    schedules = ScheduleService(db).list_schedules()
    return ok([ProductionSchedule.model_validate(s) for s in schedules])


@router.post("/schedules", response_model=ApiResponse[ProductionSchedule])
async def create_schedule(data: ScheduleUpsert, db: Session = Depends(get_db)):
    schedule = ScheduleService(db).upsert_schedule(data)
    return ok(ProductionSchedule.model_validate(schedule))


@router.get("/schedules/{schedule_id}", response_model=ApiResponse[ProductionSchedule])
async def get_schedule(schedule_id: int, db: Session = Depends(get_db)):
    schedule = ScheduleService(db).get_schedule(schedule_id)
    return ok(ProductionSchedule.model_validate(schedule))


@router.put("/schedules/{schedule_id}", response_model=ApiResponse[ProductionSchedule])
async def update_schedule(schedule_id: int, data: ScheduleUpsert, db: Session = Depends(get_db)):
    """Replace lines and slots of a schedule; slots left out are deleted"""
    schedule = ScheduleService(db).upsert_schedule(data, schedule_id)
    return ok(ProductionSchedule.model_validate(schedule))


@router.delete("/schedules/{schedule_id}", response_model=ApiResponse)
async def delete_schedule(schedule_id: int, db: Session = Depends(get_db)):
    ScheduleService(db).delete_schedule(schedule_id)
    return ok({"id": schedule_id})


@router.delete("/schedule-deliveries/{slot_id}", response_model=ApiResponse)
async def delete_schedule_delivery(slot_id: int, db: Session = Depends(get_db)):
    ScheduleService(db).delete_schedule_delivery(slot_id)
    return ok({"id": slot_id})


# --- Delivery options ---

@router.get("/delivery-options", response_model=ApiResponse[List[DeliveryOption]])
async def list_delivery_options(db: Session = Depends(get_db)):
    options = ScheduleService(db).list_delivery_options()
    return ok([DeliveryOption.model_validate(o) for o in options])


@router.post("/delivery-options", response_model=ApiResponse[DeliveryOption])
async def create_delivery_option(data: DeliveryOptionCreate, db: Session = Depends(get_db)):
    option = ScheduleService(db).upsert_delivery_option(data)
    return ok(DeliveryOption.model_validate(option))


@router.put("/delivery-options/{option_id}", response_model=ApiResponse[DeliveryOption])
async def update_delivery_option(option_id: int, data: DeliveryOptionCreate, db: Session = Depends(get_db)):
    option = ScheduleService(db).upsert_delivery_option(data, option_id)
    return ok(DeliveryOption.model_validate(option))


@router.delete("/delivery-options/{option_id}", response_model=ApiResponse)
async def delete_delivery_option(option_id: int, db: Session = Depends(get_db)):
    ScheduleService(db).delete_delivery_option(option_id)
    return ok({"id": option_id})
