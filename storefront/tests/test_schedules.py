from datetime import datetime, timedelta, timezone

import pytest

from storefront.core.exceptions import (
    DeliveryOptionNotFound,
    InvalidRequest,
    NotFound,
    ResourceInUse,
    ScheduleNotFound,
)
from storefront.models.database import (
    DeliveryMethod,
    OrderStatus,
    ProductionSchedule,
    ScheduleDelivery,
    ScheduleProduct,
    ScheduleStatus,
)
from storefront.models.schemas import (
    DeliveryOptionCreate,
    ScheduleDeliveryIn,
    ScheduleProductIn,
    ScheduleUpsert,
)
from storefront.services.schedule_service import ScheduleService, to_utc_naive


def schedule_payload(option_id, delivery_time, products=None, deliveries=None, status=ScheduleStatus.PUBLISHED):
    return ScheduleUpsert(
        status=status,
        notes="Saturday batch",
        products=[
            ScheduleProductIn(product_id=pid, quantity=qty)
            for pid, qty in (products or {"beef": 20}).items()
        ],
        deliveries=deliveries if deliveries is not None else [
            ScheduleDeliveryIn(delivery_option_id=option_id, delivery_time=delivery_time)
        ],
    )


class TestToUtcNaive:

    def test_aware_value_is_converted(self):
        value = datetime(2025, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=-7)))
        assert to_utc_naive(value) == datetime(2025, 3, 1, 17, 0)

    def test_naive_value_is_kept(self):
        assert to_utc_naive(datetime(2025, 3, 1, 10, 0)) == datetime(2025, 3, 1, 10, 0)
        assert to_utc_naive(None) is None


class TestUpsertSchedule:

    def test_create(self, test_db, catalog, pickup_option, tomorrow_noon):
        payload = schedule_payload(pickup_option.id, tomorrow_noon, {"beef": 20, "pork": 12})

        schedule = ScheduleService(test_db).upsert_schedule(payload)

        assert schedule.id is not None
        assert schedule.status == ScheduleStatus.PUBLISHED
        assert {p.product_id: p.quantity for p in schedule.products} == {"beef": 20, "pork": 12}
        assert len(schedule.deliveries) == 1
        assert schedule.deliveries[0].delivery_time == tomorrow_noon

    def test_update_diffs_product_lines(self, test_db, make_schedule, pickup_option, tomorrow_noon):
        schedule, slot = make_schedule({"beef": 10, "pork": 5})
        deliveries = [ScheduleDeliveryIn(id=slot.id, delivery_option_id=pickup_option.id, delivery_time=tomorrow_noon)]

        ScheduleService(test_db).upsert_schedule(
            schedule_payload(pickup_option.id, tomorrow_noon, {"beef": 15}, deliveries),
            schedule.id,
        )

        test_db.expire_all()
        lines = test_db.query(ScheduleProduct).filter_by(schedule_id=schedule.id).all()
        assert [(line.product_id, line.quantity) for line in lines] == [("beef", 15)]

    def test_changed_quantity_bumps_version(self, test_db, make_schedule, pickup_option, tomorrow_noon):
        schedule, slot = make_schedule({"beef": 10, "pork": 5})
        deliveries = [ScheduleDeliveryIn(id=slot.id, delivery_option_id=pickup_option.id, delivery_time=tomorrow_noon)]

        ScheduleService(test_db).upsert_schedule(
            schedule_payload(pickup_option.id, tomorrow_noon, {"beef": 12, "pork": 5}, deliveries),
            schedule.id,
        )

        test_db.expire_all()
        versions = {
            line.product_id: line.version
            for line in test_db.query(ScheduleProduct).filter_by(schedule_id=schedule.id)
        }
        assert versions == {"beef": 2, "pork": 1}

    def test_kept_slot_keeps_its_id(self, test_db, make_schedule, pickup_option, tomorrow_noon):
        schedule, slot = make_schedule()
        later = tomorrow_noon + timedelta(hours=2)
        deliveries = [
            ScheduleDeliveryIn(id=slot.id, delivery_option_id=pickup_option.id, delivery_time=later),
            ScheduleDeliveryIn(delivery_option_id=pickup_option.id, delivery_time=later + timedelta(days=1)),
        ]

        updated = ScheduleService(test_db).upsert_schedule(
            schedule_payload(pickup_option.id, tomorrow_noon, deliveries=deliveries), schedule.id
        )

        slots = sorted(updated.deliveries, key=lambda s: s.delivery_time)
        assert slots[0].id == slot.id
        assert slots[0].delivery_time == later
        assert len(slots) == 2

    def test_removing_unused_slot_deletes_it(self, test_db, make_schedule, pickup_option, tomorrow_noon):
        schedule, slot = make_schedule()

        ScheduleService(test_db).upsert_schedule(
            schedule_payload(pickup_option.id, tomorrow_noon + timedelta(days=1)), schedule.id
        )

        assert test_db.query(ScheduleDelivery).filter_by(id=slot.id).first() is None

    def test_removing_slot_with_orders_is_refused(self, test_db, make_schedule, make_order, pickup_option, tomorrow_noon):
        schedule, slot = make_schedule({"beef": 10})
        make_order(slot, {"beef": 1})

        with pytest.raises(ResourceInUse):
            ScheduleService(test_db).upsert_schedule(
                schedule_payload(pickup_option.id, tomorrow_noon + timedelta(days=1)), schedule.id
            )

        test_db.expire_all()
        assert test_db.query(ScheduleDelivery).filter_by(id=slot.id).first() is not None
        assert test_db.query(ScheduleDelivery).filter_by(schedule_id=schedule.id).count() == 1

    def test_unknown_product_and_option(self, test_db, catalog, pickup_option, tomorrow_noon):
        payload = schedule_payload(9999, tomorrow_noon, {"lamb": 3})

        with pytest.raises(InvalidRequest) as exc_info:
            ScheduleService(test_db).upsert_schedule(payload)

        assert set(exc_info.value.fields) == {"products[0].product_id", "deliveries[0].delivery_option_id"}
        assert test_db.query(ProductionSchedule).count() == 0

    def test_duplicate_products(self, test_db, catalog, pickup_option, tomorrow_noon):
        payload = schedule_payload(pickup_option.id, tomorrow_noon)
        payload.products.append(ScheduleProductIn(product_id="beef", quantity=1))

        with pytest.raises(InvalidRequest) as exc_info:
            ScheduleService(test_db).upsert_schedule(payload)
        assert "products" in exc_info.value.fields

    def test_cutoff_after_delivery(self, test_db, catalog, pickup_option, tomorrow_noon):
        deliveries = [ScheduleDeliveryIn(
            delivery_option_id=pickup_option.id,
            delivery_time=tomorrow_noon,
            cutoff_time=tomorrow_noon + timedelta(minutes=1),
        )]

        with pytest.raises(InvalidRequest) as exc_info:
            ScheduleService(test_db).upsert_schedule(schedule_payload(pickup_option.id, tomorrow_noon, deliveries=deliveries))
        assert "deliveries[0].cutoff_time" in exc_info.value.fields

    def test_slot_of_another_schedule(self, test_db, make_schedule, pickup_option, tomorrow_noon):
        schedule, _ = make_schedule()
        _, foreign_slot = make_schedule()
        deliveries = [ScheduleDeliveryIn(id=foreign_slot.id, delivery_option_id=pickup_option.id,
                                         delivery_time=tomorrow_noon)]

        with pytest.raises(InvalidRequest):
            ScheduleService(test_db).upsert_schedule(
                schedule_payload(pickup_option.id, tomorrow_noon, deliveries=deliveries), schedule.id
            )

    def test_unknown_schedule(self, test_db, catalog, pickup_option, tomorrow_noon):
        with pytest.raises(ScheduleNotFound):
            ScheduleService(test_db).upsert_schedule(schedule_payload(pickup_option.id, tomorrow_noon), 4242)


class TestDeleteSchedule:

    def test_delete_unused_schedule(self, test_db, make_schedule):
        schedule, slot = make_schedule()

        ScheduleService(test_db).delete_schedule(schedule.id)

        assert test_db.query(ProductionSchedule).count() == 0
        assert test_db.query(ScheduleProduct).count() == 0
        assert test_db.query(ScheduleDelivery).count() == 0

    def test_schedule_with_orders_is_kept(self, test_db, make_schedule, make_order):
        schedule, slot = make_schedule()
        make_order(slot, {"beef": 1}, status=OrderStatus.CANCELLED)

        with pytest.raises(ResourceInUse):
            ScheduleService(test_db).delete_schedule(schedule.id)
        assert test_db.query(ProductionSchedule).count() == 1

    def test_delete_slot(self, test_db, make_schedule):
        _, slot = make_schedule()
        ScheduleService(test_db).delete_schedule_delivery(slot.id)
        assert test_db.query(ScheduleDelivery).count() == 0

    def test_delete_slot_with_orders(self, test_db, make_schedule, make_order):
        _, slot = make_schedule()
        make_order(slot, {"beef": 1})

        with pytest.raises(ResourceInUse):
            ScheduleService(test_db).delete_schedule_delivery(slot.id)

    def test_delete_unknown_slot(self, test_db):
        with pytest.raises(NotFound):
            ScheduleService(test_db).delete_schedule_delivery(4242)


class TestDeliveryOptions:

    def test_create_and_update(self, test_db):
        service = ScheduleService(test_db)
        option = service.upsert_delivery_option(
            DeliveryOptionCreate(label="Downtown drop-off", delivery_method=DeliveryMethod.DELIVERY)
        )

        updated = service.upsert_delivery_option(
            DeliveryOptionCreate(label="Downtown drop-off", address="100 8 Ave SW",
                                 delivery_method=DeliveryMethod.DELIVERY),
            option.id,
        )

        assert updated.id == option.id
        assert updated.address == "100 8 Ave SW"
        assert [o.id for o in service.list_delivery_options()] == [option.id]

    def test_blank_label(self, test_db):
        with pytest.raises(InvalidRequest):
            ScheduleService(test_db).upsert_delivery_option(DeliveryOptionCreate(label="  "))

    def test_option_used_by_slot_cannot_be_deleted(self, test_db, make_schedule, pickup_option):
        make_schedule()
        with pytest.raises(ResourceInUse):
            ScheduleService(test_db).delete_delivery_option(pickup_option.id)

    def test_delete_unused_option(self, test_db, pickup_option):
        ScheduleService(test_db).delete_delivery_option(pickup_option.id)
        with pytest.raises(DeliveryOptionNotFound):
            ScheduleService(test_db).get_delivery_option(pickup_option.id)
