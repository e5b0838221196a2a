from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from storefront.core.exceptions import InventoryUnavailable
from storefront.models.database import OrderStatus, ScheduleDelivery, ScheduleStatus
from storefront.services.inventory_service import InventoryService


class TestRemainingForSchedule:

    def test_untouched_schedule_has_full_stock(self, test_db, make_schedule):
        schedule, _ = make_schedule({"beef": 10, "pork": 4})

        stock = InventoryService(test_db).remaining_for_schedule(schedule.id)

        assert set(stock) == {"beef", "pork"}
        assert stock["beef"].produced == 10
        assert stock["beef"].remaining == 10
        assert stock["pork"].remaining == 4

    def test_only_consuming_orders_count(self, test_db, make_schedule, make_order):
        schedule, slot = make_schedule({"beef": 10})
        make_order(slot, {"beef": 2}, status=OrderStatus.PENDING)
        make_order(slot, {"beef": 3}, status=OrderStatus.PAID)
        make_order(slot, {"beef": 1}, status=OrderStatus.COMPLETED)
        make_order(slot, {"beef": 4}, status=OrderStatus.CANCELLED)
        make_order(slot, {"beef": 4}, status=OrderStatus.WAITLIST)

        stock = InventoryService(test_db).remaining_for_schedule(schedule.id)

        assert stock["beef"].consumed == 6
        assert stock["beef"].remaining == 4

    def test_all_slots_of_a_schedule_share_stock(self, test_db, make_schedule, make_order, tomorrow_noon):
        schedule, slot = make_schedule({"beef": 10})
        second_slot = ScheduleDelivery(
            schedule_id=schedule.id,
            delivery_option_id=slot.delivery_option_id,
            delivery_time=tomorrow_noon + timedelta(days=1),
        )
        test_db.add(second_slot)
        test_db.commit()

        make_order(slot, {"beef": 3})
        make_order(second_slot, {"beef": 5})

        stock = InventoryService(test_db).remaining_for_schedule(schedule.id)
        assert stock["beef"].remaining == 2

    def test_other_schedules_do_not_consume(self, test_db, make_schedule, make_order):
        schedule, _ = make_schedule({"beef": 10})
        _, other_slot = make_schedule({"beef": 10})
        make_order(other_slot, {"beef": 7})

        stock = InventoryService(test_db).remaining_for_schedule(schedule.id)
        assert stock["beef"].remaining == 10

    def test_overdraw_is_floored_at_zero(self, test_db, make_schedule, make_order):
        schedule, slot = make_schedule({"beef": 5})
        make_order(slot, {"beef": 4})
        make_order(slot, {"beef": 4})

        stock = InventoryService(test_db).remaining_for_schedule(schedule.id)

        assert stock["beef"].consumed == 8
        assert stock["beef"].remaining == 0

    def test_schedule_without_lines_is_empty(self, test_db, make_schedule):
        schedule, _ = make_schedule({})
        assert InventoryService(test_db).remaining_for_schedule(schedule.id) == {}

    def test_storage_failure_is_retryable(self, test_db, make_schedule, monkeypatch):
        schedule, _ = make_schedule({"beef": 10})
        service = InventoryService(test_db)

        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(service, "_remaining_for_schedule", broken)

        with pytest.raises(InventoryUnavailable) as exc_info:
            service.remaining_for_schedule(schedule.id)
        assert exc_info.value.retryable


class TestRemainingAcrossPublishedFuture:

    def test_sums_published_schedules_with_future_slots(self, test_db, make_schedule, make_order):
        _, slot_a = make_schedule({"beef": 10, "pork": 5})
        make_schedule({"beef": 6})
        make_order(slot_a, {"beef": 4})

        stock = InventoryService(test_db).remaining_across_published_future()

        assert stock["beef"].produced == 16
        assert stock["beef"].remaining == 12
        assert stock["pork"].remaining == 5

    def test_skips_drafts_and_past_schedules(self, test_db, make_schedule):
        make_schedule({"beef": 10})
        make_schedule({"beef": 100}, status=ScheduleStatus.DRAFT)
        make_schedule({"beef": 1000}, delivery_time=datetime.utcnow() - timedelta(days=2))

        stock = InventoryService(test_db).remaining_across_published_future()
        assert stock["beef"].produced == 10


class TestUnfulfilledRequirements:

    def test_counts_pending_and_paid_by_product(self, test_db, make_schedule, make_order):
        _, slot = make_schedule({"beef": 20, "pork": 20})
        make_order(slot, {"beef": 2, "pork": 1}, status=OrderStatus.PENDING)
        make_order(slot, {"beef": 3}, status=OrderStatus.PAID)
        make_order(slot, {"beef": 5}, status=OrderStatus.COMPLETED)
        make_order(slot, {"pork": 5}, status=OrderStatus.CANCELLED)

        requirements = InventoryService(test_db).unfulfilled_requirements()

        assert requirements == [
            {"name": "Beef Meatballs", "quantity": 5},
            {"name": "Pork Meatballs", "quantity": 1},
        ]
