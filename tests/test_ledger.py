from datetime import date, timedelta
from decimal import Decimal

import pytest

from schemas import PaymentStatus
from services.ledger import LedgerAggregator, apply_overlay, validate_range
from services.overrides import DayOverride
from utils.errors import RemoteUnavailableError, ValidationError


def _days(entries):
    return [e.date for e in entries]


def test_primary_rows_land_on_a_zero_filled_range(run, supabase_fake):
    supabase_fake.daily_rows = [{"date": "2024-01-02", "cod_received": 150.00, "order_count": 3}]

    entries = run(LedgerAggregator(supabase_fake).build_ledger(42, date(2024, 1, 1), date(2024, 1, 3)))

    assert [(e.date, e.cod_received, e.order_count) for e in entries] == [
        (date(2024, 1, 1), Decimal("0"), 0),
        (date(2024, 1, 2), Decimal("150.0"), 3),
        (date(2024, 1, 3), Decimal("0"), 0),
    ]


def test_fallback_is_not_called_when_primary_has_rows(run, supabase_fake):
    supabase_fake.daily_rows = [{"date": "2024-01-01", "cod_received": 10, "order_count": 1}]
    supabase_fake.task_rows = [{
        "cod_amount": 99, "pickup_address": "A", "delivery_address": "B",
        "creation_datetime": "2024-01-01T10:00:00",
    }]

    run(LedgerAggregator(supabase_fake).build_ledger(42, date(2024, 1, 1), date(2024, 1, 2)))

    assert supabase_fake.calls["daily"] == 1
    assert supabase_fake.calls["tasks"] == 0


def test_every_day_present_once_whatever_the_sources_return(run, supabase_fake):
    supabase_fake.daily_rows = [
        {"date": "2023-12-31", "cod_received": 5, "order_count": 1},   # outside the range
        {"date": "2024-02-10", "cod_received": 7, "order_count": 2},
        {"date": "garbage", "cod_received": 1, "order_count": 1},
    ]
    start, end = date(2024, 1, 25), date(2024, 3, 5)   # crosses February of a leap year

    entries = run(LedgerAggregator(supabase_fake).build_ledger(42, start, end))

    expected = [start + timedelta(days=i) for i in range((end - start).days + 1)]
    assert _days(entries) == expected
    assert len(set(_days(entries))) == len(entries)
    assert sum(e.order_count for e in entries) == 2


def test_fallback_sums_only_real_cod_deliveries(run, supabase_fake):
    supabase_fake.task_rows = [
        {"cod_amount": "20.5", "pickup_address": "Shop", "delivery_address": "Home",
         "creation_datetime": "2024-01-01T09:00:00"},
        {"cod_amount": "4.5", "pickup_address": "Shop", "delivery_address": "Office",
         "creation_datetime": "2024-01-01T18:00:00"},
        # same pickup and delivery
        {"cod_amount": "30", "pickup_address": " shop ", "delivery_address": "Shop",
         "creation_datetime": "2024-01-01T10:00:00"},
        # no cash to collect
        {"cod_amount": "0", "pickup_address": "A", "delivery_address": "B",
         "creation_datetime": "2024-01-02T10:00:00"},
        # no timestamp
        {"cod_amount": "8", "pickup_address": "A", "delivery_address": "B", "creation_datetime": None},
    ]

    entries = run(LedgerAggregator(supabase_fake).build_ledger(42, date(2024, 1, 1), date(2024, 1, 2)))

    assert supabase_fake.calls["tasks"] == 1
    assert entries[0].cod_received == Decimal("25.0")
    assert entries[0].order_count == 2
    assert entries[1].cod_received == Decimal("0")
    assert entries[1].order_count == 0


def test_primary_failure_falls_back_to_raw_tasks(run, supabase_fake):
    supabase_fake.daily_error = RemoteUnavailableError("down")
    supabase_fake.task_rows = [{"cod_amount": 3, "pickup_address": "A", "delivery_address": "B",
                                "creation_datetime": "2024-01-01T01:00:00"}]

    entries = run(LedgerAggregator(supabase_fake).build_ledger(42, date(2024, 1, 1), date(2024, 1, 1)))

    assert entries[0].order_count == 1


def test_both_sources_failing_still_returns_the_zero_skeleton(run, supabase_fake):
    supabase_fake.daily_error = RemoteUnavailableError("down")
    supabase_fake.tasks_error = RemoteUnavailableError("down too", retryable=True)

    entries = run(LedgerAggregator(supabase_fake).build_ledger(42, date(2024, 1, 1), date(2024, 1, 3)))

    assert len(entries) == 3
    assert all(e.cod_received == 0 and e.order_count == 0 for e in entries)


def test_invalid_ranges_are_rejected_before_any_remote_call(run, supabase_fake):
    aggregator = LedgerAggregator(supabase_fake)

    with pytest.raises(ValidationError):
        run(aggregator.build_ledger(42, date(2024, 1, 3), date(2024, 1, 1)))
    with pytest.raises(ValidationError):
        validate_range(date(2024, 1, 1), date(2024, 1, 10), max_days=5)

    assert supabase_fake.calls["daily"] == 0


def test_day_tasks_lists_countable_tasks_as_unpaid_entries(run, supabase_fake):
    supabase_fake.task_rows = [
        {"job_id": 1, "fleet_id": 42, "customer_name": "Sara", "cod_amount": "50",
         "pickup_address": "A", "delivery_address": "B", "creation_datetime": "2024-01-05T10:00:00"},
        {"job_id": 2, "fleet_id": 42, "cod_amount": "0",
         "pickup_address": "A", "delivery_address": "B", "creation_datetime": "2024-01-05T11:00:00"},
    ]

    tasks = run(LedgerAggregator(supabase_fake).day_tasks(42, date(2024, 1, 5)))

    assert [t.job_id for t in tasks] == [1]
    assert tasks[0].balance_paid == 0
    assert tasks[0].status == PaymentStatus.pending


def test_overlay_prefers_unsaved_override_over_settled_amount(run, supabase_fake):
    supabase_fake.daily_rows = [
        {"date": "2024-01-01", "cod_received": 100, "order_count": 2},
        {"date": "2024-01-02", "cod_received": 50, "order_count": 1},
    ]
    entries = run(LedgerAggregator(supabase_fake).build_ledger(42, date(2024, 1, 1), date(2024, 1, 3)))

    days, totals = apply_overlay(
        entries,
        overrides={date(2024, 1, 1): DayOverride(Decimal("60"), PaymentStatus.pending)},
        settled={
            date(2024, 1, 1): DayOverride(Decimal("10"), PaymentStatus.completed),
            date(2024, 1, 2): DayOverride(Decimal("50"), PaymentStatus.completed),
        },
    )

    assert days[0].amount_paid == Decimal("60")
    assert days[0].has_override
    assert days[1].status == PaymentStatus.completed
    assert not days[1].has_override
    assert days[2].amount_paid == 0
    assert totals.cod_received == Decimal("150")
    assert totals.order_count == 3
    assert totals.amount_paid == Decimal("110")
    assert totals.balance == Decimal("40")
