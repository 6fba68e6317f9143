from decimal import Decimal

import pytest

from schemas import SubjectType, WithdrawalStatus
from services.withdrawals import WithdrawalGate, pending_total
from utils.dependencies import Actor
from utils.errors import BusinessRuleError, NotFoundError, RemoteUnavailableError


@pytest.fixture
def gate(supabase_fake, tookan_fake):
    supabase_fake.withdrawals = [
        {"id": 1, "request_type": "merchant", "merchant_id": 7, "amount": "25.000", "status": "pending"},
        {"id": 2, "request_type": "merchant", "merchant_id": 7, "amount": "10.000", "status": "pending"},
        {"id": 3, "request_type": "merchant", "merchant_id": 7, "amount": "99.000", "status": "approved"},
        {"id": 4, "request_type": "driver", "driver_id": 42, "amount": "5.000", "status": "pending"},
    ]
    return WithdrawalGate(supabase_fake, wallets=tookan_fake)


def test_pending_total_counts_only_pending_requests_of_the_subject(run, gate):
    requests = run(gate.list_requests())

    assert pending_total(SubjectType.merchant, 7, requests) == Decimal("35.000")
    assert pending_total(SubjectType.driver, "42", requests) == Decimal("5.000")
    assert pending_total(SubjectType.merchant, 8, requests) == Decimal("0")


def test_approve_pays_out_then_writes_once_and_reloads(run, gate, supabase_fake, tookan_fake):
    actor = Actor(user_id="u1", email="ops@example.test")

    result = run(gate.approve("1", actor=actor))

    assert result["status"] == "success"
    assert tookan_fake.wallet_calls == [("withdrawal", "merchant", 7, Decimal("25.000"))]
    assert supabase_fake.calls["decide"] == 1
    approved = next(r for r in result["requests"] if r.id == "1")
    assert approved.status == WithdrawalStatus.approved
    row = supabase_fake.withdrawals[0]
    assert row["approved_by"] == "u1"
    assert row["approved_at"]
    assert "reviewed_by" not in row


def test_driver_withdrawal_pays_out_of_the_fleet_wallet(run, gate, tookan_fake):
    run(gate.approve("4"))

    assert tookan_fake.wallet_calls == [("withdrawal", "driver", 42, Decimal("5.000"))]


def test_failed_payout_leaves_the_request_pending(run, gate, supabase_fake, tookan_fake):
    tookan_fake.wallet_error = RemoteUnavailableError("Tookan rejected customer_wallet_transaction: low balance")

    with pytest.raises(RemoteUnavailableError, match="low balance"):
        run(gate.approve("1"))

    assert supabase_fake.calls["decide"] == 0
    assert supabase_fake.withdrawals[0]["status"] == "pending"
    requests = run(gate.list_requests())
    assert pending_total(SubjectType.merchant, 7, requests) == Decimal("35.000")


def test_reject_stores_reason_and_decider(run, gate, supabase_fake, tookan_fake):
    result = run(gate.reject("2", reason="  bank details missing ", actor=Actor(user_id="u9")))

    rejected = next(r for r in result["requests"] if r.id == "2")
    assert rejected.status == WithdrawalStatus.rejected
    assert rejected.rejection_reason == "bank details missing"
    assert supabase_fake.withdrawals[1]["rejected_by"] == "u9"
    assert tookan_fake.wallet_calls == []


def test_deciding_twice_is_a_business_rule_error(run, gate, supabase_fake, tookan_fake):
    with pytest.raises(BusinessRuleError, match="Request is already approved"):
        run(gate.approve("3"))
    with pytest.raises(NotFoundError):
        run(gate.approve("404"))
    with pytest.raises(NotFoundError):
        run(gate.reject("404"))

    assert tookan_fake.wallet_calls == []
