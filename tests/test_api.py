from fastapi import Depends
from fastapi.testclient import TestClient
import pytest

from app import app
from database import Base, engine, get_db
from services.directory import DirectoryService
from services.ledger import LedgerAggregator
from services.order_monitor import MonitorRegistry
from services.orders import OrderActions
from services.overrides import PaymentOverrideCache
from services.settlement import InFlightGuard, SettlementRecorder
from services.wallets import WalletService
from services.withdrawals import WithdrawalGate
from utils import dependencies

OPERATOR = {
    "X-User-Id": "u1",
    "X-User-Email": "ops@example.test",
    "X-Session-Id": "tab-1",
    "X-Permissions": "confirm_cod_payments,manage_wallets,export_reports,edit_order_financials,"
                     "delete_ongoing_orders,manage_users",
}
VIEWER = {"X-User-Id": "u2", "X-Session-Id": "tab-2"}


class NoCache:
    def get(self, key):
        return None

    def set(self, key, value, ttl=300):
        return False

    def delete_pattern(self, pattern):
        return 0


@pytest.fixture
def client(supabase_fake, tookan_fake):
    overrides = PaymentOverrideCache()
    registry = MonitorRegistry(source=tookan_fake, poll_seconds=3600)
    guard = InFlightGuard()

    def recorder(db=Depends(get_db)):
        return SettlementRecorder(db, source=supabase_fake, guard=guard)

    app.dependency_overrides.update({
        dependencies.get_ledger_aggregator: lambda: LedgerAggregator(supabase_fake),
        dependencies.get_override_cache: lambda: overrides,
        dependencies.get_settlement_recorder: recorder,
        dependencies.get_directory: lambda: DirectoryService(supabase_fake, cache_backend=NoCache()),
        dependencies.get_withdrawal_gate: lambda: WithdrawalGate(supabase_fake, wallets=tookan_fake),
        dependencies.get_wallet_service: lambda: WalletService(tookan_fake),
        dependencies.get_order_actions: lambda: OrderActions(tookan_fake),
        dependencies.get_monitor_registry: lambda: registry,
    })
    with TestClient(app) as test_client:
        yield test_client
    registry.close_all()
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"
    assert client.get("/health/db").json()["success"] is True


def test_ledger_view_with_override_and_export(client, supabase_fake):
    supabase_fake.daily_rows = [{"date": "2024-01-02", "cod_received": "150.000", "order_count": 3}]
    params = {"date_from": "2024-01-01", "date_to": "2024-01-03"}

    body = client.get("/api/reconciliation/drivers/42/ledger", params=params, headers=OPERATOR).json()
    assert [d["date"] for d in body["data"]["days"]] == ["2024-01-01", "2024-01-02", "2024-01-03"]
    assert body["data"]["days"][0]["order_count"] == 0

    response = client.put(
        "/api/reconciliation/drivers/42/ledger/2024-01-02",
        json={**params, "amount_paid": "100", "status": "Completed"},
        headers=OPERATOR,
    )
    assert response.status_code == 200

    body = client.get("/api/reconciliation/drivers/42/ledger", params=params, headers=OPERATOR).json()
    day = body["data"]["days"][1]
    assert day["has_override"] is True
    assert day["status"] == "Completed"
    assert float(body["data"]["totals"]["balance"]) == 50.0

    export = client.get("/api/reconciliation/drivers/42/ledger/export.csv", params=params, headers=OPERATOR)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "cod-ledger-42-2024-01-01-2024-01-03.csv" in export.headers["content-disposition"]
    assert "100.000" in export.text


def test_override_outside_the_selected_range_is_a_validation_error(client):
    client.get("/api/reconciliation/drivers/42/ledger",
               params={"date_from": "2024-01-01", "date_to": "2024-01-03"}, headers=OPERATOR)

    response = client.put(
        "/api/reconciliation/drivers/42/ledger/2024-02-01",
        json={"date_from": "2024-01-01", "date_to": "2024-01-03", "amount_paid": "5"},
        headers=OPERATOR,
    )

    assert response.status_code == 400
    assert response.json()["error_type"] == "validation"


def test_export_and_settlement_need_permissions(client, supabase_fake):
    params = {"date_from": "2024-01-01", "date_to": "2024-01-03"}
    assert client.get("/api/reconciliation/drivers/42/ledger/export.csv",
                      params=params, headers=VIEWER).status_code == 403

    response = client.post("/api/settlements", json={"fleet_id": 42, "amount_paid": "10"}, headers=VIEWER)
    assert response.status_code == 403
    assert supabase_fake.payments == []


def test_settlement_marks_the_day_settled_and_replays_by_key(client, supabase_fake):
    params = {"date_from": "2024-01-01", "date_to": "2024-01-03"}
    supabase_fake.daily_rows = [{"date": "2024-01-02", "cod_received": "150", "order_count": 3}]
    client.get("/api/reconciliation/drivers/42/ledger", params=params, headers=OPERATOR)

    payload = {"fleet_id": 42, "amount_paid": "150", "reference_total": "150", "days": ["2024-01-02"], **params}
    headers = {**OPERATOR, "Idempotency-Key": "settle-42-0102"}
    first = client.post("/api/settlements", json=payload, headers=headers)
    second = client.post("/api/settlements", json=payload, headers=headers)

    assert first.status_code == 201
    assert second.json()["data"]["replayed"] is True
    assert len(supabase_fake.payments) == 1

    body = client.get("/api/reconciliation/drivers/42/ledger", params=params, headers=OPERATOR).json()
    assert body["data"]["days"][1]["status"] == "Completed"
    assert float(body["data"]["totals"]["balance"]) == 0.0

    history = client.get("/api/settlements", params={"fleet_id": 42}, headers=OPERATOR).json()
    assert history["pagination"]["total"] == 1
    assert history["data"][0]["settled_by"] == "ops@example.test"


def test_day_settlement_from_task_list(client, supabase_fake):
    payload = {
        "fleet_id": 42,
        "day": "2024-01-02",
        "tasks": [
            {"job_id": 1, "cod_amount": "50", "balance_paid": "50", "status": "Completed"},
            {"job_id": 2, "cod_amount": "30", "balance_paid": "45", "status": "Pending"},
        ],
    }

    response = client.post("/api/settlements/day", json=payload, headers=OPERATOR)

    data = response.json()["data"]
    assert response.status_code == 201
    assert float(data["total_paid"]) == 80.0
    assert data["day_status"] == "Pending"
    assert float(data["tasks"][1]["balance_paid"]) == 30.0


def test_settlement_remote_failure_is_reported_as_unavailable(client, supabase_fake):
    from utils.errors import RemoteUnavailableError
    supabase_fake.payment_error = RemoteUnavailableError("Hosted database is unreachable", retryable=True)

    response = client.post("/api/settlements", json={"fleet_id": 42, "amount_paid": "10"}, headers=OPERATOR)

    assert response.status_code == 503
    assert response.json()["error_type"] == "remote_unavailable"


def test_merchant_debit_is_refused_with_business_rule_error(client, tookan_fake):
    response = client.post(
        "/api/wallets/merchant/payment",
        json={"vendor_id": 7, "amount": "5", "direction": "debit"},
        headers=OPERATOR,
    )

    assert response.status_code == 422
    assert response.json()["error_type"] == "business_rule"
    assert tookan_fake.wallet_calls == []


def test_order_session_conflict_flow(client, tookan_fake):
    tookan_fake.add_task(501)

    opened = client.post("/api/orders/501/session", headers=OPERATOR).json()
    assert opened["data"]["state"] == "loaded"
    assert opened["data"]["can_edit_financials"] is True

    tookan_fake.touch(501, "2024-01-05T09:00:00Z")
    checked = client.get("/api/orders/501/session", headers=OPERATOR).json()
    assert checked["data"]["conflict"]["has_conflict"] is True

    refused = client.put("/api/orders/501", json={"cod_amount": "3"}, headers=OPERATOR)
    assert refused.status_code == 409
    assert refused.json()["error_type"] == "conflict"

    client.post("/api/orders/501/session/resolve", json={"action": "refresh"}, headers=OPERATOR)
    saved = client.put("/api/orders/501", json={"cod_amount": "3"}, headers=OPERATOR)
    assert saved.status_code == 200
    assert float(saved.json()["data"]["order"]["cod_amount"]) == 3.0

    logs = client.get("/api/audit-logs", params={"entity": "order"}, headers=OPERATOR).json()
    assert logs["data"][0]["action"] == "order_update"

    assert client.delete("/api/orders/501/session", headers=OPERATOR).status_code == 200


def test_terminal_order_cannot_be_deleted(client, tookan_fake):
    tookan_fake.add_task(502, job_status="delivered")

    response = client.delete("/api/orders/502", headers=OPERATOR)

    assert response.status_code == 422
    assert tookan_fake.deleted == []


def test_withdrawal_approval_and_pending_total(client, supabase_fake, tookan_fake):
    supabase_fake.withdrawals = [
        {"id": 1, "request_type": "driver", "driver_id": 42, "amount": "20", "status": "pending"},
        {"id": 2, "request_type": "driver", "driver_id": 42, "amount": "5", "status": "pending"},
    ]

    total = client.get("/api/withdrawals/pending-total",
                       params={"subject_type": "driver", "subject_id": "42"}, headers=OPERATOR).json()
    assert float(total["data"]["pending_total"]) == 25.0

    approved = client.post("/api/withdrawals/1/approve", headers=OPERATOR)
    assert approved.status_code == 200
    again = client.post("/api/withdrawals/1/approve", headers=OPERATOR)
    assert again.status_code == 422
    assert "already approved" in again.json()["message"]
    assert tookan_fake.wallet_calls == [("withdrawal", "driver", 42, 20)]

    assert client.get("/api/withdrawals", headers=VIEWER).status_code == 403


def test_preferences_are_per_user(client):
    client.put("/api/preferences/active_tab", json={"value": "reconciliation"}, headers=OPERATOR)

    mine = client.get("/api/preferences/active_tab", headers=OPERATOR).json()
    theirs = client.get("/api/preferences/active_tab", headers=VIEWER).json()

    assert mine["data"]["value"] == "reconciliation"
    assert theirs["data"]["value"] is None


def test_non_numeric_order_id_is_a_validation_error(client, tookan_fake):
    opened = client.post("/api/orders/abc/session", headers=OPERATOR)
    deleted = client.delete("/api/orders/abc", headers=OPERATOR)

    assert opened.status_code == 400
    assert opened.json()["message"] == "Order id must be numeric"
    assert deleted.status_code == 400
    assert tookan_fake.deleted == []


def test_unknown_permission_names_are_dropped():
    assert dependencies.parse_permissions(" manage_wallets, root ,") == frozenset({"manage_wallets"})
    assert dependencies.parse_permissions(None) == frozenset()
