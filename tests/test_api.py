"""HTTP tests for the FastAPI surface."""

import httpx
import pytest
import pytest_asyncio

from redsys_core.api.deps import get_gateway, get_store
from redsys_core.config import settings
from redsys_core.main import app
from redsys_core.providers.mock_gateway import DENIAL_CODE

from tests.conftest import SECRET_KEY, signed_notification

CRON_SECRET = "cron-s3cret"


@pytest_asyncio.fixture
async def api(store, redsys_client, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", CRON_SECRET)
    monkeypatch.setattr(settings, "redsys_secret_key", SECRET_KEY)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: redsys_client

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()


def _auth() -> dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.mark.asyncio
async def test_health(api):
    response = await api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


class TestRenewalTrigger:
    @pytest.mark.asyncio
    async def test_requires_secret(self, api, add_subscription):
        await add_subscription()

        assert (await api.post("/api/renewals/run")).status_code == 401
        wrong = await api.post("/api/renewals/run", headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401

    @pytest.mark.asyncio
    async def test_unconfigured_secret_refuses(self, api, monkeypatch):
        monkeypatch.setattr(settings, "cron_secret", "")
        response = await api.post("/api/renewals/run", params={"secret": ""})
        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_secret_query_parameter(self, api):
        response = await api.post("/api/renewals/run", params={"secret": CRON_SECRET})
        assert response.status_code == 200
        assert response.json()["total_due"] == 0

    @pytest.mark.asyncio
    async def test_run_and_inspect(self, api, add_subscription, mock_gateway):
        await add_subscription("MEM-001")
        await add_subscription("MEM-002", status="canceled", cancel_at_period_end=True)
        mock_gateway.queue_response(DENIAL_CODE)

        response = await api.post("/api/renewals/run", headers=_auth())

        assert response.status_code == 200
        body = response.json()
        assert body["total_due"] == 1
        assert body["total_failed"] == 1
        assert body["results"][0]["new_status"] == "past_due"
        assert body["results"][0]["error_code"] == DENIAL_CODE
        assert body["sweep"]["expired"] == 1

        runs = (await api.get("/api/renewals")).json()
        assert [r["id"] for r in runs] == [body["run_id"]]
        assert runs[0]["failed_count"] == 1

        detail = (await api.get(f"/api/renewals/{body['run_id']}")).json()
        actions = [entry["action"] for entry in detail["audit_trail"]]
        assert "renewal_failed" in actions

    @pytest.mark.asyncio
    async def test_dry_run_skips_sweep(self, api, add_subscription, mock_gateway):
        await add_subscription()

        body = (await api.post("/api/renewals/run", params={"dry_run": "true"}, headers=_auth())).json()

        assert body["dry_run"] is True
        assert body["run_id"] is None
        assert body["sweep"] is None
        assert mock_gateway.requests == []

    @pytest.mark.asyncio
    async def test_unknown_run(self, api):
        assert (await api.get("/api/renewals/nope")).status_code == 404


class TestTransactions:
    @pytest.mark.asyncio
    async def test_list_and_trace(self, api, add_subscription):
        sub_id = await add_subscription()
        body = (await api.post("/api/renewals/run", headers=_auth())).json()
        order = body["results"][0]["order"]

        listed = (await api.get("/api/transactions", params={"subscription_id": sub_id})).json()
        assert [t["order"] for t in listed] == [order]
        assert listed[0]["status"] == "authorized"
        assert listed[0]["is_mit"] is True

        trace = (await api.get(f"/api/transactions/{order}/trace")).json()
        assert trace["transaction"]["order"] == order
        assert [e["action"] for e in trace["audit_trail"]] == ["renewal_charged"]

    @pytest.mark.asyncio
    async def test_unknown_order_trace(self, api):
        assert (await api.get("/api/transactions/2503R0000000/trace")).status_code == 404


class TestNotificationEndpoint:
    @pytest.mark.asyncio
    async def test_form_encoded(self, api, store):
        await store.create_transaction(
            order="2503M0000001", transaction_type="0", amount_cents=1000, currency="978", context="membership"
        )
        encoded, signature = signed_notification("2503M0000001")

        response = await api.post(
            "/api/payments/notification",
            data={
                "Ds_SignatureVersion": "HMAC_SHA256_V1",
                "Ds_MerchantParameters": encoded,
                "Ds_Signature": signature,
            },
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "result": "updated"}

    @pytest.mark.asyncio
    async def test_json_body(self, api, store):
        await store.create_transaction(
            order="2503M0000001", transaction_type="0", amount_cents=1000, currency="978", context="membership"
        )
        encoded, signature = signed_notification("2503M0000001", code="0190")

        response = await api.post(
            "/api/payments/notification",
            json={"Ds_MerchantParameters": encoded, "Ds_Signature": signature},
        )

        assert response.json()["result"] == "updated"

    @pytest.mark.asyncio
    async def test_bad_input_still_200(self, api):
        response = await api.post("/api/payments/notification", content=b"garbage")
        assert response.status_code == 200
        assert response.json()["status"] == "error"

        forged = await api.post(
            "/api/payments/notification",
            json={"Ds_MerchantParameters": signed_notification()[0], "Ds_Signature": "AAAA"},
        )
        assert forged.status_code == 200
        assert forged.json() == {"status": "error", "message": "invalid_signature"}
