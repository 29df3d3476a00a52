"""
API tests for cross-provider cost reporting.
"""
from datetime import date, timedelta

import pytest
from sqlalchemy import select

from app.models.alert import Alert
from app.modules.reporting.domain.service import CostReportingService
from app.shared.core.config import get_settings

RANGE = {"start_date": "2024-01-01", "end_date": "2024-01-03"}


@pytest.fixture
async def two_tenants(factory):
    """Two users with disjoint accounts and spend on the same days."""
    alice = await factory.user(email="alice@example.com")
    bob = await factory.user(email="bob@example.com")

    alice_aws = await factory.account(alice, "aws", name="Alice AWS")
    alice_gcp = await factory.account(alice, "gcp", name="Alice GCP")
    bob_aws = await factory.account(bob, "aws", name="Bob AWS")

    for day in (1, 2, 3):
        await factory.cost(alice_aws, date(2024, 1, day), service="EC2", cost="10")
    await factory.cost(alice_gcp, date(2024, 1, 2), service="BigQuery", cost="5")
    await factory.cost(bob_aws, date(2024, 1, 1), service="EC2", cost="1000")
    return alice, bob


class TestTotalCost:
    async def test_date_pivot_is_dense_and_scoped(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants

        response = await ac.get("/api/v1/costs", params=RANGE, headers=headers_for(alice))

        assert response.status_code == 200
        body = response.json()
        assert body["total_cost"] == 35.0
        assert body["group_by"] == "date"
        assert body["truncated"] is False
        assert body["data"] == [
            {"date": "2024-01-01", "aws": 10.0, "azure": 0.0, "gcp": 0.0},
            {"date": "2024-01-02", "aws": 10.0, "azure": 0.0, "gcp": 5.0},
            {"date": "2024-01-03", "aws": 10.0, "azure": 0.0, "gcp": 0.0},
        ]

    async def test_other_tenant_sees_only_their_spend(self, ac, headers_for, two_tenants):
        _, bob = two_tenants

        body = (await ac.get("/api/v1/costs", params=RANGE, headers=headers_for(bob))).json()

        assert body["total_cost"] == 1000.0

    async def test_group_by_provider_with_percentages(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants

        body = (await ac.get(
            "/api/v1/costs", params={**RANGE, "group_by": "provider"}, headers=headers_for(alice)
        )).json()

        assert body["data"] == [
            {"provider": "aws", "cost": 30.0, "percentage": 85.71},
            {"provider": "gcp", "cost": 5.0, "percentage": 14.29},
        ]

    async def test_group_by_service(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants

        body = (await ac.get(
            "/api/v1/costs", params={**RANGE, "group_by": "service"}, headers=headers_for(alice)
        )).json()

        assert body["data"] == [
            {"provider": "aws", "service": "EC2", "cost": 30.0},
            {"provider": "gcp", "service": "BigQuery", "cost": 5.0},
        ]

    async def test_provider_narrowing(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants

        body = (await ac.get(
            "/api/v1/costs", params={**RANGE, "provider": "gcp"}, headers=headers_for(alice)
        )).json()

        assert body["total_cost"] == 5.0

    async def test_user_without_accounts_gets_zeros(self, ac, factory, headers_for):
        loner = await factory.user()

        response = await ac.get("/api/v1/costs", params=RANGE, headers=headers_for(loner))

        assert response.status_code == 200
        body = response.json()
        assert body["total_cost"] == 0.0
        assert len(body["data"]) == 3
        assert all(row["aws"] == row["azure"] == row["gcp"] == 0.0 for row in body["data"])

    async def test_inverted_range_is_bad_request(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants

        response = await ac.get(
            "/api/v1/costs",
            params={"start_date": "2024-02-01", "end_date": "2024-01-01"},
            headers=headers_for(alice),
        )

        assert response.status_code == 400
        assert response.json() == {
            "error": "invalid_date_range",
            "message": "start_date must be on or before end_date",
            "details": {},
        }

    async def test_unknown_group_by(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants
        response = await ac.get(
            "/api/v1/costs", params={**RANGE, "group_by": "region"}, headers=headers_for(alice)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_group_by"

    async def test_unknown_provider(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants
        response = await ac.get(
            "/api/v1/costs", params={**RANGE, "provider": "oracle"}, headers=headers_for(alice)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_provider"


class TestCostByAccount:
    async def test_includes_idle_accounts_sorted_by_cost(self, ac, factory, headers_for, two_tenants):
        alice, _ = two_tenants
        await factory.account(alice, "azure", name="Alice Azure")

        body = (await ac.get("/api/v1/costs/by-account", params=RANGE, headers=headers_for(alice))).json()

        assert [(row["name"], row["cost"]) for row in body] == [
            ("Alice AWS", 30.0),
            ("Alice GCP", 5.0),
            ("Alice Azure", 0.0),
        ]
        assert {row["provider"] for row in body} == {"aws", "azure", "gcp"}


class TestForecast:
    async def test_forecast_shape(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants

        response = await ac.get("/api/v1/costs/forecast", headers=headers_for(alice))

        assert response.status_code == 200
        body = response.json()
        assert body["days_passed"] + body["days_remaining"] == body["days_in_month"]
        assert body["projected_cost"] >= body["current_cost"]

    async def test_forecast_for_user_without_accounts(self, ac, factory, headers_for):
        loner = await factory.user()

        body = (await ac.get("/api/v1/costs/forecast", headers=headers_for(loner))).json()

        assert body["current_cost"] == 0.0
        assert body["projected_cost"] == 0.0
        assert body["change_percentage"] == 0.0


class TestAnomalies:
    async def test_spike_is_flagged(self, ac, factory, headers_for):
        user = await factory.user()
        account = await factory.account(user, "azure")
        for day in range(1, 5):
            await factory.cost(account, date(2024, 3, day), cost="10")
        await factory.cost(account, date(2024, 3, 5), cost="100")

        body = (await ac.get(
            "/api/v1/costs/anomalies",
            params={"start_date": "2024-03-01", "end_date": "2024-03-05"},
            headers=headers_for(user),
        )).json()

        assert len(body["series"]) == 5
        assert [a["date"] for a in body["anomalies"]] == ["2024-03-05"]

    async def test_no_spend_no_series(self, ac, factory, headers_for):
        user = await factory.user()
        body = (await ac.get("/api/v1/costs/anomalies", params=RANGE, headers=headers_for(user))).json()
        assert body["series"] == []
        assert body["anomalies"] == []


class TestAccountsApi:
    async def test_list_spans_providers(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants

        body = (await ac.get("/api/v1/accounts", headers=headers_for(alice))).json()

        assert sorted(a["provider"] for a in body) == ["aws", "gcp"]
        assert all(a["status"] == "pending" for a in body)

    async def test_delete_removes_spend_from_reports(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants
        accounts = (await ac.get("/api/v1/accounts", headers=headers_for(alice))).json()
        gcp = next(a for a in accounts if a["provider"] == "gcp")

        response = await ac.delete(f"/api/v1/accounts/{gcp['id']}", headers=headers_for(alice))
        assert response.status_code == 200
        assert response.json() == {"status": "deleted", "id": gcp["id"]}

        body = (await ac.get("/api/v1/costs", params=RANGE, headers=headers_for(alice))).json()
        assert body["total_cost"] == 30.0
        missing = await ac.get(f"/api/v1/accounts/{gcp['id']}", headers=headers_for(alice))
        assert missing.status_code == 404

    async def test_foreign_account_is_not_found(self, ac, headers_for, two_tenants):
        alice, bob = two_tenants
        bobs = (await ac.get("/api/v1/accounts", headers=headers_for(bob))).json()

        response = await ac.get(f"/api/v1/accounts/{bobs[0]['id']}", headers=headers_for(alice))

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_connect_checks_credentials_and_alerts(self, ac, db, factory, headers_for, bus, sync_client):
        user = await factory.user()
        credentials = {"access_key_id": "AKIAEXAMPLE", "secret_access_key": "s3cr3t"}

        response = await ac.post(
            "/api/v1/accounts",
            json={
                "provider": "aws",
                "name": "Production",
                "account_id": "123456789012",
                "region": "eu-west-1",
                "credentials": credentials,
            },
            headers=headers_for(user),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["provider"] == "aws"
        assert body["account_id"] == "123456789012"
        assert body["status"] == "connected"
        assert body["last_sync"] is not None
        sync_client.validate_credentials.assert_awaited_once_with(
            "aws", {**credentials, "region": "eu-west-1"}
        )
        alerts = (await db.execute(select(Alert).where(Alert.user_id == user.id))).scalars().all()
        assert [a.title for a in alerts] == ["AWS Account Connected"]
        assert bus.pending() == 1

    async def test_connect_with_rejected_credentials_stores_error(self, ac, factory, headers_for, bus, sync_client):
        user = await factory.user()
        sync_client.validate_credentials.side_effect = RuntimeError("AccessDenied: not authorized")

        response = await ac.post(
            "/api/v1/accounts",
            json={
                "provider": "azure",
                "name": "Dev subscription",
                "account_id": "sub-123",
                "credentials": {"directory_tenant_id": "t", "client_id": "c", "client_secret": "s"},
            },
            headers=headers_for(user),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "error"
        assert body["error_message"].startswith("Permission denied")
        assert body["last_sync"] is None
        assert bus.pending() == 0

    async def test_connect_same_account_twice(self, ac, factory, headers_for):
        user = await factory.user()
        payload = {
            "provider": "gcp",
            "name": "Analytics",
            "account_id": "analytics-prod",
            "credentials": {"service_account_json": '{"type": "service_account"}'},
        }

        first = await ac.post("/api/v1/accounts", json=payload, headers=headers_for(user))
        second = await ac.post("/api/v1/accounts", json=payload, headers=headers_for(user))

        assert first.status_code == 201
        assert second.status_code == 400
        assert second.json()["error"] == "account_exists"

    async def test_connect_without_credentials_creates_nothing(self, ac, factory, headers_for, sync_client):
        user = await factory.user()

        response = await ac.post(
            "/api/v1/accounts",
            json={"provider": "gcp", "name": "Empty", "account_id": "empty-project"},
            headers=headers_for(user),
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"missing": ["service_account_json"]}
        sync_client.validate_credentials.assert_not_called()
        assert (await ac.get("/api/v1/accounts", headers=headers_for(user))).json() == []

    async def test_update_rechecks_new_credentials(self, ac, factory, headers_for, sync_client):
        user = await factory.user()
        account = await factory.account(user, "aws")

        response = await ac.patch(
            f"/api/v1/accounts/{account.id}",
            json={"name": "Renamed", "credentials": {"role_arn": "arn:aws:iam::123456789012:role/ReadOnly"}},
            headers=headers_for(user),
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["status"] == "connected"
        provider, checked = sync_client.validate_credentials.call_args.args
        assert provider == "aws"
        assert checked["role_arn"] == "arn:aws:iam::123456789012:role/ReadOnly"

    async def test_sync_stores_costs_and_replaces_window(self, ac, factory, headers_for, bus, sync_client):
        user = await factory.user()
        account = await factory.account(user, "aws")
        today = date.today()
        sync_client.fetch_cost_and_usage.return_value = [
            {"date": today.isoformat(), "service": "AmazonEC2", "cost": "12.5"},
            {"date": (today - timedelta(days=1)).isoformat(), "service": "AmazonS3", "cost": "2.5"},
        ]

        first = await ac.post(f"/api/v1/accounts/{account.id}/sync", headers=headers_for(user))
        second = await ac.post(f"/api/v1/accounts/{account.id}/sync", headers=headers_for(user))

        assert first.status_code == 200
        assert first.json()["records_synced"] == 2
        assert first.json()["account"]["status"] == "connected"
        assert second.status_code == 200
        # Only the first sync moves the account to connected
        assert bus.pending() == 1

        costs = (await ac.get(f"/api/v1/accounts/{account.id}/costs", headers=headers_for(user))).json()
        assert costs["total_cost"] == 15.0
        assert costs["data"] == [
            {"service": "AmazonEC2", "cost": 12.5},
            {"service": "AmazonS3", "cost": 2.5},
        ]

    async def test_sync_failure_marks_account_error(self, ac, factory, headers_for, sync_client):
        user = await factory.user()
        account = await factory.account(user, "gcp")
        sync_client.fetch_cost_and_usage.side_effect = RuntimeError("Throttling: rate exceeded")

        response = await ac.post(f"/api/v1/accounts/{account.id}/sync", headers=headers_for(user))

        assert response.status_code == 502
        assert response.json()["error"] == "adapter_error"
        stored = (await ac.get(f"/api/v1/accounts/{account.id}", headers=headers_for(user))).json()
        assert stored["status"] == "error"
        assert stored["error_message"] == response.json()["message"]

    async def test_account_costs_by_date(self, ac, headers_for, two_tenants):
        alice, _ = two_tenants
        accounts = (await ac.get("/api/v1/accounts", headers=headers_for(alice))).json()
        aws = next(a for a in accounts if a["provider"] == "aws")

        body = (await ac.get(
            f"/api/v1/accounts/{aws['id']}/costs",
            params={**RANGE, "group_by": "date"},
            headers=headers_for(alice),
        )).json()

        assert body["data"] == [
            {"date": "2024-01-01", "cost": 10.0},
            {"date": "2024-01-02", "cost": 10.0},
            {"date": "2024-01-03", "cost": 10.0},
        ]

    async def test_foreign_account_costs(self, ac, headers_for, two_tenants):
        alice, bob = two_tenants
        bobs = (await ac.get("/api/v1/accounts", headers=headers_for(bob))).json()

        response = await ac.get(f"/api/v1/accounts/{bobs[0]['id']}/costs", headers=headers_for(alice))

        assert response.status_code == 404


class TestRowCap:
    @pytest.fixture
    async def capped(self, monkeypatch, factory):
        """Three $10 days against a cap of two rows."""
        monkeypatch.setattr(get_settings(), "MAX_AGGREGATION_ROWS", 2)
        user = await factory.user()
        account = await factory.account(user, "aws")
        for day in (1, 2, 3):
            await factory.cost(account, date(2024, 1, day), cost="10")
        return user

    async def test_total_reports_truncation(self, ac, headers_for, capped):
        body = (await ac.get("/api/v1/costs", params=RANGE, headers=headers_for(capped))).json()

        assert body["total_cost"] == 20.0
        assert body["truncated"] is True

    async def test_by_account_refuses_partial_totals(self, ac, headers_for, capped):
        response = await ac.get("/api/v1/costs/by-account", params=RANGE, headers=headers_for(capped))

        assert response.status_code == 400
        assert response.json()["error"] == "too_many_records"
        assert response.json()["details"] == {"limit": 2}

    async def test_anomalies_report_truncation(self, ac, headers_for, capped):
        body = (await ac.get("/api/v1/costs/anomalies", params=RANGE, headers=headers_for(capped))).json()

        assert body["truncated"] is True

    async def test_forecast_reports_truncation(self, db, capped):
        result = await CostReportingService(db).get_forecast(capped.id, today=date(2024, 1, 3))

        assert result["current_cost"] == 20.0
        assert result["truncated"] is True
