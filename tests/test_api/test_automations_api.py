"""Tests for provider automation routes and the scheduler endpoint."""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beautyhub.core.config import settings
from beautyhub.models.automation import AutomationExecution, MarketingAutomation
from beautyhub.models.user import UserRole
from beautyhub.services.automations.engine import PASS_LOCK_KEY
from beautyhub.services.automations.templates import TEMPLATE_LIBRARY

BASE = "/api/v1/provider/automations"


@pytest_asyncio.fixture
async def provider(create_test_provider: Any) -> Any:
    return await create_test_provider()


@pytest_asyncio.fixture
async def owner(create_test_user: Any, provider: Any) -> Any:
    return await create_test_user(role=UserRole.PROVIDER_OWNER.value, provider_id=provider.id)


@pytest.fixture
def use_dispatcher(dispatcher: Any, monkeypatch: pytest.MonkeyPatch) -> Any:
    """Route engine sends through the recording dispatcher."""
    monkeypatch.setattr(
        "beautyhub.services.automations.engine.ProviderMessagingService", lambda db: dispatcher
    )
    return dispatcher


class TestExecuteEndpoint:
    @pytest.mark.asyncio
    async def test_open_without_configured_secret(
        self, test_client: AsyncClient, use_dispatcher: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "CRON_SECRET", None)
        monkeypatch.setattr(settings, "INTERNAL_API_SECRET", None)

        response = await test_client.post(f"{BASE}/execute")

        assert response.status_code == 200
        assert response.json() == {"data": {"executed": 0, "automationIds": []}, "error": None}

    @pytest.mark.asyncio
    async def test_rejects_wrong_secret(
        self, test_client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "CRON_SECRET", "cron-s3cret")

        missing = await test_client.post(f"{BASE}/execute")
        wrong = await test_client.post(
            f"{BASE}/execute", headers={"Authorization": "Bearer not-it"}
        )

        assert missing.status_code == 401
        assert wrong.status_code == 401
        assert wrong.json()["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_internal_secret_fallback(
        self, test_client: AsyncClient, use_dispatcher: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "CRON_SECRET", None)
        monkeypatch.setattr(settings, "INTERNAL_API_SECRET", "internal-s3cret")

        response = await test_client.post(
            f"{BASE}/execute", headers={"Authorization": "Bearer internal-s3cret"}
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_runs_pass_and_sends(
        self,
        test_client: AsyncClient,
        test_session: AsyncSession,
        use_dispatcher: Any,
        provider: Any,
        create_test_user: Any,
        create_test_booking: Any,
        create_test_automation: Any,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings, "CRON_SECRET", "cron-s3cret")
        customer = await create_test_user(full_name="Jane", phone="+15550001111")
        await create_test_booking(
            provider_id=provider.id,
            customer_id=customer.id,
            scheduled_at=datetime.now(UTC) + timedelta(hours=24, minutes=7),
        )
        automation = await create_test_automation(provider_id=provider.id)

        response = await test_client.post(
            f"{BASE}/execute", headers={"Authorization": "Bearer cron-s3cret"}
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"executed": 1, "automationIds": [str(automation.id)]}
        assert [m.to for m in use_dispatcher.sent] == ["+15550001111"]
        records = (await test_session.execute(select(AutomationExecution))).scalars().all()
        assert len(records) == 1

    @pytest.mark.asyncio
    async def test_conflict_when_pass_running(
        self,
        test_client: AsyncClient,
        test_redis: Any,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings, "CRON_SECRET", None)
        monkeypatch.setattr(settings, "INTERNAL_API_SECRET", None)
        await test_redis.set(PASS_LOCK_KEY, "other-pass", ex=60)

        response = await test_client.post(f"{BASE}/execute")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"


class TestAutomationManagement:
    @pytest.mark.asyncio
    async def test_requires_provider_member(
        self, test_client: AsyncClient, create_test_user: Any, auth_headers: Any
    ) -> None:
        customer = await create_test_user()

        unauthenticated = await test_client.get(BASE)
        forbidden = await test_client.get(BASE, headers=auth_headers(customer))

        assert unauthenticated.status_code == 401
        assert forbidden.status_code == 403
        assert forbidden.json()["error"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_create_and_list(
        self, test_client: AsyncClient, owner: Any, auth_headers: Any
    ) -> None:
        response = await test_client.post(
            BASE,
            headers=auth_headers(owner),
            json={
                "name": "Package Nudge",
                "trigger_type": "package_expiring",
                "trigger_config": {"days_before": 3},
                "action_type": "email",
                "action_config": {"subject": "Your package is expiring"},
                "is_active": True,
            },
        )

        assert response.status_code == 201
        created = response.json()["data"]
        assert created["provider_id"] == str(owner.provider_id)
        assert created["trigger_config"] == {"days_before": 3}
        assert created["is_template"] is False

        listed = await test_client.get(BASE, headers=auth_headers(owner))
        assert [a["id"] for a in listed.json()["data"]] == [created["id"]]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "Bad", "trigger_type": "moon_phase"},
            {"name": "Bad", "trigger_type": "holiday", "action_type": "carrier_pigeon"},
            {"name": "", "trigger_type": "holiday"},
            {"name": "Bad", "trigger_type": "holiday", "delay_minutes": -5},
        ],
    )
    async def test_invalid_payload_rejected(
        self, test_client: AsyncClient, owner: Any, auth_headers: Any, payload: dict[str, Any]
    ) -> None:
        response = await test_client.post(BASE, headers=auth_headers(owner), json=payload)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_update(
        self,
        test_client: AsyncClient,
        owner: Any,
        auth_headers: Any,
        create_test_automation: Any,
    ) -> None:
        automation = await create_test_automation(
            provider_id=owner.provider_id, description="Old", is_active=False
        )

        response = await test_client.patch(
            f"{BASE}/{automation.id}",
            headers=auth_headers(owner),
            json={"is_active": True, "description": None, "name": None, "delay_minutes": 10},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["is_active"] is True
        assert data["description"] is None
        assert data["name"] == "Custom Automation"
        assert data["delay_minutes"] == 10

    @pytest.mark.asyncio
    async def test_cannot_touch_other_providers_automation(
        self,
        test_client: AsyncClient,
        owner: Any,
        auth_headers: Any,
        create_test_provider: Any,
        create_test_automation: Any,
    ) -> None:
        other = await create_test_provider(business_name="Rival Spa")
        automation = await create_test_automation(provider_id=other.id)

        response = await test_client.patch(
            f"{BASE}/{automation.id}", headers=auth_headers(owner), json={"is_active": False}
        )

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Automation not found"

    @pytest.mark.asyncio
    async def test_seed_templates_once(
        self,
        test_client: AsyncClient,
        test_session: AsyncSession,
        owner: Any,
        auth_headers: Any,
    ) -> None:
        first = await test_client.post(f"{BASE}/templates/seed", headers=auth_headers(owner))
        second = await test_client.post(f"{BASE}/templates/seed", headers=auth_headers(owner))

        assert first.json()["data"] == {"created": len(TEMPLATE_LIBRARY)}
        assert second.json()["data"] == {"created": 0}
        rows = (
            await test_session.execute(
                select(MarketingAutomation).where(MarketingAutomation.provider_id == owner.provider_id)
            )
        ).scalars().all()
        assert len(rows) == len(TEMPLATE_LIBRARY)
        assert not any(a.is_active for a in rows)

    @pytest.mark.asyncio
    async def test_execution_history(
        self,
        test_client: AsyncClient,
        test_session: AsyncSession,
        owner: Any,
        auth_headers: Any,
        create_test_user: Any,
        create_test_automation: Any,
    ) -> None:
        automation = await create_test_automation(provider_id=owner.provider_id)
        customer = await create_test_user()
        test_session.add(
            AutomationExecution(
                automation_id=automation.id,
                customer_id=customer.id,
                message_id="SM123",
                action_type="sms",
                status="sent",
                dedup_bucket="2025-03-12",
                executed_at=datetime(2025, 3, 12, 12, tzinfo=UTC),
            )
        )
        await test_session.commit()

        response = await test_client.get(
            f"{BASE}/{automation.id}/executions", headers=auth_headers(owner)
        )

        assert response.status_code == 200
        [execution] = response.json()["data"]
        assert execution["customer_id"] == str(customer.id)
        assert execution["message_id"] == "SM123"
        assert execution["status"] == "sent"
