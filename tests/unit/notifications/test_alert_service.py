"""
Tests for the alert inbox.
"""
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from app.modules.notifications.domain.alerts import AlertService
from app.shared.core.exceptions import BadRequestError, ResourceNotFoundError


class TestCreateAlert:
    async def test_staged_until_commit(self, db, factory):
        user = await factory.user()
        service = AlertService(db)

        alert = service.create_alert(user.id, "Budget", "Spend is up", severity="high", category="cost")
        await db.commit()

        listed = await service.list_alerts(user.id)
        assert [a.id for a in listed["alerts"]] == [alert.id]
        assert alert.status == "new"

    def test_rejects_unknown_severity(self):
        with pytest.raises(BadRequestError):
            AlertService(MagicMock()).create_alert(uuid4(), "t", "m", severity="catastrophic")


class TestInbox:
    async def test_list_counts_and_filters(self, db, factory):
        user = await factory.user()
        other = await factory.user()
        await factory.alert(user, severity="critical")
        await factory.alert(user, severity="low", status="read")
        await factory.alert(other)

        service = AlertService(db)
        everything = await service.list_alerts(user.id)
        critical = await service.list_alerts(user.id, severity="critical")

        assert everything["total_count"] == 2
        assert everything["unread_count"] == 1
        assert critical["total_count"] == 1
        assert critical["unread_count"] == 1

    async def test_invalid_filter_rejected(self, db, factory):
        user = await factory.user()
        with pytest.raises(BadRequestError):
            await AlertService(db).list_alerts(user.id, status="archived")

    async def test_opening_marks_read(self, db, factory):
        user = await factory.user()
        alert = await factory.alert(user)

        opened = await AlertService(db).get_alert(user.id, alert.id)

        assert opened.status == "read"

    async def test_other_users_alert_not_found(self, db, factory):
        owner = await factory.user()
        stranger = await factory.user()
        alert = await factory.alert(owner)

        with pytest.raises(ResourceNotFoundError):
            await AlertService(db).get_alert(stranger.id, alert.id)

    async def test_resolve_sets_timestamp(self, db, factory):
        user = await factory.user()
        alert = await factory.alert(user)

        resolved = await AlertService(db).update_status(user.id, alert.id, "resolved")

        assert resolved.status == "resolved"
        assert resolved.resolved_at is not None

    async def test_cannot_set_new(self, db, factory):
        user = await factory.user()
        alert = await factory.alert(user, status="read")
        with pytest.raises(BadRequestError):
            await AlertService(db).update_status(user.id, alert.id, "new")

    async def test_mark_all_read(self, db, factory):
        user = await factory.user()
        other = await factory.user()
        await factory.alert(user)
        await factory.alert(user)
        await factory.alert(user, status="acknowledged")
        await factory.alert(other)

        assert await AlertService(db).mark_all_read(user.id) == 2
        assert (await AlertService(db).list_alerts(other.id))["unread_count"] == 1

    async def test_delete(self, db, factory):
        user = await factory.user()
        alert = await factory.alert(user)
        service = AlertService(db)

        await service.delete_alert(user.id, alert.id)

        assert (await service.list_alerts(user.id))["total_count"] == 0
        with pytest.raises(ResourceNotFoundError):
            await service.delete_alert(user.id, alert.id)

    async def test_summary_lists_every_bucket(self, db, factory):
        user = await factory.user()
        await factory.alert(user, severity="high", category="security")
        await factory.alert(user, severity="high", category="cost", status="resolved")

        summary = await AlertService(db).summary(user.id)

        assert summary["total"] == 2
        assert summary["by_severity"] == {"critical": 0, "high": 2, "medium": 0, "low": 0, "info": 0}
        assert summary["by_status"]["new"] == 1
        assert summary["by_status"]["resolved"] == 1
        assert summary["by_category"]["security"] == 1
        assert summary["by_category"]["cost"] == 1
