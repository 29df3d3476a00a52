"""
Tests for the recommendation status lifecycle.

Covers the transition table, the append-only history, the guarded write
and the side effects of implementing a recommendation.
"""
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from app.models.alert import Alert
from app.models.recommendation import Recommendation, RecommendationStatus
from app.modules.notifications.domain.events import EventBus, RecommendationImplemented
from app.modules.optimization.domain.recommendations import (
    RecommendationService,
    append_history,
    can_transition,
)
from app.shared.core.exceptions import BadRequestError, ConflictError, ResourceNotFoundError


class TestTransitionTable:
    @pytest.mark.parametrize("current,target", [
        ("open", "in_progress"),
        ("open", "dismissed"),
        ("open", "expired"),
        ("in_progress", "implemented"),
        ("in_progress", "dismissed"),
        ("in_progress", "expired"),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        ("open", "implemented"),
        ("open", "open"),
        ("in_progress", "open"),
        ("implemented", "open"),
        ("dismissed", "in_progress"),
        ("expired", "open"),
        ("open", "bogus"),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)


class TestAppendHistory:
    def test_appends_without_mutating_input(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        user_id = uuid4()
        original = {"status_history": [{"previous_status": "open", "status": "in_progress"}], "source": "sync"}

        updated = append_history(original, "in_progress", "implemented", user_id, now)

        assert len(original["status_history"]) == 1
        assert updated["source"] == "sync"
        assert updated["status_history"][0] == original["status_history"][0]
        assert updated["status_history"][1] == {
            "previous_status": "in_progress",
            "status": "implemented",
            "timestamp": now.isoformat(),
            "user_id": str(user_id),
        }

    def test_starts_history_on_empty_metadata(self):
        updated = append_history(None, "open", "dismissed", uuid4(), datetime.now(timezone.utc))
        assert len(updated["status_history"]) == 1


class TestUpdateStatus:
    @pytest.fixture
    async def setup(self, factory):
        user = await factory.user()
        account = await factory.account(user, "aws")
        rec = await factory.recommendation(account, potential_savings="120.50")
        return user, rec

    async def test_valid_transition_appends_one_entry(self, db, setup):
        user, rec = setup
        service = RecommendationService(db, events=EventBus())

        updated = await service.update_status(user.id, rec.id, "in_progress", notes="picking this up")

        assert updated.status == "in_progress"
        history = updated.extra_metadata["status_history"]
        assert len(history) == 1
        assert history[0]["previous_status"] == "open"
        assert history[0]["status"] == "in_progress"
        assert history[0]["user_id"] == str(user.id)
        assert updated.extra_metadata["notes"] == "picking this up"

    async def test_history_preserves_earlier_entries(self, db, setup):
        user, rec = setup
        service = RecommendationService(db, events=EventBus())

        await service.update_status(user.id, rec.id, "in_progress")
        updated = await service.update_status(user.id, rec.id, "dismissed")

        history = updated.extra_metadata["status_history"]
        assert [(h["previous_status"], h["status"]) for h in history] == [
            ("open", "in_progress"),
            ("in_progress", "dismissed"),
        ]

    async def test_invalid_transition_leaves_row_untouched(self, db, setup):
        user, rec = setup
        service = RecommendationService(db, events=EventBus())

        with pytest.raises(BadRequestError):
            await service.update_status(user.id, rec.id, "implemented")

        stored = await db.scalar(
            select(Recommendation).where(Recommendation.id == rec.id).execution_options(populate_existing=True)
        )
        assert stored.status == "open"
        assert "status_history" not in (stored.extra_metadata or {})

    async def test_unknown_status_is_bad_request(self, db, setup):
        user, rec = setup
        with pytest.raises(BadRequestError):
            await RecommendationService(db, events=EventBus()).update_status(user.id, rec.id, "finished")

    async def test_implemented_creates_alert_and_event(self, db, setup):
        user, rec = setup
        bus = EventBus()
        service = RecommendationService(db, events=bus)

        await service.update_status(user.id, rec.id, "in_progress")
        assert bus.pending() == 0

        await service.update_status(user.id, rec.id, "implemented")

        alerts = (await db.execute(select(Alert).where(Alert.user_id == user.id))).scalars().all()
        assert len(alerts) == 1
        assert alerts[0].severity == "info"
        assert alerts[0].category == "cost"
        assert alerts[0].extra_metadata["recommendation_id"] == str(rec.id)

        assert bus.pending() == 1
        event = bus._queue.get_nowait()
        assert isinstance(event, RecommendationImplemented)
        assert event.payload["potential_savings"] == 120.5

    async def test_concurrent_change_raises_conflict(self, db, setup):
        """The guarded UPDATE refuses to overwrite a status it did not read."""
        user, rec = setup
        rec_id = rec.id
        service = RecommendationService(db, events=EventBus())

        # Another writer moves the row; this session still holds "open"
        await db.execute(
            update(Recommendation)
            .where(Recommendation.id == rec_id)
            .values(status=RecommendationStatus.DISMISSED.value)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        assert rec.status == "open"

        with pytest.raises(ConflictError):
            await service.update_status(user.id, rec_id, "in_progress")

        # The rollback expired `rec`; read the row back by id
        stored = await db.scalar(
            select(Recommendation).where(Recommendation.id == rec_id).execution_options(populate_existing=True)
        )
        assert stored.status == "dismissed"

    async def test_foreign_recommendation_not_found(self, db, factory, setup):
        _, rec = setup
        stranger = await factory.user()
        await factory.account(stranger, "aws")

        with pytest.raises(ResourceNotFoundError):
            await RecommendationService(db, events=EventBus()).update_status(stranger.id, rec.id, "in_progress")
