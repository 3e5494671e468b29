from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from crowdprice.core.config import get_settings
from crowdprice.services.observations import FulfillmentKind, ItemCondition, ObservationStatus
from crowdprice.services.repository import (
    PostgresRepository,
    RepositoryUnavailableError,
    get_repository,
)
from crowdprice.services.store import InMemoryObservationStore


def test_missing_database_url_is_unavailable() -> None:
    repository = PostgresRepository(database_url=None, min_pool_size=1, max_pool_size=2)

    with pytest.raises(RepositoryUnavailableError, match="CP_DATABASE_URL"):
        asyncio.run(repository.get_observation("11111111-1111-1111-1111-111111111111"))


def test_memory_backend_is_selected_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CP_REPOSITORY_BACKEND", "memory")
    get_settings.cache_clear()
    get_repository.cache_clear()
    try:
        assert isinstance(get_repository(), InMemoryObservationStore)
    finally:
        get_settings.cache_clear()
        get_repository.cache_clear()


def test_observation_row_maps_captured_location() -> None:
    created_at = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    row = {
        "id": "11111111-1111-1111-1111-111111111111",
        "product_id": "22222222-2222-2222-2222-222222222222",
        "price": Decimal("12.50"),
        "currency": "EUR",
        "item_price": Decimal("10.00"),
        "shipping_cost": Decimal("2.50"),
        "fees": None,
        "store_id": None,
        "store_name": "Bol",
        "source": None,
        "source_url": None,
        "captured_country": "Netherlands",
        "captured_city": "Utrecht",
        "fulfillment": "person",
        "condition": "used",
        "is_final_price": True,
        "submitted_by": "33333333-3333-3333-3333-333333333333",
        "status": "pending",
        "reviewed_by": None,
        "reviewed_at": None,
        "rejection_reason": None,
        "created_at": created_at,
    }

    observation = PostgresRepository._observation_row_to_model(row)

    assert observation.country == "Netherlands"
    assert observation.location_suffix == "Netherlands:Utrecht"
    assert observation.fulfillment is FulfillmentKind.PERSON_TO_PERSON
    assert observation.condition is ItemCondition.USED
    assert observation.status is ObservationStatus.PENDING
    assert observation.has_breakdown


def test_event_row_payload_is_decoded() -> None:
    row = {
        "id": 7,
        "observation_id": "11111111-1111-1111-1111-111111111111",
        "event_type": "rejected",
        "actor_id": "44444444-4444-4444-4444-444444444444",
        "payload": '{"reason": "wrong model"}',
        "created_at": datetime(2025, 3, 1, tzinfo=timezone.utc),
    }

    event = PostgresRepository._event_row_to_dict(row)

    assert event["payload"] == {"reason": "wrong model"}
    assert event["id"] == 7
