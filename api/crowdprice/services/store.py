from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from crowdprice.services.moderation import ReviewOutcome
from crowdprice.services.observations import (
    ObservationDraft,
    ObservationStatus,
    PriceObservation,
)


class InMemoryObservationStore:
    """Process-local price record store with the same async surface as the Postgres repository.

    Review writes are a compare-and-swap on the pending status under a lock, so
    concurrent reviewers (threads or tasks) see exactly one winner.
    """

    def __init__(self) -> None:
        self.observations: dict[str, PriceObservation] = {}
        self.events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    async def close(self) -> None:
        return None

    async def ping(self) -> None:
        return None

    async def insert_observation(
        self,
        draft: ObservationDraft,
        *,
        outcome: ReviewOutcome,
        created_at: datetime | None = None,
    ) -> PriceObservation:
        observation = PriceObservation(
            id=str(uuid4()),
            product_id=draft.product_id,
            price=draft.price,
            currency=draft.currency,
            store_id=draft.store_id,
            store_name=draft.store_name,
            source=draft.source,
            country=draft.country,
            city=draft.city,
            fulfillment=draft.fulfillment,
            condition=draft.condition,
            is_final_price=draft.is_final_price,
            submitted_by=draft.submitted_by,
            status=outcome.status,
            created_at=created_at or datetime.now(timezone.utc),
            item_price=draft.item_price,
            shipping_cost=draft.shipping_cost,
            fees=draft.fees,
            source_url=draft.source_url,
            reviewed_by=outcome.reviewed_by,
            reviewed_at=outcome.reviewed_at,
        )
        with self._lock:
            self.observations[observation.id] = observation
            self._record_event(
                observation_id=observation.id,
                event_type="submitted",
                actor_id=draft.submitted_by,
                payload={"product_id": draft.product_id, "status": outcome.status.value},
                created_at=observation.created_at,
            )
            if outcome.auto_approved:
                self._record_event(
                    observation_id=observation.id,
                    event_type="auto_approved",
                    actor_id=draft.submitted_by,
                    payload={},
                    created_at=observation.created_at,
                )
        return observation

    def add(self, observation: PriceObservation) -> PriceObservation:
        """Seed a fully formed row, bypassing submission rules."""
        with self._lock:
            self.observations[observation.id] = observation
        return observation

    async def get_observation(self, observation_id: str) -> PriceObservation | None:
        with self._lock:
            return self.observations.get(observation_id)

    async def apply_review(self, observation_id: str, outcome: ReviewOutcome) -> PriceObservation | None:
        with self._lock:
            current = self.observations.get(observation_id)
            if current is None or current.status is not ObservationStatus.PENDING:
                return None
            updated = replace(
                current,
                status=outcome.status,
                reviewed_by=outcome.reviewed_by,
                reviewed_at=outcome.reviewed_at,
                rejection_reason=outcome.rejection_reason,
            )
            self.observations[observation_id] = updated
            self._record_event(
                observation_id=observation_id,
                event_type=outcome.status.value,
                actor_id=outcome.reviewed_by,
                payload={"reason": outcome.rejection_reason},
                created_at=outcome.reviewed_at,
            )
            return updated

    async def find_recent_submission(self, *, submitted_by: str, product_id: str, since: datetime) -> str | None:
        with self._lock:
            rows = list(self.observations.values())
        for row in rows:
            if (
                row.submitted_by == submitted_by
                and row.product_id == product_id
                and row.status is not ObservationStatus.REJECTED
                and row.created_at > since
            ):
                return row.id
        return None

    async def list_product_observations(
        self,
        product_id: str,
        *,
        status: ObservationStatus | None = ObservationStatus.APPROVED,
    ) -> list[PriceObservation]:
        with self._lock:
            rows = list(self.observations.values())
        return [
            row
            for row in rows
            if row.product_id == product_id and (status is None or row.status is status)
        ]

    async def list_pending_observations(
        self,
        *,
        exclude_submitter: str | None,
        limit: int,
        offset: int,
    ) -> list[PriceObservation]:
        with self._lock:
            rows = list(self.observations.values())
        pending = [
            row
            for row in rows
            if row.status is ObservationStatus.PENDING and row.submitted_by != exclude_submitter
        ]
        pending.sort(key=lambda row: (row.created_at, row.id), reverse=True)
        return pending[offset : offset + limit]

    async def list_user_observations(
        self,
        submitted_by: str,
        *,
        status: ObservationStatus | None,
        limit: int,
        offset: int,
    ) -> list[PriceObservation]:
        with self._lock:
            rows = list(self.observations.values())
        owned = [
            row
            for row in rows
            if row.submitted_by == submitted_by and (status is None or row.status is status)
        ]
        owned.sort(key=lambda row: (row.created_at, row.id), reverse=True)
        return owned[offset : offset + limit]

    async def list_observation_events(self, observation_id: str, *, limit: int, offset: int) -> list[dict[str, Any]]:
        with self._lock:
            rows = [event for event in self.events if event["observation_id"] == observation_id]
        rows.sort(key=lambda event: (event["created_at"], event["id"]), reverse=True)
        return rows[offset : offset + limit]

    async def reassign_submitter(self, *, user_id: str, replacement_id: str, actor_id: str) -> int:
        moved = 0
        now = datetime.now(timezone.utc)
        with self._lock:
            for observation_id, row in list(self.observations.items()):
                changes: dict[str, Any] = {}
                if row.submitted_by == user_id:
                    changes["submitted_by"] = replacement_id
                if row.reviewed_by == user_id:
                    changes["reviewed_by"] = replacement_id
                if not changes:
                    continue
                self.observations[observation_id] = replace(row, **changes)
                self._record_event(
                    observation_id=observation_id,
                    event_type="submitter_reassigned",
                    actor_id=actor_id,
                    payload={"replacement_id": replacement_id, "fields": sorted(changes)},
                    created_at=now,
                )
                moved += 1
        return moved

    def _record_event(
        self,
        *,
        observation_id: str,
        event_type: str,
        actor_id: str | None,
        payload: dict[str, Any],
        created_at: datetime | None,
    ) -> None:
        self.events.append(
            {
                "id": len(self.events) + 1,
                "observation_id": observation_id,
                "event_type": event_type,
                "actor_id": actor_id,
                "payload": payload,
                "created_at": created_at or datetime.now(timezone.utc),
            }
        )
