from __future__ import annotations

import json
from datetime import datetime
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from crowdprice.core.config import get_settings
from crowdprice.services.errors import (
    RepositoryConflictError,
    RepositoryError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)
from crowdprice.services.moderation import ReviewOutcome
from crowdprice.services.observations import (
    FulfillmentKind,
    ItemCondition,
    ObservationDraft,
    ObservationStatus,
    PriceObservation,
)
from crowdprice.services.store import InMemoryObservationStore

__all__ = [
    "PostgresRepository",
    "RepositoryConflictError",
    "RepositoryError",
    "RepositoryForbiddenError",
    "RepositoryNotFoundError",
    "RepositoryUnavailableError",
    "RepositoryValidationError",
    "get_repository",
]

_OBSERVATION_COLUMNS = """
  id::text as id,
  product_id::text as product_id,
  price,
  currency,
  item_price,
  shipping_cost,
  fees,
  store_id::text as store_id,
  store_name,
  source,
  source_url,
  captured_country,
  captured_city,
  fulfillment::text as fulfillment,
  condition::text as condition,
  is_final_price,
  submitted_by::text as submitted_by,
  status::text as status,
  reviewed_by::text as reviewed_by,
  reviewed_at,
  rejection_reason,
  created_at
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ping(self) -> None:
        pool = await self._get_pool()
        try:
            await pool.fetchval("select 1")
        except (OSError, asyncpg.PostgresError) as exc:
            raise RepositoryUnavailableError("database unavailable") from exc

    async def insert_observation(
        self,
        draft: ObservationDraft,
        *,
        outcome: ReviewOutcome,
        created_at: datetime | None = None,
    ) -> PriceObservation:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f"""
                        insert into price_observations (
                          product_id,
                          price,
                          currency,
                          item_price,
                          shipping_cost,
                          fees,
                          store_id,
                          store_name,
                          source,
                          source_url,
                          captured_country,
                          captured_city,
                          fulfillment,
                          condition,
                          is_final_price,
                          submitted_by,
                          status,
                          reviewed_by,
                          reviewed_at,
                          created_at,
                          auto_approved
                        )
                        values (
                          $1::uuid, $2, $3, $4, $5, $6, $7::uuid, $8, $9, $10, $11, $12,
                          $13::fulfillment_kind, $14::item_condition, $15, $16::uuid,
                          $17::observation_status, $18::uuid, $19, coalesce($20, now()), $21
                        )
                        returning {_OBSERVATION_COLUMNS}
                        """,
                        draft.product_id,
                        draft.price,
                        draft.currency,
                        draft.item_price,
                        draft.shipping_cost,
                        draft.fees,
                        draft.store_id,
                        draft.store_name,
                        draft.source,
                        draft.source_url,
                        draft.country,
                        draft.city,
                        draft.fulfillment.value,
                        draft.condition.value,
                        draft.is_final_price,
                        draft.submitted_by,
                        outcome.status.value,
                        outcome.reviewed_by,
                        outcome.reviewed_at,
                        created_at,
                        outcome.auto_approved,
                    )
                    observation = self._observation_row_to_model(row)
                    await self._record_event(
                        conn=conn,
                        observation_id=observation.id,
                        event_type="submitted",
                        actor_id=draft.submitted_by,
                        payload={"product_id": draft.product_id, "status": outcome.status.value},
                    )
                    if outcome.auto_approved:
                        await self._record_event(
                            conn=conn,
                            observation_id=observation.id,
                            event_type="auto_approved",
                            actor_id=draft.submitted_by,
                            payload={},
                        )
                    return observation
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryValidationError("unknown product or store reference") from exc
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid price observation payload") from exc

    async def get_observation(self, observation_id: str) -> PriceObservation | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                select {_OBSERVATION_COLUMNS}
                from price_observations
                where id = $1::uuid
                """,
                observation_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return None
        return self._observation_row_to_model(row) if row else None

    async def apply_review(self, observation_id: str, outcome: ReviewOutcome) -> PriceObservation | None:
        """Write a decision only if the row is still pending; ``None`` means another reviewer won."""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"""
                    update price_observations
                    set
                      status = $2::observation_status,
                      reviewed_by = $3::uuid,
                      reviewed_at = $4,
                      rejection_reason = $5
                    where id = $1::uuid
                      and status = 'pending'
                    returning {_OBSERVATION_COLUMNS}
                    """,
                    observation_id,
                    outcome.status.value,
                    outcome.reviewed_by,
                    outcome.reviewed_at,
                    outcome.rejection_reason,
                )
                if not row:
                    return None
                await self._record_event(
                    conn=conn,
                    observation_id=observation_id,
                    event_type=outcome.status.value,
                    actor_id=outcome.reviewed_by,
                    payload={"reason": outcome.rejection_reason},
                )
                return self._observation_row_to_model(row)

    async def find_recent_submission(self, *, submitted_by: str, product_id: str, since: datetime) -> str | None:
        pool = await self._get_pool()
        try:
            return await pool.fetchval(
                """
                select id::text
                from price_observations
                where submitted_by = $1::uuid
                  and product_id = $2::uuid
                  and status <> 'rejected'
                  and created_at > $3
                order by created_at desc
                limit 1
                """,
                submitted_by,
                product_id,
                since,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid submitter or product id") from exc

    async def list_product_observations(
        self,
        product_id: str,
        *,
        status: ObservationStatus | None = ObservationStatus.APPROVED,
    ) -> list[PriceObservation]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {_OBSERVATION_COLUMNS}
                from price_observations
                where product_id = $1::uuid
                  and ($2::text is null or status::text = $2::text)
                order by created_at desc, id asc
                """,
                product_id,
                status.value if status else None,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid product id") from exc
        return [self._observation_row_to_model(row) for row in rows]

    async def list_pending_observations(
        self,
        *,
        exclude_submitter: str | None,
        limit: int,
        offset: int,
    ) -> list[PriceObservation]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_OBSERVATION_COLUMNS}
            from price_observations
            where status = 'pending'
              and ($3::text is null or submitted_by::text <> $3::text)
            order by created_at desc, id desc
            limit $1
            offset $2
            """,
            limit,
            offset,
            exclude_submitter,
        )
        return [self._observation_row_to_model(row) for row in rows]

    async def list_user_observations(
        self,
        submitted_by: str,
        *,
        status: ObservationStatus | None,
        limit: int,
        offset: int,
    ) -> list[PriceObservation]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                f"""
                select {_OBSERVATION_COLUMNS}
                from price_observations
                where submitted_by = $1::uuid
                  and ($2::text is null or status::text = $2::text)
                order by created_at desc, id desc
                limit $3
                offset $4
                """,
                submitted_by,
                status.value if status else None,
                limit,
                offset,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid submitter id") from exc
        return [self._observation_row_to_model(row) for row in rows]

    async def list_observation_events(self, observation_id: str, *, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                select
                  id,
                  observation_id::text as observation_id,
                  event_type,
                  actor_id::text as actor_id,
                  payload,
                  created_at
                from observation_events
                where observation_id = $1::uuid
                order by created_at desc, id desc
                limit $2
                offset $3
                """,
                observation_id,
                limit,
                offset,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid observation id") from exc
        return [self._event_row_to_dict(row) for row in rows]

    async def reassign_submitter(self, *, user_id: str, replacement_id: str, actor_id: str) -> int:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    rows = await conn.fetch(
                        """
                        update price_observations
                        set
                          submitted_by = case when submitted_by = $1::uuid then $2::uuid else submitted_by end,
                          reviewed_by = case when reviewed_by = $1::uuid then $2::uuid else reviewed_by end
                        where submitted_by = $1::uuid
                           or reviewed_by = $1::uuid
                        returning id::text as id
                        """,
                        user_id,
                        replacement_id,
                    )
                    await conn.executemany(
                        """
                        insert into observation_events (observation_id, event_type, actor_id, payload)
                        values ($1::uuid, 'submitter_reassigned', $2::uuid, $3::jsonb)
                        """,
                        [
                            (row["id"], actor_id, json.dumps({"replacement_id": replacement_id}))
                            for row in rows
                        ],
                    )
                    return len(rows)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid user id") from exc

    async def _record_event(
        self,
        *,
        conn: asyncpg.Connection,
        observation_id: str,
        event_type: str,
        actor_id: str | None,
        payload: dict[str, Any],
    ) -> None:
        await conn.execute(
            """
            insert into observation_events (observation_id, event_type, actor_id, payload)
            values ($1::uuid, $2, $3::uuid, $4::jsonb)
            """,
            observation_id,
            event_type,
            actor_id,
            json.dumps(payload),
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("CP_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _observation_row_to_model(row: asyncpg.Record) -> PriceObservation:
        return PriceObservation(
            id=row["id"],
            product_id=row["product_id"],
            price=row["price"],
            currency=row["currency"],
            item_price=row["item_price"],
            shipping_cost=row["shipping_cost"],
            fees=row["fees"],
            store_id=row["store_id"],
            store_name=row["store_name"],
            source=row["source"],
            source_url=row["source_url"],
            country=row["captured_country"],
            city=row["captured_city"],
            fulfillment=FulfillmentKind(row["fulfillment"]),
            condition=ItemCondition(row["condition"]),
            is_final_price=bool(row["is_final_price"]),
            submitted_by=row["submitted_by"],
            status=ObservationStatus(row["status"]),
            reviewed_by=row["reviewed_by"],
            reviewed_at=row["reviewed_at"],
            rejection_reason=row["rejection_reason"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _event_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        payload = row["payload"]
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                payload = {}
        if not isinstance(payload, dict):
            payload = {}
        return {
            "id": int(row["id"]),
            "observation_id": row["observation_id"],
            "event_type": row["event_type"],
            "actor_id": row["actor_id"],
            "payload": payload,
            "created_at": row["created_at"],
        }


@lru_cache
def get_repository() -> PostgresRepository | InMemoryObservationStore:
    settings = get_settings()
    if settings.repository_backend == "memory":
        return InMemoryObservationStore()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
