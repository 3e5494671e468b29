from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from opentelemetry import trace

from crowdprice.services.duplicates import DEFAULT_DUPLICATE_WINDOW, ensure_not_duplicate
from crowdprice.services.errors import AlreadyReviewedError
from crowdprice.services.moderation import decide_review, initial_review_state
from crowdprice.services.observations import ObservationDraft, PriceObservation, ReviewDecision
from crowdprice.services.ranking import PriceFilters, RankedPrices, ShopperLocation, rank_prices

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def submit_observation(
    repository: Any,
    draft: ObservationDraft,
    *,
    submitter_role: str | None,
    now: datetime | None = None,
    duplicate_window: timedelta = DEFAULT_DUPLICATE_WINDOW,
) -> PriceObservation:
    now = now or datetime.now(timezone.utc)
    with tracer.start_as_current_span("prices.submit") as span:
        span.set_attribute("crowdprice.product_id", draft.product_id)
        await ensure_not_duplicate(
            repository,
            submitted_by=draft.submitted_by,
            product_id=draft.product_id,
            now=now,
            window=duplicate_window,
        )
        outcome = initial_review_state(submitter_id=draft.submitted_by, submitter_role=submitter_role, now=now)
        observation = await repository.insert_observation(draft, outcome=outcome, created_at=now)
        span.set_attribute("crowdprice.status", observation.status.value)

    logger.info(
        "price submitted observation_id=%s product_id=%s submitted_by=%s status=%s",
        observation.id,
        observation.product_id,
        observation.submitted_by,
        observation.status.value,
    )
    return observation


async def review_observation(
    repository: Any,
    *,
    observation_id: str,
    reviewer_id: str,
    decision: ReviewDecision,
    rejection_reason: str | None = None,
    now: datetime | None = None,
) -> PriceObservation:
    now = now or datetime.now(timezone.utc)
    with tracer.start_as_current_span("prices.review") as span:
        span.set_attribute("crowdprice.observation_id", observation_id)
        span.set_attribute("crowdprice.decision", decision.value)
        snapshot = await repository.get_observation(observation_id)
        outcome = decide_review(
            snapshot,
            observation_id=observation_id,
            reviewer_id=reviewer_id,
            decision=decision,
            rejection_reason=rejection_reason,
            now=now,
        )
        updated = await repository.apply_review(observation_id, outcome)
        if updated is None:
            logger.warning(
                "review race lost observation_id=%s reviewer_id=%s decision=%s",
                observation_id,
                reviewer_id,
                decision.value,
            )
            raise AlreadyReviewedError("price observation was reviewed by someone else")

    logger.info(
        "price reviewed observation_id=%s reviewer_id=%s status=%s",
        observation_id,
        reviewer_id,
        updated.status.value,
    )
    return updated


async def get_ranked_prices(
    repository: Any,
    *,
    product_id: str,
    shopper: ShopperLocation,
    filters: PriceFilters | None = None,
) -> RankedPrices:
    observations = await repository.list_product_observations(product_id)
    with tracer.start_as_current_span("prices.rank") as span:
        span.set_attribute("crowdprice.product_id", product_id)
        span.set_attribute("crowdprice.observation_count", len(observations))
        ranked = rank_prices(observations, shopper, filters)
        span.set_attribute("crowdprice.group_count", ranked.filtered_count)

    if ranked.excluded:
        logger.warning(
            "observations excluded from ranking product_id=%s count=%s ids=%s",
            product_id,
            len(ranked.excluded),
            sorted(ranked.excluded),
        )
    return ranked
