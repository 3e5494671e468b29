from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from crowdprice.services.errors import (
    AlreadyReviewedError,
    InvalidReviewError,
    ObservationNotFoundError,
    SelfReviewError,
)
from crowdprice.services.observations import ObservationStatus, PriceObservation, ReviewDecision

PRIVILEGED_ROLES = frozenset({"moderator", "admin"})


@dataclass(slots=True)
class ReviewOutcome:
    status: ObservationStatus
    reviewed_by: str | None
    reviewed_at: datetime | None
    rejection_reason: str | None = None
    auto_approved: bool = False


def is_privileged(role: str | None) -> bool:
    return role in PRIVILEGED_ROLES


def initial_review_state(*, submitter_id: str, submitter_role: str | None, now: datetime) -> ReviewOutcome:
    """Privileged submitters self-attest; everybody else waits for a reviewer."""
    if is_privileged(submitter_role):
        return ReviewOutcome(
            status=ObservationStatus.APPROVED,
            reviewed_by=submitter_id,
            reviewed_at=now,
            auto_approved=True,
        )
    return ReviewOutcome(status=ObservationStatus.PENDING, reviewed_by=None, reviewed_at=None)


def decide_review(
    observation: PriceObservation | None,
    *,
    observation_id: str,
    reviewer_id: str,
    decision: ReviewDecision,
    rejection_reason: str | None,
    now: datetime,
) -> ReviewOutcome:
    """Validate a review against the observation snapshot and build the outcome.

    The snapshot may be stale by the time the outcome is written; persistence
    must still condition the write on the row being pending.
    """
    if observation is None:
        raise ObservationNotFoundError(f"price observation not found: {observation_id}")
    if observation.submitted_by == reviewer_id:
        raise SelfReviewError("cannot review your own price submission")
    if observation.status is not ObservationStatus.PENDING:
        raise AlreadyReviewedError(f"price observation already {observation.status.value}")

    reason = (rejection_reason or "").strip() or None
    if decision is ReviewDecision.REJECT:
        if reason is None:
            raise InvalidReviewError("rejection reason is required when rejecting a price")
        return ReviewOutcome(
            status=ObservationStatus.REJECTED,
            reviewed_by=reviewer_id,
            reviewed_at=now,
            rejection_reason=reason,
        )
    return ReviewOutcome(status=ObservationStatus.APPROVED, reviewed_by=reviewer_id, reviewed_at=now)


def is_visible_to(observation: PriceObservation, *, viewer_id: str | None, viewer_role: str | None) -> bool:
    if observation.status is ObservationStatus.APPROVED:
        return True
    if viewer_id is not None and viewer_id == observation.submitted_by:
        return True
    return is_privileged(viewer_role)
