from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from crowdprice.services.errors import DuplicateSubmissionError

DEFAULT_DUPLICATE_WINDOW = timedelta(hours=24)

logger = logging.getLogger(__name__)


async def ensure_not_duplicate(
    repository: Any,
    *,
    submitted_by: str,
    product_id: str | None,
    now: datetime,
    window: timedelta = DEFAULT_DUPLICATE_WINDOW,
) -> None:
    """Reject a second non-rejected report of one product by one submitter inside ``window``.

    Check-then-insert is not serialized, so two simultaneous submissions can
    both pass. The guard is a spam bound, not a uniqueness constraint.
    """
    if not product_id:
        return

    existing_id = await repository.find_recent_submission(
        submitted_by=submitted_by,
        product_id=product_id,
        since=now - window,
    )
    if existing_id is None:
        return

    logger.info(
        "duplicate submission blocked submitted_by=%s product_id=%s existing_id=%s",
        submitted_by,
        product_id,
        existing_id,
    )
    raise DuplicateSubmissionError("you already reported a price for this product recently")
