# vendora_dispatch/services/timeout_service.py
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from config import DEFAULT_OFFER_TIMEOUT_SECONDS, DEFAULT_RIDER_ACTIVE_WINDOW_SECONDS
from domain.errors import DispatchError, TransientStoreError
from domain.models import AssignmentStatus, DeliveryAssignment, ReassignmentResult, SweepResult
from domain.ports import DispatchRepository, NotificationPort
from services.dispatch_service import claim_and_notify
from services.rider_matcher import active_since, select_nearest_rider

logger = logging.getLogger(__name__)


def _release_previous_rider(repository: DispatchRepository, assignment: DeliveryAssignment) -> None:
    if not assignment.rider_session_id:
        return
    try:
        repository.release_rider(assignment.rider_session_id)
    except TransientStoreError as e:
        logger.warning("Failed to release rider %s: %s", assignment.rider_session_id, e)


def reassign_timed_out_offer(
        assignment: DeliveryAssignment,
        *,
        repository: DispatchRepository,
        notifier: NotificationPort,
        now: datetime,
        rider_active_window_seconds: int = DEFAULT_RIDER_ACTIVE_WINDOW_SECONDS,
) -> ReassignmentResult:
    """
    Move an expired offer to the next nearest rider, or back to the queue.

    The rider who let the offer expire is made available again but is not
    offered the same delivery twice in a row.
    """
    logger.info("Processing timed out assignment %s", assignment.id)
    previous_rider = assignment.rider_session_id

    _release_previous_rider(repository, assignment)

    cutoff = active_since(now, rider_active_window_seconds)
    riders = repository.fetch_active_riders(cutoff, exclude_rider_id=previous_rider)
    candidate = select_nearest_rider(
        riders,
        assignment.pickup_lat,
        assignment.pickup_lng,
        cutoff=cutoff,
        exclude_rider_id=previous_rider,
    )

    if candidate is None:
        repository.requeue_assignment(assignment.id, now)
        logger.info("Assignment %s requeued - no available riders", assignment.id)
        return ReassignmentResult(
            assignment_id=assignment.id,
            order_id=assignment.order_id,
            previous_rider=previous_rider,
            new_rider=None,
            status="requeued",
        )

    repository.reoffer_assignment(assignment.id, candidate.rider.id, now)
    reoffered = replace(
        assignment,
        rider_session_id=candidate.rider.id,
        status=AssignmentStatus.OFFERED,
        offered_at=now,
    )
    claim_and_notify(repository, notifier, candidate, reoffered)

    logger.info(
        'Assignment %s reassigned to rider %s ("%s")',
        assignment.id,
        candidate.rider.id,
        candidate.rider.rider_name,
    )
    return ReassignmentResult(
        assignment_id=assignment.id,
        order_id=assignment.order_id,
        previous_rider=previous_rider,
        new_rider=candidate.rider.id,
        status="reassigned",
    )


def sweep_timed_out_offers(
        *,
        repository: DispatchRepository,
        notifier: NotificationPort,
        now: Optional[datetime] = None,
        offer_timeout_seconds: int = DEFAULT_OFFER_TIMEOUT_SECONDS,
        rider_active_window_seconds: int = DEFAULT_RIDER_ACTIVE_WINDOW_SECONDS,
) -> SweepResult:
    """
    Reassign or requeue every offer left unanswered past the timeout.

    Listing the expired offers must succeed; after that, a failure on one
    assignment is logged and the sweep moves on to the next.
    """
    now = now or datetime.now(timezone.utc)
    logger.info("Assignment timeout check started")

    expired = repository.fetch_timed_out_offers(now - timedelta(seconds=offer_timeout_seconds))
    logger.info("Found %d timed out assignments", len(expired))

    results: List[ReassignmentResult] = []
    for assignment in expired:
        try:
            results.append(
                reassign_timed_out_offer(
                    assignment,
                    repository=repository,
                    notifier=notifier,
                    now=now,
                    rider_active_window_seconds=rider_active_window_seconds,
                )
            )
        except DispatchError as e:
            logger.error("Error processing assignment %s: %s", assignment.id, e)
            continue

    logger.info(
        "Assignment timeout processing completed (processed=%d, reassigned=%d, requeued=%d)",
        len(results),
        sum(1 for r in results if r.status == "reassigned"),
        sum(1 for r in results if r.status == "requeued"),
    )
    return SweepResult(found=len(expired), results=results)
