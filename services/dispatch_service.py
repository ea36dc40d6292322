# vendora_dispatch/services/dispatch_service.py
"""
Assign a rider to a paid order.

Steps:
  1. Load the paid order with its store pickup location.
  2. Return the existing assignment if the order already has one.
  3. Compute distance, fee and duration.
  4. Pick the nearest active rider, insert the assignment, then mark the
     rider busy and notify them.

Nothing is written before step 4, so every failure up to the insert leaves
the store untouched and the call can be retried.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, List, Optional

from config import DEFAULT_DELIVERY_ADDRESS, DEFAULT_PICKUP_ADDRESS, DEFAULT_RIDER_ACTIVE_WINDOW_SECONDS
from domain.errors import (
    ConflictError,
    NonFatalSideEffectError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from domain.models import (
    AssignmentStatus,
    DeliveryAssignment,
    DispatchResult,
    Order,
    RiderCandidate,
    StoreLocationConfig,
)
from domain.ports import DispatchRepository, NotificationPort
from services.pricing_service import calculate_delivery_fee, estimate_duration_minutes
from services.rider_matcher import active_since, select_nearest_rider
from utils.geo import haversine_distance

logger = logging.getLogger(__name__)


def format_delivery_address(order: Order) -> str:
    address: Optional[str] = None
    if isinstance(order.customer_address, dict):
        address = order.customer_address.get("address")
    return f"{order.customer_name} - {address or DEFAULT_DELIVERY_ADDRESS}"


def _require_order_id(order_id: Any) -> str:
    if not isinstance(order_id, str) or not order_id.strip():
        raise ValidationError("Order ID is required")
    return order_id.strip()


def load_dispatchable_order(repository: DispatchRepository, order_id: str) -> Order:
    """
    Fetch a paid order and check both ends of the trip are known.
    """
    order = repository.fetch_paid_order(order_id)
    if order is None:
        raise NotFoundError("Paid order not found")

    if not order.has_customer_location:
        raise NotFoundError("Customer location not available")

    store = order.store_location
    if store is None or not store.has_location:
        raise NotFoundError("Store pickup location not configured")

    return order


def build_assignment(
        order: Order,
        store: StoreLocationConfig,
        candidate: Optional[RiderCandidate],
        *,
        distance_km: float,
        now: datetime,
) -> DeliveryAssignment:
    offered = candidate is not None
    return DeliveryAssignment(
        order_id=order.id,
        rider_session_id=candidate.rider.id if offered else None,
        vendor_id=order.vendor_id,
        pickup_lat=store.base_location_lat,
        pickup_lng=store.base_location_lng,
        pickup_address=store.base_location_address or DEFAULT_PICKUP_ADDRESS,
        delivery_lat=order.customer_lat,
        delivery_lng=order.customer_lng,
        delivery_address=format_delivery_address(order),
        distance_km=distance_km,
        delivery_fee_kobo=calculate_delivery_fee(distance_km),
        estimated_duration_minutes=estimate_duration_minutes(distance_km),
        status=AssignmentStatus.OFFERED if offered else AssignmentStatus.QUEUED,
        offered_at=now if offered else None,
    )


def claim_and_notify(
        repository: DispatchRepository,
        notifier: NotificationPort,
        candidate: RiderCandidate,
        assignment: DeliveryAssignment,
) -> List[NonFatalSideEffectError]:
    """
    Mark the rider busy and send the offer.

    Both are best-effort: the assignment already exists, so failures are
    logged and returned instead of raised.
    """
    errors: List[NonFatalSideEffectError] = []
    rider = candidate.rider

    try:
        claimed = repository.claim_rider(rider.id)
        if not claimed:
            logger.warning(
                "Rider %s was no longer available when claimed; assignment %s stays offered",
                rider.id,
                assignment.id,
            )
    except TransientStoreError as e:
        logger.warning("Failed to update rider availability for %s: %s", rider.id, e)
        errors.append(NonFatalSideEffectError(f"Failed to update rider availability: {e}"))

    try:
        notifier.notify_rider_offered(rider, assignment)
    except Exception as e:
        logger.exception("Rider notification failed for %s", rider.id)
        errors.append(NonFatalSideEffectError(f"Rider notification failed: {e}"))

    return errors


def _existing_result(existing: DeliveryAssignment) -> DispatchResult:
    return DispatchResult(
        assignment_id=existing.id,
        status=existing.status,
        existing=True,
    )


def assign_delivery(
        order_id: Any,
        *,
        repository: DispatchRepository,
        notifier: NotificationPort,
        now: Optional[datetime] = None,
        rider_active_window_seconds: int = DEFAULT_RIDER_ACTIVE_WINDOW_SECONDS,
) -> DispatchResult:
    """
    Create (or return) the delivery assignment for a paid order.

    Raises:
        ValidationError: missing order id or unusable coordinates
        NotFoundError: order not paid, or a location is missing
        TransientStoreError: a store call failed
        ConflictError: a duplicate insert was rejected and the winner
            could not be re-read
    """
    now = now or datetime.now(timezone.utc)

    logger.info("Delivery assignment started")
    order_id = _require_order_id(order_id)
    logger.info("Processing order %s", order_id)

    order = load_dispatchable_order(repository, order_id)
    store = order.store_location
    logger.info("Order and store data retrieved (order=%s, store=%s)", order.id, order.store_name)

    existing = repository.fetch_assignment_by_order(order_id)
    if existing is not None:
        logger.info(
            "Delivery assignment already exists (assignmentId=%s, status=%s)",
            existing.id,
            existing.status.value,
        )
        return _existing_result(existing)

    distance_km = haversine_distance(
        store.base_location_lat,
        store.base_location_lng,
        order.customer_lat,
        order.customer_lng,
    )
    if not math.isfinite(distance_km):
        raise ValidationError("Could not compute delivery distance from the order and store coordinates")

    cutoff = active_since(now, rider_active_window_seconds)
    riders = repository.fetch_active_riders(cutoff)
    candidate = select_nearest_rider(
        riders,
        store.base_location_lat,
        store.base_location_lng,
        cutoff=cutoff,
    )

    assignment = build_assignment(order, store, candidate, distance_km=distance_km, now=now)
    logger.info(
        "Distance and fee calculated (distance=%.2f km, feeKobo=%d, durationMin=%d)",
        assignment.distance_km,
        assignment.delivery_fee_kobo,
        assignment.estimated_duration_minutes,
    )

    if candidate is None:
        logger.info("No available riders found")
    else:
        logger.info(
            'Selected nearest rider %s ("%s", %.2f km to pickup)',
            candidate.rider.id,
            candidate.rider.rider_name,
            candidate.distance_km,
        )

    try:
        stored = repository.insert_assignment(assignment)
    except ConflictError:
        # another invocation inserted first
        winner = repository.fetch_assignment_by_order(order_id)
        if winner is None:
            raise
        logger.info("Concurrent assignment detected for order %s; returning %s", order_id, winner.id)
        return _existing_result(winner)

    logger.info(
        "Delivery assignment created (assignmentId=%s, status=%s, riderId=%s)",
        stored.id,
        stored.status.value,
        stored.rider_session_id,
    )

    result = DispatchResult(
        assignment_id=stored.id,
        status=stored.status,
        rider_id=candidate.rider.id if candidate else None,
        distance_km=distance_km,
        delivery_fee_kobo=assignment.delivery_fee_kobo,
        estimated_duration_minutes=assignment.estimated_duration_minutes,
    )

    if candidate is not None:
        result.side_effect_errors = claim_and_notify(repository, notifier, candidate, stored)

    return result