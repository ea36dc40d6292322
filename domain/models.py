# vendora_dispatch/domain/models.py

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class AssignmentStatus(str, Enum):
    """
    Delivery lifecycle of one order.

    Dispatch only ever creates QUEUED or OFFERED; the rest are written by
    the rider app and only read back here.
    """
    QUEUED = "queued"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    EN_ROUTE = "en_route"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ORDER_STATUS_PAID = "paid"


@dataclass
class StoreLocationConfig:
    store_id: Optional[str]
    base_location_lat: Optional[float]
    base_location_lng: Optional[float]
    base_location_address: Optional[str] = None

    @property
    def has_location(self) -> bool:
        return self.base_location_lat is not None and self.base_location_lng is not None


@dataclass
class Order:
    """
    A paid order as seen by dispatch (read-only).
    """
    id: str
    status: str
    customer_lat: Optional[float]
    customer_lng: Optional[float]
    customer_name: Optional[str]
    customer_address: Optional[Dict[str, Any]]
    store_id: Optional[str]
    vendor_id: Optional[str]
    store_name: Optional[str] = None
    store_location: Optional[StoreLocationConfig] = None

    @property
    def has_customer_location(self) -> bool:
        return self.customer_lat is not None and self.customer_lng is not None


@dataclass
class RiderSession:
    id: str
    rider_name: Optional[str]
    phone: Optional[str]
    current_lat: Optional[float]
    current_lng: Optional[float]
    is_available: bool
    last_seen_at: Optional[datetime]

    @property
    def has_location(self) -> bool:
        return self.current_lat is not None and self.current_lng is not None


@dataclass
class DeliveryAssignment:
    """
    The one record dispatch owns. Pickup/delivery fields are a snapshot taken
    at creation time and never rewritten.
    """
    order_id: str
    vendor_id: Optional[str]
    pickup_lat: float
    pickup_lng: float
    pickup_address: str
    delivery_lat: float
    delivery_lng: float
    delivery_address: str
    distance_km: float
    delivery_fee_kobo: int
    estimated_duration_minutes: int
    status: AssignmentStatus
    rider_session_id: Optional[str] = None
    offered_at: Optional[datetime] = None
    id: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Insert payload for the delivery_assignments table."""
        row: Dict[str, Any] = {
            "order_id": self.order_id,
            "rider_session_id": self.rider_session_id,
            "vendor_id": self.vendor_id,
            "pickup_lat": self.pickup_lat,
            "pickup_lng": self.pickup_lng,
            "pickup_address": self.pickup_address,
            "delivery_lat": self.delivery_lat,
            "delivery_lng": self.delivery_lng,
            "delivery_address": self.delivery_address,
            "distance_km": self.distance_km,
            "delivery_fee_kobo": self.delivery_fee_kobo,
            "estimated_duration_minutes": self.estimated_duration_minutes,
            "status": self.status.value,
        }
        if self.offered_at is not None:
            row["offered_at"] = self.offered_at.isoformat()
        return row


@dataclass
class RiderCandidate:
    rider: RiderSession
    distance_km: float


@dataclass
class DispatchResult:
    """
    Outcome of one assign-delivery call.

    `existing` marks an idempotent replay; `side_effect_errors` collects
    failures that happened after the assignment was persisted.
    """
    assignment_id: str
    status: AssignmentStatus
    existing: bool = False
    rider_id: Optional[str] = None
    distance_km: Optional[float] = None
    delivery_fee_kobo: Optional[int] = None
    estimated_duration_minutes: Optional[int] = None
    side_effect_errors: List[Exception] = field(default_factory=list)

    @property
    def rider_assigned(self) -> bool:
        return self.rider_id is not None

    def to_response(self) -> Dict[str, Any]:
        if self.existing:
            return {
                "success": True,
                "assignment_id": self.assignment_id,
                "status": self.status.value,
                "message": "Delivery assignment already exists",
            }

        payload: Dict[str, Any] = {
            "success": True,
            "assignment_id": self.assignment_id,
            "status": self.status.value,
            "rider_assigned": self.rider_assigned,
        }
        if self.rider_id is not None:
            payload["rider_id"] = self.rider_id
        payload["distance_km"] = self.distance_km
        payload["delivery_fee_kobo"] = self.delivery_fee_kobo
        payload["estimated_duration_minutes"] = self.estimated_duration_minutes
        return payload


@dataclass
class ReassignmentResult:
    assignment_id: str
    order_id: str
    previous_rider: Optional[str]
    new_rider: Optional[str]
    status: str  # "reassigned" or "requeued"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assignment_id": self.assignment_id,
            "order_id": self.order_id,
            "previous_rider": self.previous_rider,
            "new_rider": self.new_rider,
            "status": self.status,
        }


@dataclass
class SweepResult:
    found: int
    results: List[ReassignmentResult] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        if self.found == 0:
            return {
                "success": True,
                "processed": 0,
                "message": "No timed out assignments found",
            }
        return {
            "success": True,
            "processed": len(self.results),
            "results": [r.to_dict() for r in self.results],
        }
