# vendora_dispatch/domain/ports.py
from datetime import datetime
from typing import List, Optional, Protocol, runtime_checkable

from domain.models import DeliveryAssignment, Order, RiderSession


# ------------- Storage --------------------
@runtime_checkable
class DispatchRepository(Protocol):
    """
    Responsibilities:
    • Read paid orders with their store pickup location.
    • Read and write delivery assignments.
    • Flip rider availability.
    Store failures raise TransientStoreError; a duplicate assignment insert
    raises ConflictError.
    """

    def fetch_paid_order(self, order_id: str) -> Optional[Order]: ...

    def fetch_assignment_by_order(self, order_id: str) -> Optional[DeliveryAssignment]: ...

    def fetch_active_riders(
        self,
        active_since: datetime,
        *,
        exclude_rider_id: Optional[str] = None,
    ) -> List[RiderSession]:
        """Available riders seen after `active_since` with both coordinates set."""

    def insert_assignment(self, assignment: DeliveryAssignment) -> DeliveryAssignment:
        """Persist and return the stored assignment, `id` populated."""

    def claim_rider(self, rider_id: str) -> bool:
        """
        Set is_available = false only where it is still true.
        Returns False when no row matched (rider already engaged).
        """

    def release_rider(self, rider_id: str) -> None: ...

    def fetch_timed_out_offers(self, offered_before: datetime) -> List[DeliveryAssignment]: ...

    def reoffer_assignment(self, assignment_id: str, rider_id: str, now: datetime) -> None: ...

    def requeue_assignment(self, assignment_id: str, now: datetime) -> None: ...


# --------------- Notifications -------------------------
@runtime_checkable
class NotificationPort(Protocol):
    def notify_rider_offered(self, rider: RiderSession, assignment: DeliveryAssignment) -> None: ...
