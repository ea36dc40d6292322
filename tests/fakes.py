# tests/fakes.py
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from domain.errors import ConflictError, TransientStoreError
from domain.models import (
    AssignmentStatus,
    DeliveryAssignment,
    Order,
    RiderSession,
    StoreLocationConfig,
)
from domain.ports import DispatchRepository, NotificationPort

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def make_order(
        order_id="O1",
        *,
        status="paid",
        customer_lat=6.5244,
        customer_lng=3.3792,
        base_lat=6.5000,
        base_lng=3.3500,
        base_address="12 Allen Avenue, Ikeja",
        with_store_location=True,
) -> Order:
    location = None
    if with_store_location:
        location = StoreLocationConfig(
            store_id="S1",
            base_location_lat=base_lat,
            base_location_lng=base_lng,
            base_location_address=base_address,
        )
    return Order(
        id=order_id,
        status=status,
        customer_lat=customer_lat,
        customer_lng=customer_lng,
        customer_name="Ada Obi",
        customer_address={"address": "4 Marina Road"},
        store_id="S1",
        vendor_id="V1",
        store_name="Ada's Kitchen",
        store_location=location,
    )


def make_rider(
        rider_id="R1",
        *,
        lat: Optional[float] = 6.5010,
        lng: Optional[float] = 3.3510,
        available=True,
        seen_seconds_ago=30,
) -> RiderSession:
    return RiderSession(
        id=rider_id,
        rider_name=f"Rider {rider_id}",
        phone="+2348000000000",
        current_lat=lat,
        current_lng=lng,
        is_available=available,
        last_seen_at=NOW - timedelta(seconds=seen_seconds_ago),
    )


class InMemoryDispatchRepository(DispatchRepository):
    """
    Dict-backed repository. Orders are stored regardless of status and
    filtered on read, like the `status = paid` query does.
    """

    def __init__(self, orders=(), riders=(), assignments=()):
        self.orders: Dict[str, Order] = {o.id: o for o in orders}
        self.riders: Dict[str, RiderSession] = {r.id: r for r in riders}
        self.assignments: Dict[str, DeliveryAssignment] = {}
        for a in assignments:
            self.assignments[a.id] = a

        self.claims: List[str] = []
        self.releases: List[str] = []
        self.insert_calls = 0
        self.fail_insert = False
        self.fail_claim = False
        self.fail_rider_lookup = False
        self.conflict_on_insert: Optional[DeliveryAssignment] = None
        self.fail_reoffer_for: set = set()

    def fetch_paid_order(self, order_id: str) -> Optional[Order]:
        order = self.orders.get(order_id)
        if order is None or order.status != "paid":
            return None
        return order

    def fetch_assignment_by_order(self, order_id: str) -> Optional[DeliveryAssignment]:
        for a in self.assignments.values():
            if a.order_id == order_id:
                return a
        return None

    def fetch_active_riders(self, active_since, *, exclude_rider_id=None) -> List[RiderSession]:
        if self.fail_rider_lookup:
            raise TransientStoreError("Rider lookup failed: timeout")
        return [
            r for r in self.riders.values()
            if r.is_available
            and r.last_seen_at > active_since
            and r.has_location
            and r.id != exclude_rider_id
        ]

    def insert_assignment(self, assignment: DeliveryAssignment) -> DeliveryAssignment:
        self.insert_calls += 1
        if self.fail_insert:
            raise TransientStoreError("Create delivery assignment failed: connection reset")
        if self.conflict_on_insert is not None:
            # simulate a concurrent writer winning the race
            winner = self.conflict_on_insert
            self.assignments[winner.id] = winner
            raise ConflictError("Create delivery assignment failed: duplicate key value")
        if self.fetch_assignment_by_order(assignment.order_id) is not None:
            raise ConflictError("Create delivery assignment failed: duplicate key value")

        stored = replace(assignment, id=f"A{len(self.assignments) + 1}")
        self.assignments[stored.id] = stored
        return stored

    def claim_rider(self, rider_id: str) -> bool:
        if self.fail_claim:
            raise TransientStoreError("Rider availability update failed: timeout")
        self.claims.append(rider_id)
        rider = self.riders.get(rider_id)
        if rider is None or not rider.is_available:
            return False
        rider.is_available = False
        return True

    def release_rider(self, rider_id: str) -> None:
        self.releases.append(rider_id)
        rider = self.riders.get(rider_id)
        if rider is not None:
            rider.is_available = True

    def fetch_timed_out_offers(self, offered_before: datetime) -> List[DeliveryAssignment]:
        return [
            a for a in self.assignments.values()
            if a.status == AssignmentStatus.OFFERED
            and a.offered_at is not None
            and a.offered_at < offered_before
        ]

    def reoffer_assignment(self, assignment_id: str, rider_id: str, now: datetime) -> None:
        if assignment_id in self.fail_reoffer_for:
            raise TransientStoreError("Reassign delivery failed: timeout")
        self.assignments[assignment_id] = replace(
            self.assignments[assignment_id],
            rider_session_id=rider_id,
            status=AssignmentStatus.OFFERED,
            offered_at=now,
        )

    def requeue_assignment(self, assignment_id: str, now: datetime) -> None:
        self.assignments[assignment_id] = replace(
            self.assignments[assignment_id],
            rider_session_id=None,
            status=AssignmentStatus.QUEUED,
        )


class RecordingNotifier(NotificationPort):
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def notify_rider_offered(self, rider, assignment) -> None:
        if self.fail:
            raise ConnectionError("push gateway unreachable")
        self.sent.append((rider.id, assignment.id))


def make_assignment(
        assignment_id="A1",
        *,
        order_id="O1",
        rider_id: Optional[str] = "R1",
        status=AssignmentStatus.OFFERED,
        offered_seconds_ago=300,
) -> DeliveryAssignment:
    return DeliveryAssignment(
        id=assignment_id,
        order_id=order_id,
        rider_session_id=rider_id,
        vendor_id="V1",
        pickup_lat=6.5000,
        pickup_lng=3.3500,
        pickup_address="12 Allen Avenue, Ikeja",
        delivery_lat=6.5244,
        delivery_lng=3.3792,
        delivery_address="Ada Obi - 4 Marina Road",
        distance_km=4.2,
        delivery_fee_kobo=200000,
        estimated_duration_minutes=15,
        status=status,
        offered_at=NOW - timedelta(seconds=offered_seconds_ago) if status == AssignmentStatus.OFFERED else None,
    )


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Records the PostgREST builder calls and replays a canned result."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.calls = []
        self._negate = False

    def _record(self, name, *args):
        if self._negate:
            name = f"not.{name}"
            self._negate = False
        self.calls.append((name, *args))
        return self

    def select(self, *args):
        return self._record("select", *args)

    def insert(self, row):
        return self._record("insert", row)

    def update(self, row):
        return self._record("update", row)

    def eq(self, col, val):
        return self._record("eq", col, val)

    def neq(self, col, val):
        return self._record("neq", col, val)

    def gt(self, col, val):
        return self._record("gt", col, val)

    def lt(self, col, val):
        return self._record("lt", col, val)

    def is_(self, col, val):
        return self._record("is", col, val)

    def limit(self, n):
        return self._record("limit", n)

    @property
    def not_(self):
        self._negate = True
        return self

    def execute(self):
        self.client.executed.append(self)
        outcome = self.client.results.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


class FakeSupabase:
    def __init__(self, *results):
        self.results = list(results)
        self.executed = []
        self.schemas = []

    def schema(self, name):
        self.schemas.append(name)
        return self

    def table(self, name):
        return FakeQuery(self, name)
