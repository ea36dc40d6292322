# vendora_dispatch/data_integrator.py
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from config import Settings
from domain.errors import ConflictError, TransientStoreError
from domain.models import (
    ORDER_STATUS_PAID,
    AssignmentStatus,
    DeliveryAssignment,
    Order,
    RiderSession,
    StoreLocationConfig,
)
from domain.ports import DispatchRepository
from supabase_client import get_supabase_client

ORDERS_TABLE = "orders_v2"
ASSIGNMENTS_TABLE = "delivery_assignments"
RIDERS_TABLE = "rider_sessions"

UNIQUE_VIOLATION = "23505"

ORDER_WITH_STORE_SELECT = """
    *,
    stores!inner (
        id,
        vendor_id,
        name
    ),
    store_settings (
        base_location_lat,
        base_location_lng,
        base_location_address
    )
"""


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a Postgres timestamptz string. Naive values are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _first(embedded: Any) -> Optional[Dict[str, Any]]:
    # embedded relations come back as a list or a single object
    if isinstance(embedded, list):
        return embedded[0] if embedded else None
    return embedded or None


def order_from_row(row: Dict[str, Any]) -> Order:
    store = row.get("stores") or {}
    if isinstance(store, list):
        store = store[0] if store else {}
    settings_row = _first(row.get("store_settings"))

    location = None
    if settings_row is not None:
        location = StoreLocationConfig(
            store_id=row.get("store_id") or store.get("id"),
            base_location_lat=_to_float(settings_row.get("base_location_lat")),
            base_location_lng=_to_float(settings_row.get("base_location_lng")),
            base_location_address=settings_row.get("base_location_address"),
        )

    return Order(
        id=row["id"],
        status=row.get("status"),
        customer_lat=_to_float(row.get("customer_lat")),
        customer_lng=_to_float(row.get("customer_lng")),
        customer_name=row.get("customer_name"),
        customer_address=row.get("customer_address"),
        store_id=row.get("store_id") or store.get("id"),
        vendor_id=row.get("vendor_id") or store.get("vendor_id"),
        store_name=store.get("name"),
        store_location=location,
    )


def rider_from_row(row: Dict[str, Any]) -> RiderSession:
    return RiderSession(
        id=row["id"],
        rider_name=row.get("rider_name"),
        phone=row.get("phone"),
        current_lat=_to_float(row.get("current_lat")),
        current_lng=_to_float(row.get("current_lng")),
        is_available=bool(row.get("is_available")),
        last_seen_at=parse_timestamp(row.get("last_seen_at")),
    )


def assignment_from_row(row: Dict[str, Any]) -> DeliveryAssignment:
    return DeliveryAssignment(
        id=row.get("id"),
        order_id=row.get("order_id"),
        rider_session_id=row.get("rider_session_id"),
        vendor_id=row.get("vendor_id"),
        pickup_lat=_to_float(row.get("pickup_lat")),
        pickup_lng=_to_float(row.get("pickup_lng")),
        pickup_address=row.get("pickup_address"),
        delivery_lat=_to_float(row.get("delivery_lat")),
        delivery_lng=_to_float(row.get("delivery_lng")),
        delivery_address=row.get("delivery_address"),
        distance_km=_to_float(row.get("distance_km")),
        delivery_fee_kobo=row.get("delivery_fee_kobo"),
        estimated_duration_minutes=row.get("estimated_duration_minutes"),
        status=AssignmentStatus(row["status"]),
        offered_at=parse_timestamp(row.get("offered_at")),
    )


class SupabaseDispatchRepository(DispatchRepository):
    """
    DispatchRepository over the Supabase REST API.

    One instance per request. Every call goes through `_execute`, which turns
    PostgREST and transport failures into TransientStoreError (or
    ConflictError for a unique violation).
    """

    def __init__(self, client: Client, schema: str):
        self.client = client
        self.schema = schema

    def _table(self, table_name: str):
        return self.client.schema(self.schema).table(table_name)

    @staticmethod
    def _execute(query, what: str):
        try:
            resp = query.execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise ConflictError(f"{what} failed: {e.message}") from e
            raise TransientStoreError(f"{what} failed: {e.message}") from e
        except httpx.HTTPError as e:
            raise TransientStoreError(f"{what} failed: {e}") from e

        if getattr(resp, "error", None):
            raise TransientStoreError(f"{what} failed: {resp.error}")

        return resp

    # --------------------------------------------------------
    # Orders
    # --------------------------------------------------------

    def fetch_paid_order(self, order_id: str) -> Optional[Order]:
        """
        Order joined with its store and the store's pickup settings.
        Returns None when the order does not exist or is not paid.
        """
        resp = self._execute(
            self._table(ORDERS_TABLE)
            .select(ORDER_WITH_STORE_SELECT)
            .eq("id", order_id)
            .eq("status", ORDER_STATUS_PAID)
            .limit(1),
            "Order lookup",
        )

        if not resp.data:
            return None
        return order_from_row(resp.data[0])

    # --------------------------------------------------------
    # Assignments
    # --------------------------------------------------------

    def fetch_assignment_by_order(self, order_id: str) -> Optional[DeliveryAssignment]:
        resp = self._execute(
            self._table(ASSIGNMENTS_TABLE)
            .select("*")
            .eq("order_id", order_id)
            .limit(1),
            "Assignment lookup",
        )

        if not resp.data:
            return None
        return assignment_from_row(resp.data[0])

    def insert_assignment(self, assignment: DeliveryAssignment) -> DeliveryAssignment:
        resp = self._execute(
            self._table(ASSIGNMENTS_TABLE).insert(assignment.to_row()),
            "Create delivery assignment",
        )

        if not resp.data:
            raise TransientStoreError("Create delivery assignment failed: no data returned")
        return assignment_from_row(resp.data[0])

    def fetch_timed_out_offers(self, offered_before: datetime) -> List[DeliveryAssignment]:
        resp = self._execute(
            self._table(ASSIGNMENTS_TABLE)
            .select("*")
            .eq("status", AssignmentStatus.OFFERED.value)
            .lt("offered_at", _iso(offered_before)),
            "Timed out assignment lookup",
        )
        return [assignment_from_row(row) for row in (resp.data or [])]

    def reoffer_assignment(self, assignment_id: str, rider_id: str, now: datetime) -> None:
        self._execute(
            self._table(ASSIGNMENTS_TABLE)
            .update(
                {
                    "rider_session_id": rider_id,
                    "status": AssignmentStatus.OFFERED.value,
                    "offered_at": _iso(now),
                    "updated_at": _iso(now),
                }
            )
            .eq("id", assignment_id),
            "Reassign delivery",
        )

    def requeue_assignment(self, assignment_id: str, now: datetime) -> None:
        self._execute(
            self._table(ASSIGNMENTS_TABLE)
            .update(
                {
                    "rider_session_id": None,
                    "status": AssignmentStatus.QUEUED.value,
                    "updated_at": _iso(now),
                }
            )
            .eq("id", assignment_id),
            "Requeue delivery",
        )

    # --------------------------------------------------------
    # Riders
    # --------------------------------------------------------

    def fetch_active_riders(
            self,
            active_since: datetime,
            *,
            exclude_rider_id: Optional[str] = None,
    ) -> List[RiderSession]:
        query = (
            self._table(RIDERS_TABLE)
            .select("*")
            .eq("is_available", True)
            .gt("last_seen_at", _iso(active_since))
            .not_.is_("current_lat", "null")
            .not_.is_("current_lng", "null")
        )

        if exclude_rider_id is not None:
            query = query.neq("id", exclude_rider_id)

        resp = self._execute(query, "Rider lookup")
        return [rider_from_row(row) for row in (resp.data or [])]

    def claim_rider(self, rider_id: str) -> bool:
        resp = self._execute(
            self._table(RIDERS_TABLE)
            .update({"is_available": False})
            .eq("id", rider_id)
            .eq("is_available", True),
            "Rider availability update",
        )
        return bool(resp.data)

    def release_rider(self, rider_id: str) -> None:
        self._execute(
            self._table(RIDERS_TABLE)
            .update({"is_available": True})
            .eq("id", rider_id),
            "Rider release",
        )


def repository_factory(settings: Settings) -> Callable[[], SupabaseDispatchRepository]:
    """
    Returns a callable that builds a fresh repository per request.

    All repositories share one Supabase client (and its connection pool),
    created on first use so a missing credential surfaces as a request error.
    """
    client: Optional[Client] = None
    lock = threading.Lock()

    def build() -> SupabaseDispatchRepository:
        nonlocal client
        with lock:
            if client is None:
                client = get_supabase_client(settings)
        return SupabaseDispatchRepository(client, settings.schema)

    return build
