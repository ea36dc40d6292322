# vendora_dispatch/server.py
"""
Delivery Dispatch: HTTP Server
==============================

Owns: FastAPI app exposing the dispatch endpoints.

Endpoints:
  POST /assign-delivery              - create (or return) the assignment for a paid order
  POST /delivery-assignment-timeout  - reassign or requeue expired offers
  OPTIONS on both                    - CORS preflight, empty 200

Every response uses the `{success: ...}` envelope and carries the CORS
headers; failures carry `error`.

Run: python main.py
 or: uvicorn server:create_app --factory --port 8001
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import Settings, load_settings
from data_integrator import repository_factory as supabase_repository_factory
from domain.errors import DispatchError
from domain.ports import DispatchRepository, NotificationPort
from services.dispatch_service import assign_delivery
from services.notification_service import LoggingNotifier
from services.timeout_service import sweep_timed_out_offers

log = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


class AssignDeliveryRequest(BaseModel):
    order_id: Optional[str] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def error_response(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": message},
        status_code=status_code,
        headers=CORS_HEADERS,
    )


def create_app(
        settings: Optional[Settings] = None,
        repository_factory: Optional[Callable[[], DispatchRepository]] = None,
        notifier: Optional[NotificationPort] = None,
        clock: Callable[[], datetime] = _utc_now,
) -> FastAPI:
    """
    Creates a FastAPI app wired to a per-request repository.

    `repository_factory` is called once per request; by default every
    repository shares one Supabase client built from `settings`.
    """
    settings = settings or load_settings()
    if repository_factory is None:
        repository_factory = supabase_repository_factory(settings)
    notifier = notifier or LoggingNotifier()

    app = FastAPI(title="Vendora Delivery Dispatch API", version="1.0")

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        log.warning("Rejected request body on %s: %s", request.url.path, exc.errors())
        return error_response("Invalid request body: expected {\"order_id\": string}", 400)

    def run_guarded(endpoint: str, action: Callable[[], dict]):
        try:
            return JSONResponse(action(), headers=CORS_HEADERS)
        except DispatchError as e:
            log.error("ERROR in %s: %s", endpoint, e)
            return error_response(str(e), e.http_status)
        except Exception as e:
            log.exception("Unexpected error in %s", endpoint)
            return error_response(str(e) or type(e).__name__, 500)

    @app.options("/assign-delivery")
    @app.options("/delivery-assignment-timeout")
    def preflight():
        return Response(status_code=200, headers=CORS_HEADERS)

    @app.post("/assign-delivery")
    def post_assign_delivery(body: AssignDeliveryRequest):
        def action() -> dict:
            result = assign_delivery(
                body.order_id,
                repository=repository_factory(),
                notifier=notifier,
                now=clock(),
                rider_active_window_seconds=settings.rider_active_window_seconds,
            )
            return result.to_response()

        return run_guarded("assign-delivery", action)

    @app.post("/delivery-assignment-timeout")
    def post_assignment_timeout():
        def action() -> dict:
            result = sweep_timed_out_offers(
                repository=repository_factory(),
                notifier=notifier,
                now=clock(),
                offer_timeout_seconds=settings.offer_timeout_seconds,
                rider_active_window_seconds=settings.rider_active_window_seconds,
            )
            return result.to_response()

        return run_guarded("delivery-assignment-timeout", action)

    return app
