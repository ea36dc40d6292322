# vendora_dispatch/services/notification_service.py
import logging

from domain.models import DeliveryAssignment, RiderSession
from domain.ports import NotificationPort
from utils.formatting import format_naira

logger = logging.getLogger(__name__)


class LoggingNotifier(NotificationPort):
    """
    Default notifier: records the offer in the log.

    Push/WhatsApp delivery to the rider plugs in behind NotificationPort.
    """

    def notify_rider_offered(self, rider: RiderSession, assignment: DeliveryAssignment) -> None:
        logger.info(
            'Rider notification: offer for order %s to "%s" (riderId=%s, phone=%s), '
            "%.2f km, fee %s, ~%d min",
            assignment.order_id,
            rider.rider_name,
            rider.id,
            rider.phone,
            assignment.distance_km,
            format_naira(assignment.delivery_fee_kobo),
            assignment.estimated_duration_minutes,
        )
