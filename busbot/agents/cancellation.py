import logging
from typing import Any, Dict, Optional

from busbot.agents.recognizers import find_booking_reference
from busbot.providers.base import BookingProvider
from busbot.providers.booking_service import BookingServiceError
from busbot.utils.formatting import format_price
from busbot.utils.i18n import t, t_list

logger = logging.getLogger(__name__)


def run_cancellation(bookings: BookingProvider, message: str, auth_token: Optional[str] = None,
                     lang: str = "en") -> Dict[str, Any]:
    reference = find_booking_reference(message)
    if not reference:
        return {"text": t("cancel_ask_reference", lang), "entities": {}, "suggestions": [], "actions": []}

    try:
        preview = bookings.get_cancellation_preview(reference, auth_token) or {}
    except BookingServiceError as e:
        logger.warning("cancellation preview for %s failed: %s", reference, e)
        return {"text": t("cancel_not_found", lang), "entities": {"bookingReference": reference},
                "suggestions": t_list("sugg_cancel_not_found", lang), "actions": []}

    data = preview.get("data") or preview
    refund = data.get("refundAmount", data.get("refund_amount", 0))
    fee = data.get("fee", data.get("cancellation_fee", 0))
    return {
        "text": t("cancel_preview", lang, reference=reference, refund=format_price(refund), fee=format_price(fee)),
        "entities": {"bookingReference": reference},
        "suggestions": t_list("sugg_cancel", lang),
        "actions": [{"type": "cancellation_preview", "data": {"bookingReference": reference, **data}}],
    }
