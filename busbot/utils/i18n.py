"""
Bus-ticket chatbot -- response templates (en, vi).
Use  t(key, lang)  for single strings.
Use  t_list(key, lang)  for suggestion lists.
Dynamic values use {placeholders} -- pass as kwargs to t().
"""
import re
from typing import List

SUPPORTED_LANGS = ("en", "vi")

_VI_CHARS_RE = re.compile(
    r"[ăâđêôơưàáảãạằắẳẵặầấẩẫậèéẻẽẹềếểễệìíỉĩịòóỏõọồốổỗộờớởỡợùúủũụừứửữựỳýỷỹỵ]",
    re.IGNORECASE,
)
# unaccented Vietnamese that people type on phones
_VI_WORDS_RE = re.compile(r"\b(toi|muon|dat ve|chuyen|ghe|xe khach|ngay mai|khong|cam on|xin chao)\b")


def detect_language(text: str) -> str:
    s = (text or "").lower()
    if _VI_CHARS_RE.search(s) or _VI_WORDS_RE.search(s):
        return "vi"
    return "en"


def normalize_lang(lang: str) -> str:
    return lang if lang in SUPPORTED_LANGS else "en"


def t(key: str, lang: str = "en", **kwargs) -> str:
    """Return translated string, falling back to English."""
    entry = _T.get(key, {})
    text = entry.get(lang) or entry.get("en", key)
    if kwargs:
        try:
            text = text.format(**kwargs)
        except (KeyError, IndexError):
            pass
    return text


def t_list(key: str, lang: str = "en") -> List[str]:
    """Return translated list (for suggestions), falling back to English."""
    entry = _TL.get(key, {})
    return list(entry.get(lang) or entry.get("en", []))


# ---------------------------------------------------------------------------
# Single-string translations
# ---------------------------------------------------------------------------
_T = {
    # ---- Field names ----
    "field_origin": {"en": "departure city", "vi": "điểm đi"},
    "field_destination": {"en": "destination city", "vi": "điểm đến"},
    "field_phone": {"en": "phone number", "vi": "số điện thoại"},
    "field_email": {"en": "email address", "vi": "địa chỉ email"},
    "field_fullName": {"en": "full name", "vi": "họ tên"},
    "field_documentId": {"en": "ID number (9-12 characters)", "vi": "số CCCD/CMND (9-12 ký tự)"},
    "field_full_name": {"en": "full name", "vi": "họ tên"},
    "field_document_id": {"en": "ID number (9-12 characters)", "vi": "số CCCD/CMND (9-12 ký tự)"},
    "field_passenger": {"en": "passenger details", "vi": "thông tin hành khách"},
    "and": {"en": " and ", "vi": " và "},

    # ---- Search ----
    "search_missing_fields": {
        "en": "To search for trips, I need a bit more information. Please tell me your {fields}.",
        "vi": "Để tìm chuyến xe, tôi cần thêm thông tin. Vui lòng cho biết {fields}.",
    },
    "on_date": {"en": " on {date}", "vi": " ngày {date}"},
    "search_found": {
        "en": "I found {count} trip(s) from {origin} to {destination}{date_part}. Here are the top options:",
        "vi": "Tôi tìm thấy {count} chuyến xe từ {origin} đến {destination}{date_part}. Đây là các lựa chọn tốt nhất:",
    },
    "search_not_found": {
        "en": "I couldn't find any trips from {origin} to {destination}{date_part}. Would you like to try a different date or route?",
        "vi": "Không tìm thấy chuyến xe nào từ {origin} đến {destination}{date_part}. Bạn có muốn thử ngày hoặc tuyến khác không?",
    },
    "search_invalid_input": {
        "en": "Some of the search details look invalid. Please check the cities and the date, then try again.",
        "vi": "Một số thông tin tìm kiếm không hợp lệ. Vui lòng kiểm tra lại thành phố và ngày đi rồi thử lại.",
    },
    "search_error": {
        "en": "Sorry, I ran into a problem while searching for trips. Please try again in a moment.",
        "vi": "Xin lỗi, đã có lỗi khi tìm chuyến xe. Vui lòng thử lại sau giây lát.",
    },

    # ---- Seat handler ----
    "seats_need_trip": {
        "en": "Please choose a trip first, then pick your seats.",
        "vi": "Vui lòng chọn chuyến xe trước, sau đó chọn ghế.",
    },
    "seats_not_recognized": {
        "en": "I couldn't read any seat codes. Please type them like A1, A2.",
        "vi": "Tôi không đọc được mã ghế. Vui lòng nhập theo dạng A1, A2.",
    },
    "seats_selected": {
        "en": "Got it! Seat(s) {seats} selected for {count} passenger(s).",
        "vi": "Đã chọn ghế {seats} cho {count} hành khách.",
    },

    # ---- Booking engine ----
    "booking_search_first": {
        "en": "Let's find a trip first. Where are you travelling from and to, and on which date?",
        "vi": "Hãy tìm chuyến xe trước nhé. Bạn muốn đi từ đâu đến đâu, vào ngày nào?",
    },
    "booking_ask_trip": {
        "en": "Which trip would you like to book? Reply with the trip number, e.g. \"trip #1\".",
        "vi": "Bạn muốn đặt chuyến nào? Hãy trả lời số thứ tự, ví dụ \"chuyến 1\".",
    },
    "booking_trip_selected": {
        "en": "You picked the {departure} trip by {operator} ({price} VND).",
        "vi": "Bạn đã chọn chuyến {departure} của {operator} ({price} VND).",
    },
    "booking_trip_stale": {
        "en": "The trip you selected is no longer in your latest search results, so I've cleared it. Please choose a trip again.",
        "vi": "Chuyến bạn chọn không còn trong kết quả tìm kiếm mới nhất nên tôi đã bỏ chọn. Vui lòng chọn lại chuyến xe.",
    },
    "booking_ask_pickup": {
        "en": "Where would you like to be picked up? Reply with a name or number:\n{options}",
        "vi": "Bạn muốn đón ở đâu? Trả lời tên hoặc số thứ tự:\n{options}",
    },
    "booking_ask_dropoff": {
        "en": "Where would you like to get off? Reply with a name or number:\n{options}",
        "vi": "Bạn muốn trả ở đâu? Trả lời tên hoặc số thứ tự:\n{options}",
    },
    "booking_pickup_selected": {"en": "Pickup point: {name}.", "vi": "Điểm đón: {name}."},
    "booking_dropoff_selected": {"en": "Drop-off point: {name}.", "vi": "Điểm trả: {name}."},
    "booking_point_unlisted": {"en": "as arranged by the operator", "vi": "theo sắp xếp của nhà xe"},
    "booking_ask_seats": {
        "en": "Which seat(s) would you like? Pick from the seat map or type the codes, e.g. A1, A2.",
        "vi": "Bạn muốn chọn ghế nào? Chọn trên sơ đồ hoặc nhập mã ghế, ví dụ A1, A2.",
    },
    "booking_ask_seats_text": {
        "en": "I couldn't load the seat map right now. Please tell me which seat(s) you want, e.g. A1, A2.",
        "vi": "Hiện không tải được sơ đồ ghế. Vui lòng cho biết ghế bạn muốn, ví dụ A1, A2.",
    },
    "booking_seats_selected": {"en": "Seat(s) {seats} selected.", "vi": "Đã chọn ghế {seats}."},
    "booking_reselect_seats": {
        "en": "No problem, let's pick different seats.",
        "vi": "Không sao, hãy chọn ghế khác nhé.",
    },
    "booking_ask_contact": {
        "en": "Please share a contact phone number and email for this booking.",
        "vi": "Vui lòng cung cấp số điện thoại và email liên hệ cho đặt vé này.",
    },
    "booking_contact_missing": {
        "en": "I still need a valid {fields} for the booking contact.",
        "vi": "Tôi vẫn cần {fields} hợp lệ để liên hệ.",
    },
    "booking_contact_saved": {
        "en": "Contact saved: {phone}, {email}.",
        "vi": "Đã lưu liên hệ: {phone}, {email}.",
    },
    "booking_ask_passengers": {
        "en": "Please send details for {count} passenger(s): full name, phone number, ID number (optional) and email (optional).",
        "vi": "Vui lòng gửi thông tin cho {count} hành khách: họ tên, số điện thoại, số CCCD (không bắt buộc) và email (không bắt buộc).",
    },
    "booking_passengers_progress": {
        "en": "Saved {saved} of {total} passenger(s). Please send details for {remaining} more passenger(s), starting with passenger {next}.",
        "vi": "Đã lưu {saved}/{total} hành khách. Vui lòng gửi thông tin cho {remaining} hành khách còn lại, bắt đầu từ hành khách số {next}.",
    },
    "booking_passenger_invalid": {
        "en": "Some passenger details don't look right ({fields}). Could you send them again?",
        "vi": "Một số thông tin hành khách chưa đúng ({fields}). Bạn có thể gửi lại không?",
    },
    "booking_created": {
        "en": "Your booking is confirmed! Reference: {reference}. Please complete payment to secure your seats.",
        "vi": "Đặt vé thành công! Mã đặt chỗ: {reference}. Vui lòng thanh toán để giữ ghế.",
    },
    "booking_already_created": {
        "en": "You already have booking {reference} for this trip. Say \"pay\" to get the payment link.",
        "vi": "Bạn đã có đặt chỗ {reference} cho chuyến này. Nói \"thanh toán\" để nhận liên kết thanh toán.",
    },
    "booking_payment_link": {
        "en": "Here is the payment link for booking {reference}.",
        "vi": "Đây là liên kết thanh toán cho đặt chỗ {reference}.",
    },
    "booking_seat_conflict": {
        "en": "Sorry, one or more of those seats is no longer available. Please choose different seats.",
        "vi": "Xin lỗi, một hoặc nhiều ghế đã có người đặt. Vui lòng chọn ghế khác.",
    },
    "booking_passenger_rejected": {
        "en": "The booking service rejected the passenger details. Please send the passenger information again.",
        "vi": "Hệ thống không chấp nhận thông tin hành khách. Vui lòng gửi lại thông tin hành khách.",
    },
    "booking_error": {
        "en": "Sorry, I couldn't complete your booking. Please try again or contact support.",
        "vi": "Xin lỗi, không thể hoàn tất đặt vé. Vui lòng thử lại hoặc liên hệ hỗ trợ.",
    },

    # ---- Cancellation ----
    "cancel_ask_reference": {
        "en": "To cancel a booking, please send your booking reference (e.g. BK20251115001).",
        "vi": "Để hủy vé, vui lòng gửi mã đặt chỗ (ví dụ BK20251115001).",
    },
    "cancel_preview": {
        "en": "Cancellation details for booking {reference}:\n- Refund amount: {refund} VND\n- Cancellation fee: {fee} VND\n\nWould you like to proceed?",
        "vi": "Thông tin hủy vé {reference}:\n- Số tiền hoàn: {refund} VND\n- Phí hủy: {fee} VND\n\nBạn có muốn tiếp tục không?",
    },
    "cancel_not_found": {
        "en": "I couldn't find that booking. Please check the reference number and try again.",
        "vi": "Không tìm thấy đặt chỗ. Vui lòng kiểm tra lại mã đặt chỗ.",
    },

    # ---- FAQ ----
    "faq_did_you_mean": {
        "en": "I'm not sure I understood. Did you mean one of these topics?",
        "vi": "Tôi chưa chắc đã hiểu. Có phải bạn muốn hỏi về một trong các chủ đề sau?",
    },
    "faq_not_found": {
        "en": "I couldn't find an answer to that. You can ask about tickets, payment, cancellation or luggage, or contact our support team.",
        "vi": "Tôi chưa tìm thấy câu trả lời. Bạn có thể hỏi về vé, thanh toán, hủy vé, hành lý hoặc liên hệ bộ phận hỗ trợ.",
    },
    "faq_escalation": {
        "en": "I'm sorry for the trouble. Let me connect you with our support team:\n- Hotline: {phone}\n- Email: {email}\n- Live chat on our website",
        "vi": "Rất xin lỗi vì sự bất tiện. Bạn có thể liên hệ bộ phận hỗ trợ:\n- Hotline: {phone}\n- Email: {email}\n- Chat trực tuyến trên website",
    },

    # ---- Chat ----
    "chat_fallback": {
        "en": "Sorry, I didn't quite catch that. I can help you search bus trips, book seats, cancel a booking or answer questions.",
        "vi": "Xin lỗi, tôi chưa hiểu ý bạn. Tôi có thể giúp tìm chuyến xe, đặt ghế, hủy vé hoặc trả lời câu hỏi.",
    },
}


# ---------------------------------------------------------------------------
# Suggestion lists
# ---------------------------------------------------------------------------
_TL = {
    "sugg_search_missing": {
        "en": ["Ho Chi Minh City to Da Lat tomorrow", "Hanoi to Sapa this weekend"],
        "vi": ["Sài Gòn đi Đà Lạt ngày mai", "Hà Nội đi Sapa cuối tuần"],
    },
    "sugg_search_found": {
        "en": ["Book trip #1", "Show all routes", "Cheapest trip"],
        "vi": ["Đặt chuyến 1", "Xem tất cả tuyến", "Chuyến rẻ nhất"],
    },
    "sugg_search_not_found": {
        "en": ["Try another date", "Show all routes", "Change destination"],
        "vi": ["Thử ngày khác", "Xem tất cả tuyến", "Đổi điểm đến"],
    },
    "sugg_search_error": {
        "en": ["Try again", "Contact support"],
        "vi": ["Thử lại", "Liên hệ hỗ trợ"],
    },
    "sugg_need_trip": {
        "en": ["Search trips", "Show all routes"],
        "vi": ["Tìm chuyến xe", "Xem tất cả tuyến"],
    },
    "sugg_seats_selected": {
        "en": ["Continue booking", "Choose different seats"],
        "vi": ["Tiếp tục đặt vé", "Chọn ghế khác"],
    },
    "sugg_seats": {
        "en": ["A1", "A1, A2", "Choose different seats"],
        "vi": ["A1", "A1, A2", "Chọn ghế khác"],
    },
    "sugg_contact": {
        "en": ["0912345678, name@example.com"],
        "vi": ["0912345678, ten@example.com"],
    },
    "sugg_passengers": {
        "en": ["Nguyen Van A, 0912345678, 012345678901"],
        "vi": ["Nguyễn Văn A, 0912345678, 012345678901"],
    },
    "sugg_booked": {
        "en": ["Pay now", "View booking", "Search another trip"],
        "vi": ["Thanh toán ngay", "Xem đặt chỗ", "Tìm chuyến khác"],
    },
    "sugg_booking_error": {
        "en": ["Try again", "Choose different seats", "Contact support"],
        "vi": ["Thử lại", "Chọn ghế khác", "Liên hệ hỗ trợ"],
    },
    "sugg_cancel": {
        "en": ["Confirm cancellation", "Keep my booking"],
        "vi": ["Xác nhận hủy", "Giữ đặt chỗ"],
    },
    "sugg_cancel_not_found": {
        "en": ["Try another reference", "Contact support"],
        "vi": ["Thử mã khác", "Liên hệ hỗ trợ"],
    },
    "sugg_faq": {
        "en": ["How do I pay?", "Cancellation policy", "Luggage allowance"],
        "vi": ["Thanh toán thế nào?", "Chính sách hủy vé", "Quy định hành lý"],
    },
    "sugg_escalation": {
        "en": ["Call hotline", "Send email", "Back to booking"],
        "vi": ["Gọi hotline", "Gửi email", "Quay lại đặt vé"],
    },
    "sugg_chat": {
        "en": ["Search trips", "My bookings", "Help"],
        "vi": ["Tìm chuyến xe", "Vé của tôi", "Trợ giúp"],
    },
}
