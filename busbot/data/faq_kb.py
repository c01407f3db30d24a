# Bilingual FAQ knowledge base. Keywords are matched against accent-folded text.

SUPPORT_CONTACT = {
    "phone": "1900-xxxx",
    "email": "support@busticket.com",
}

CONTACT_METHODS = [
    {"type": "phone", "value": SUPPORT_CONTACT["phone"]},
    {"type": "email", "value": SUPPORT_CONTACT["email"]},
    {"type": "live_chat", "value": "website"},
]

ESCALATION_KEYWORDS = {
    "en": ["speak to human", "talk to a person", "real person", "customer service", "complaint",
           "manager", "agent", "not helpful", "useless"],
    "vi": ["gap nhan vien", "noi chuyen voi nguoi", "tong dai", "khieu nai", "quan ly",
           "cham soc khach hang", "khong giup duoc"],
}

FAQS = [
    {
        "id": "payment_methods",
        "keywords": ["pay", "payment", "card", "momo", "zalopay", "vnpay", "transfer",
                     "thanh toan", "the tin dung", "the atm", "chuyen khoan", "vi dien tu"],
        "question": {"en": "How can I pay?", "vi": "Thanh toán bằng cách nào?"},
        "answer": {
            "en": "You can pay online by card, e-wallet (MoMo, ZaloPay, VNPay) or bank transfer. "
                  "Unpaid bookings are released after 10 minutes.",
            "vi": "Bạn có thể thanh toán bằng thẻ, ví điện tử (MoMo, ZaloPay, VNPay) hoặc chuyển khoản. "
                  "Đặt chỗ chưa thanh toán sẽ bị hủy sau 10 phút.",
        },
    },
    {
        "id": "cancellation_policy",
        "keywords": ["cancel", "cancellation", "refund", "fee", "huy", "hoan tien", "phi huy", "hoan ve"],
        "question": {"en": "What is the cancellation policy?", "vi": "Chính sách hủy vé thế nào?"},
        "answer": {
            "en": "Cancellation is free up to 24 hours before departure, 10% fee between 24h and 4h, "
                  "50% within 4h, and no refund after departure. Refunds arrive in 3-7 working days.",
            "vi": "Hủy miễn phí trước giờ khởi hành 24 giờ, phí 10% trong khoảng 24-4 giờ, 50% trong vòng 4 giờ "
                  "và không hoàn tiền sau khi xe chạy. Tiền hoàn về trong 3-7 ngày làm việc.",
        },
    },
    {
        "id": "luggage",
        "keywords": ["luggage", "baggage", "bag", "suitcase", "kg", "hanh ly", "vali", "tui"],
        "question": {"en": "How much luggage can I bring?", "vi": "Được mang bao nhiêu hành lý?"},
        "answer": {
            "en": "Each passenger may bring one carry-on and one checked bag up to 20kg.",
            "vi": "Mỗi hành khách được mang một hành lý xách tay và một kiện ký gửi tối đa 20kg.",
        },
    },
    {
        "id": "boarding",
        "keywords": ["board", "boarding", "pickup", "arrive", "early", "ticket", "id card",
                     "len xe", "don", "den som", "ve dien tu", "cccd"],
        "question": {"en": "What do I need for boarding?", "vi": "Cần gì khi lên xe?"},
        "answer": {
            "en": "Arrive at your pickup point 15-30 minutes before departure with your e-ticket and ID.",
            "vi": "Có mặt tại điểm đón trước 15-30 phút với vé điện tử và giấy tờ tùy thân.",
        },
    },
    {
        "id": "change_booking",
        "keywords": ["change", "modify", "reschedule", "date", "doi", "thay doi", "doi ngay", "doi ve"],
        "question": {"en": "Can I change my booking?", "vi": "Có thể đổi vé không?"},
        "answer": {
            "en": "Bookings can't be edited. Cancel the current booking (fees may apply) and book the new trip.",
            "vi": "Không thể sửa đặt chỗ. Vui lòng hủy vé hiện tại (có thể mất phí) và đặt chuyến mới.",
        },
    },
]
