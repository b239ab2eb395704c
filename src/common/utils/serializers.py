from common.models.bookings import Booking
from common.models.invoice import Bill, Invoice, LineItem
from common.models.rooms import Room
from common.utils.money import format_amount


def booking_to_dict(booking: Booking) -> dict:
    return {
        "booking_id": booking.booking_id,
        "room_id": booking.room_id,
        "checkin": booking.checkin.isoformat(),
        "checkout": booking.checkout.isoformat(),
        "nights": booking.nights,
        "guests": booking.guests,
        "total_price": format_amount(booking.total_price),
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "created_at": booking.created_at.isoformat(),
    }


def room_to_dict(room: Room) -> dict:
    return {
        "room_id": room.room_id,
        "category": room.category.value,
        "price_per_night": format_amount(room.price_per_night),
        "capacity": room.capacity,
        "floor": room.floor,
        "amenities": room.amenities,
        "occupancy": room.occupancy.value,
        "cleanliness": room.cleanliness.value,
    }


def line_item_to_dict(item: LineItem) -> dict:
    return {
        "description": item.description,
        "quantity": item.quantity,
        "unit_price": format_amount(item.unit_price),
        "total": format_amount(item.total),
    }


def invoice_to_dict(invoice: Invoice) -> dict:
    return {
        "invoice_id": invoice.invoice_id,
        "booking_id": invoice.booking_id,
        "room_id": invoice.room_id,
        "status": invoice.status.value,
        "line_items": [line_item_to_dict(item) for item in invoice.line_items],
        "subtotal": format_amount(invoice.subtotal),
        "tax": format_amount(invoice.tax),
        "total_amount": format_amount(invoice.total_amount),
        "payment_method": invoice.payment_method.value if invoice.payment_method else None,
        "paid_at": invoice.paid_at.isoformat() if invoice.paid_at else None,
    }


def bill_to_dict(bill: Bill) -> dict:
    data = invoice_to_dict(bill.invoice)
    data["food_items"] = [line_item_to_dict(item) for item in bill.food_items]
    data["subtotal"] = format_amount(bill.subtotal)
    data["tax"] = format_amount(bill.tax)
    data["total_amount"] = format_amount(bill.total_amount)
    return data
