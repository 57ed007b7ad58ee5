"""Builds notification payloads from committed orders."""

from ordering.customer.customer import Customer
from ordering.order.order import Order


def customer_name(customer: Customer | None) -> str:
    if customer is None:
        return ""
    return " ".join(part for part in (customer.first_name, customer.last_name) if part)


def _address(value) -> dict:
    if value is None:
        return {}
    return {key: val for key, val in value.to_dict().items() if val is not None}


def order_confirmation_payload(order: Order, customer: Customer) -> dict:
    return {
        "to": customer.email,
        "customer_name": customer_name(customer),
        "order_number": order.order_number,
        "order_date": order.created_at.isoformat() if order.created_at else None,
        "items": [
            {
                "title": item.title,
                "sku": item.sku,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
            }
            for item in order.items
        ],
        "subtotal": order.subtotal,
        "shipping_method": order.shipping_method,
        "shipping_cost": order.shipping_cost,
        "tax_amount": order.tax_amount,
        "total": order.total,
        "currency": order.currency,
        "shipping_address": _address(order.shipping_address),
    }


def order_update_payload(
    order: Order,
    customer: Customer,
    message: str | None = None,
    tracking_number: str | None = None,
    estimated_delivery: str | None = None,
) -> dict:
    return {
        "to": customer.email,
        "customer_name": customer_name(customer),
        "order_number": order.order_number,
        "status": order.status,
        "status_message": message,
        "tracking_number": tracking_number,
        "estimated_delivery": estimated_delivery,
        "update_date": order.updated_at.isoformat() if order.updated_at else None,
    }


def new_order_admin_message(order: Order, customer: Customer) -> tuple[str, str]:
    subject = f"New order {order.order_number}"
    message = (
        f"Order {order.order_number} was placed by {customer.email}.\n"
        f"Items: {sum(item.quantity for item in order.items)}\n"
        f"Total: {order.currency} {order.total:.2f}"
    )
    return subject, message
