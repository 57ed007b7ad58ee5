"""Order confirmation template, sent once the order is created."""

from notifications.task import NotificationType


def _money(amount, currency: str) -> str:
    return f"{currency} {float(amount or 0):.2f}"


def _address_lines(address: dict) -> list[str]:
    if not address:
        return []
    parts = (address.get("city"), address.get("state"), address.get("postal_code"))
    locality = " ".join(part for part in parts if part)
    lines = [address.get("name"), address.get("street"), address.get("street2"), locality, address.get("country")]
    return [line for line in lines if line]


class OrderConfirmationTemplate:
    notification_type = NotificationType.ORDER_CONFIRMATION.value

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        customer_name = context.get("customer_name") or "there"
        currency = context.get("currency", "USD")

        item_lines = [
            f"  {item.get('quantity', 1)} x {item.get('title', 'Item')} ({item.get('sku') or 'n/a'})"
            f"  {_money(item.get('total_price'), currency)}"
            for item in context.get("items", [])
        ]
        address_lines = ["  " + line for line in _address_lines(context.get("shipping_address") or {})]

        body = [
            f"Hi {customer_name},",
            "",
            f"Thank you for your order. Order {order_number} has been confirmed.",
            "",
            "Items:",
            *item_lines,
            "",
            f"Subtotal: {_money(context.get('subtotal'), currency)}",
            f"Shipping ({context.get('shipping_method', 'standard')}): "
            f"{_money(context.get('shipping_cost'), currency)}",
            f"Tax: {_money(context.get('tax_amount'), currency)}",
            f"Total: {_money(context.get('total'), currency)}",
        ]
        if address_lines:
            body += ["", "Shipping to:", *address_lines]
        body += ["", "We'll let you know when your order ships."]

        return {"subject": f"Order Confirmation - {order_number}", "body": "\n".join(body)}
