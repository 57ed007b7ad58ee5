"""Shipping and tax pricing strategies.

Order totals are always computed server-side. How shipping and tax are
derived is a business rule that changes independently of checkout, so it is
injected: the saga asks the current strategy for a quote and never trusts an
amount sent by the client.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from protean.exceptions import ValidationError

from ordering.config import setting

SHIPPING_RATES = {
    "standard": 9.99,
    "express": 19.99,
    "overnight": 39.99,
    "pickup": 0.0,
}


@dataclass(frozen=True)
class PriceQuote:
    subtotal: float
    shipping_cost: float
    tax_amount: float
    currency: str

    @property
    def total(self) -> float:
        return round(self.subtotal + self.shipping_cost + self.tax_amount, 2)


class PricingStrategy(ABC):
    @abstractmethod
    def shipping_cost(self, subtotal: float, shipping_method: str, address: dict | None) -> float: ...

    @abstractmethod
    def tax_amount(self, subtotal: float, shipping_cost: float, address: dict | None) -> float: ...

    def quote(self, subtotal: float, shipping_method: str, address: dict | None = None, currency="USD") -> PriceQuote:
        subtotal = round(subtotal, 2)
        shipping = round(self.shipping_cost(subtotal, shipping_method, address), 2)
        tax = round(self.tax_amount(subtotal, shipping, address), 2)
        return PriceQuote(subtotal=subtotal, shipping_cost=shipping, tax_amount=tax, currency=currency)


class FlatRatePricing(PricingStrategy):
    """Fixed price per shipping method plus a single tax rate on the subtotal."""

    def __init__(self, rates: dict[str, float] | None = None, tax_rate: float = 0.0) -> None:
        self.rates = dict(rates or SHIPPING_RATES)
        self.tax_rate = tax_rate

    def shipping_cost(self, subtotal, shipping_method, address):
        method = (shipping_method or "standard").lower()
        if method not in self.rates:
            raise ValidationError({"shipping_method": [f"Unsupported shipping method: {shipping_method}"]})
        return self.rates[method]

    def tax_amount(self, subtotal, shipping_cost, address):
        return subtotal * self.tax_rate


class PercentageOfSubtotalPricing(PricingStrategy):
    """Shipping and tax as fractions of the subtotal, as the storefront UI estimates them."""

    def __init__(self, shipping_rate: float = 0.10, tax_rate: float = 0.10) -> None:
        self.shipping_rate = shipping_rate
        self.tax_rate = tax_rate

    def shipping_cost(self, subtotal, shipping_method, address):
        if (shipping_method or "").lower() == "pickup":
            return 0.0
        return subtotal * self.shipping_rate

    def tax_amount(self, subtotal, shipping_cost, address):
        return subtotal * self.tax_rate


_current_strategy: PricingStrategy | None = None


def get_pricing_strategy() -> PricingStrategy:
    """Return the active strategy; defaults to flat rates with ``TAX_RATE`` from config."""
    global _current_strategy
    if _current_strategy is None:
        _current_strategy = FlatRatePricing(tax_rate=float(setting("TAX_RATE", 0.0)))
    return _current_strategy


def set_pricing_strategy(strategy: PricingStrategy) -> None:
    global _current_strategy
    _current_strategy = strategy


def reset_pricing_strategy() -> None:
    global _current_strategy
    _current_strategy = None
