"""Catalogue port — read-only product and variant lookup used by the cart.

The catalogue itself lives outside this service. A variant's parent product
may arrive either as a bare id or already expanded; that distinction is
carried explicitly as ``Reference | Expanded`` and resolved with ``match``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum


class ProductStatus(Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


@dataclass(frozen=True)
class ProductRecord:
    id: str
    title: str
    sku: str
    price: float
    status: str = ProductStatus.ACTIVE.value
    track_inventory: bool = False
    allow_backorder: bool = False
    stock_quantity: int = 0

    @property
    def orderable(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value


@dataclass(frozen=True)
class Reference:
    id: str


@dataclass(frozen=True)
class Expanded:
    record: ProductRecord


ProductRef = Reference | Expanded


@dataclass(frozen=True)
class VariantRecord:
    id: str
    product: ProductRef
    title: str
    sku: str
    price: float | None = None  # None means "inherit the product price"
    active: bool = True
    track_inventory: bool = False
    allow_backorder: bool = False
    stock_quantity: int = 0


def referenced_id(ref: ProductRef) -> str:
    match ref:
        case Reference(id=product_id):
            return product_id
        case Expanded(record=record):
            return record.id
    raise TypeError(f"Unsupported product reference: {ref!r}")


class CataloguePort(ABC):
    @abstractmethod
    def get_product(self, product_id: str) -> ProductRecord | None: ...

    @abstractmethod
    def get_variant(self, variant_id: str) -> VariantRecord | None: ...


class InMemoryCatalogue(CataloguePort):
    """Dictionary-backed catalogue for development and tests."""

    def __init__(self) -> None:
        self.products: dict[str, ProductRecord] = {}
        self.variants: dict[str, VariantRecord] = {}

    def add_product(self, product_id: str, title: str, price: float, sku: str | None = None, **kwargs) -> ProductRecord:
        product = ProductRecord(id=product_id, title=title, sku=sku or product_id.upper(), price=price, **kwargs)
        self.products[product_id] = product
        return product

    def add_variant(self, variant_id: str, product: ProductRef, title: str, sku: str | None = None, **kwargs):
        variant = VariantRecord(id=variant_id, product=product, title=title, sku=sku or variant_id.upper(), **kwargs)
        self.variants[variant_id] = variant
        return variant

    def update_product(self, product_id: str, **changes) -> ProductRecord:
        product = replace(self.products[product_id], **changes)
        self.products[product_id] = product
        return product

    def get_product(self, product_id: str) -> ProductRecord | None:
        return self.products.get(product_id)

    def get_variant(self, variant_id: str) -> VariantRecord | None:
        return self.variants.get(variant_id)


_current_catalogue: CataloguePort | None = None


def get_catalogue() -> CataloguePort:
    global _current_catalogue
    if _current_catalogue is None:
        _current_catalogue = InMemoryCatalogue()
    return _current_catalogue


def set_catalogue(catalogue: CataloguePort) -> None:
    global _current_catalogue
    _current_catalogue = catalogue


def reset_catalogue() -> None:
    global _current_catalogue
    _current_catalogue = None
