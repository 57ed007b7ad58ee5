"""Shared BDD fixtures for the ordering domain."""

import pytest
from ordering.checkout.saga import CheckoutSaga


@pytest.fixture()
def saga(catalogue, gateway, queue):
    return CheckoutSaga(gateway=gateway, queue=queue)


@pytest.fixture()
def outcome():
    """Container for results and errors captured by When steps."""
    return {"results": [], "exc": None}
