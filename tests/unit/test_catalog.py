"""Unit tests for catalog entities and price parsing."""

from __future__ import annotations

from decimal import Decimal

import pytest

from paywall_service.domain.catalog import (
    DEFAULT_MIME_TYPE,
    DEFAULT_NETWORK,
    Product,
    ProductKind,
    Vendor,
    hash_api_key,
)
from paywall_service.domain.errors import ValidationFailed
from paywall_service.domain.pricing import parse_price, to_base_units
from tests.helpers import VENDOR_ADDRESS, make_vendor


@pytest.mark.unit
def test_register_vendor_returns_key_and_stores_only_hash() -> None:
    vendor, api_key = make_vendor()

    assert vendor.id.startswith("v-")
    assert len(api_key) == 64
    assert vendor.api_key_hash == hash_api_key(api_key)
    assert api_key not in vendor.api_key_hash
    assert vendor.is_active


@pytest.mark.unit
@pytest.mark.parametrize(
    "address",
    ["", "0x123", "1111111111111111111111111111111111111111", "0x" + "g" * 40, "0x" + "1" * 42],
)
def test_register_vendor_rejects_bad_address(address: str) -> None:
    with pytest.raises(ValidationFailed) as exc_info:
        Vendor.register("Weather Co", address)
    assert exc_info.value.field == "settlement_address"


@pytest.mark.unit
def test_register_vendor_rejects_blank_name() -> None:
    with pytest.raises(ValidationFailed) as exc_info:
        Vendor.register("   ", VENDOR_ADDRESS)
    assert exc_info.value.field == "name"


@pytest.mark.unit
def test_register_product_defaults() -> None:
    vendor, _ = make_vendor()
    product = Product.register(vendor_id=vendor.id, path="/weather/", price="$0.10", description="")

    assert product.path == "weather"
    assert product.network == DEFAULT_NETWORK
    assert product.mime_type == DEFAULT_MIME_TYPE
    assert product.kind is ProductKind.ASYNC


@pytest.mark.unit
def test_product_kind_does_not_depend_on_data() -> None:
    vendor, _ = make_vendor()
    product = Product.register(
        vendor_id=vendor.id,
        path="keys",
        price="$1",
        description="",
        data='{"type": "credential"}',
    )

    assert product.kind is ProductKind.ASYNC


@pytest.mark.unit
@pytest.mark.parametrize("price", ["0.10", "$", "$abc", "$-1", "$0", "USD 1", "$1.2.3"])
def test_register_product_rejects_bad_price(price: str) -> None:
    with pytest.raises(ValidationFailed) as exc_info:
        Product.register(vendor_id="v-1", path="weather", price=price, description="")
    assert exc_info.value.field == "price"


@pytest.mark.unit
def test_register_product_rejects_empty_path() -> None:
    with pytest.raises(ValidationFailed) as exc_info:
        Product.register(vendor_id="v-1", path=" / ", price="$1", description="")
    assert exc_info.value.field == "path"


@pytest.mark.unit
def test_parse_price_and_base_units() -> None:
    assert parse_price("$0.10") == Decimal("0.10")
    assert to_base_units("$0.10", 6) == 100000
    assert to_base_units("$12", 6) == 12000000
    assert to_base_units("$0.000001", 6) == 1


@pytest.mark.unit
def test_base_units_rejects_excess_precision() -> None:
    with pytest.raises(ValidationFailed):
        to_base_units("$0.0000001", 6)
