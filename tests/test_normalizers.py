from __future__ import annotations

import pytest

from store_geocoder.geocoding.models import AddressComponents, GeocodeRequest, normalize_address
from store_geocoder.geocoding.normalizers import AddressNormalizer


@pytest.fixture
def normalizer():
    return AddressNormalizer()


def test_normalize_address_collapses_whitespace():
    assert normalize_address("  12  Main St,\n Springfield ") == "12 Main St, Springfield"
    assert normalize_address(None) == ""


def test_normalizer_strips_symbols_and_empty_parts(normalizer):
    assert normalizer.normalize("★ 12 Main St, , Springfield ,") == "12 Main St, Springfield"


def test_normalizer_keeps_address_punctuation(normalizer):
    assert normalizer.normalize("Unit 4/12 O'Connell St. #3 & Co") == "Unit 4/12 O'Connell St. #3 & Co"


@pytest.mark.parametrize("value", ["", "   ", "\t\n", "***"])
def test_blank_addresses_normalize_to_empty(normalizer, value):
    assert normalizer.normalize(value) == ""


def test_expand_abbreviations():
    normalizer = AddressNormalizer(expand_abbreviations=True)

    assert normalizer.normalize("5 Oak Ave, Springfield") == "5 Oak Avenue, Springfield"
    assert normalizer.normalize("12 Main St, Springfield") == "12 Main Street, Springfield"
    # "St" that is not a trailing street type is left alone
    assert normalizer.normalize("St Kilda Rd") == "St Kilda Road"


def test_context_appended_once(normalizer):
    assert normalizer.normalize("12 Main St", context="USA") == "12 Main St, USA"
    assert normalizer.normalize("12 Main St, USA", context="usa") == "12 Main St, USA"


def test_normalize_batch(normalizer):
    assert normalizer.normalize_batch([" a  b ", ""]) == ["a b", ""]


def test_request_from_components_skips_blank_parts():
    request = GeocodeRequest.from_components(
        AddressComponents(address="12  Main St", city="", postcode="62701", country="USA")
    )

    assert request.address == "12 Main St, 62701, USA"
    assert request.is_valid()
    assert not GeocodeRequest.from_raw("   ").is_valid()
