"""
Tests for value normalisation helpers used by the extractors.
"""

from datetime import date

import pytest

from retail_crawler.extractors.categories import infer_category
from retail_crawler.extractors.parsing import (
    external_id_from_url,
    parse_int,
    parse_price_to_pence,
    parse_quantity,
    parse_rating,
    parse_review_date,
    parse_weight,
    pounds_to_pence,
    review_external_id,
)


class TestParsePriceToPence:
    """Tests for price parsing."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("£12.99", 1299),
            ("99p", 99),
            ("10,99", 1099),
            ("£1,299.00", 129900),
            ("5", 500),
            ("1299", 1299),
            ("£ 4.5", 450),
            ("Now £5.00", 500),
            ("Was £7.49 each", 749),
        ],
    )
    def test_valid_prices(self, text, expected):
        assert parse_price_to_pence(text) == expected

    @pytest.mark.parametrize("text", ["invalid", "", "   ", None, "Free delivery"])
    def test_invalid_prices_return_none(self, text):
        assert parse_price_to_pence(text) is None

    def test_structured_data_amounts(self):
        assert pounds_to_pence("5.00") == 500
        assert pounds_to_pence(12.99) == 1299
        assert pounds_to_pence(7) == 700
        assert pounds_to_pence(None) is None
        assert pounds_to_pence("NaN") is None
        assert pounds_to_pence("-1") is None

    def test_structured_data_comma_decimal(self):
        assert pounds_to_pence("10,99") == 1099
        assert pounds_to_pence("£1,299.00") == 129900
        assert pounds_to_pence("150") == 15000


class TestParseWeightAndQuantity:
    """Tests for weight and pack quantity parsing."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2.5kg", 2500),
            ("400g", 400),
            ("Dog Food 12 x 400g", 400),
            ("1.5 litres", 1500),
            ("5lb", 2270),
            ("10 oz", 284),
            ("2,5 kg", 2500),
        ],
    )
    def test_weights(self, text, expected):
        assert parse_weight(text) == expected

    def test_no_weight(self):
        assert parse_weight("Chew toy") is None
        assert parse_weight(None) is None

    def test_quantities(self):
        assert parse_quantity("Pouches 12 x 100g") == 12
        assert parse_quantity("Dental sticks 6 pack") == 6
        assert parse_quantity("Single tin") is None


class TestIdentifiers:
    """Tests for external id derivation."""

    def test_external_id_from_last_path_segment(self):
        assert external_id_from_url("https://example.com/products/abc-123/") == "abc-123"
        assert external_id_from_url("https://example.com/") is None

    def test_review_id_is_deterministic(self):
        first = review_external_id("bm", "https://example.com/p/1", "Sam", "Great food", 0)
        second = review_external_id("bm", "https://example.com/p/1", "Sam", "Great food", 0)

        assert first == second
        assert first.startswith("bm-review-")
        assert first.endswith("-0")

    def test_review_id_changes_with_content(self):
        first = review_external_id("bm", "https://example.com/p/1", "Sam", "Great food", 0)
        second = review_external_id("bm", "https://example.com/p/1", "Sam", "Poor food", 0)

        assert first != second


class TestRatingsAndDates:
    """Tests for review value parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [(4, 4.0), ("4.5", 4.5), ("4 out of 5", 4.0), ("Rated 3/5", 3.0), ("5 stars", 5.0)],
    )
    def test_ratings(self, value, expected):
        assert parse_rating(value) == expected

    @pytest.mark.parametrize("value", [None, "great", 7, -1, True])
    def test_invalid_ratings(self, value):
        assert parse_rating(value) is None

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-03-05", date(2024, 3, 5)),
            ("2024-03-05T10:15:00Z", date(2024, 3, 5)),
            ("05/03/2024", date(2024, 3, 5)),
            ("5 March 2024", date(2024, 3, 5)),
            ("5th March 2024", date(2024, 3, 5)),
            ("March 5, 2024", date(2024, 3, 5)),
        ],
    )
    def test_review_dates(self, value, expected):
        assert parse_review_date(value) == expected

    def test_unparsable_date(self):
        assert parse_review_date("last week") is None

    def test_parse_int(self):
        assert parse_int("12 people found this helpful") == 12
        assert parse_int("1,204 votes") == 1204
        assert parse_int("none") is None


class TestCategoryInference:
    """Tests for URL path category inference."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.bmstores.co.uk/pets/dog-food/dry", "dog-food"),
            ("https://www.bmstores.co.uk/pets/dog-treats", "dog-treats"),
            ("https://www.bmstores.co.uk/pets/cat-food", "cat-food"),
            ("https://www.bmstores.co.uk/homeware/candles", None),
        ],
    )
    def test_infer_category(self, url, expected):
        assert infer_category(url) == expected
