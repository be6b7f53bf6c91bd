"""
Tests for Sentry integration helpers.
"""

from unittest.mock import MagicMock, patch

import pytest

from retail_crawler.monitoring import add_crawl_breadcrumb, capture_alert, capture_crawl_error
from retail_crawler.monitoring.sentry_integration import _filter_sensitive_data


class TestSensitiveDataFiltering:
    """Tests for credential filtering."""

    def test_filters_credential_keys(self):
        data = {"api_key": "abc", "Authorization": "Bearer x", "url": "https://example.com"}

        filtered = _filter_sensitive_data(data)

        assert filtered["api_key"] == "[Filtered]"
        assert filtered["Authorization"] == "[Filtered]"
        assert filtered["url"] == "https://example.com"

    def test_filters_nested_dicts(self):
        filtered = _filter_sensitive_data({"request": {"cookies": "session=1", "status": 403}})

        assert filtered == {"request": {"cookies": "[Filtered]", "status": 403}}

    def test_non_dict_passes_through(self):
        assert _filter_sensitive_data("plain") == "plain"


class TestBreadcrumbs:
    """Tests for crawl breadcrumbs."""

    def test_breadcrumb_carries_crawl_context(self):
        with patch("retail_crawler.monitoring.sentry_integration.sentry_sdk") as sdk:
            add_crawl_breadcrumb(
                retailer_slug="bm",
                url="https://www.bmstores.co.uk/pets",
                adapter="standard",
                extra_data={"token": "secret", "attempt": 1},
            )

        kwargs = sdk.add_breadcrumb.call_args.kwargs
        assert kwargs["category"] == "crawl"
        assert kwargs["data"]["retailer"] == "bm"
        assert kwargs["data"]["token"] == "[Filtered]"
        assert kwargs["data"]["attempt"] == 1

    def test_breadcrumb_failure_is_logged_not_raised(self):
        with patch("retail_crawler.monitoring.sentry_integration.sentry_sdk") as sdk:
            sdk.add_breadcrumb.side_effect = RuntimeError("sdk down")
            add_crawl_breadcrumb(retailer_slug="bm", url="u", adapter="standard")


@pytest.mark.django_db
class TestCaptureHelpers:
    """Tests for error and alert capture."""

    def test_capture_crawl_error_tags_scope(self, retailer):
        error = RuntimeError("boom")

        with patch("retail_crawler.monitoring.sentry_integration.sentry_sdk") as sdk:
            scope = MagicMock()
            sdk.new_scope.return_value.__enter__.return_value = scope
            capture_crawl_error(error=error, retailer=retailer, url="https://www.bmstores.co.uk/pets", adapter="advanced")

        scope.set_tag.assert_any_call("crawler.retailer", "bm")
        scope.set_tag.assert_any_call("crawler.adapter", "advanced")
        scope.set_extra.assert_any_call("crawl_url", "https://www.bmstores.co.uk/pets")
        sdk.capture_exception.assert_called_once_with(error)

    def test_capture_alert_sends_message(self, retailer):
        with patch("retail_crawler.monitoring.sentry_integration.sentry_sdk") as sdk:
            scope = MagicMock()
            sdk.new_scope.return_value.__enter__.return_value = scope
            capture_alert("Retailer bm moved to Degraded", retailer=retailer, extra_data={"password": "x"})

        scope.set_tag.assert_any_call("alert.type", "retailer_health")
        scope.set_extra.assert_any_call("alert_data", {"password": "[Filtered]"})
        sdk.capture_message.assert_called_once_with("Retailer bm moved to Degraded", level="warning")
