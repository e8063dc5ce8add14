"""
Unit tests for download retry policies.
"""

import httpx
import pytest

from bucketfs.common.resilience import download_retrying


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("tenacity.nap.time.sleep", lambda seconds: None)


class TestDownloadRetrying:
    """Test retry behaviour."""

    def test_retries_transport_errors(self):
        calls = []

        def fetch():
            calls.append(1)
            if len(calls) < 3:
                raise httpx.ConnectError("refused")
            return "ok"

        assert download_retrying(3)(fetch) == "ok"
        assert len(calls) == 3

    def test_reraises_after_last_attempt(self):
        calls = []

        def fetch():
            calls.append(1)
            raise httpx.ReadTimeout("timed out")

        with pytest.raises(httpx.ReadTimeout):
            download_retrying(2)(fetch)
        assert len(calls) == 2

    def test_http_errors_are_not_retried(self):
        """An error status is an answer, not a transport failure."""
        calls = []
        request = httpx.Request("GET", "https://bucket.s3.test/key")
        response = httpx.Response(403, request=request)

        def fetch():
            calls.append(1)
            response.raise_for_status()

        with pytest.raises(httpx.HTTPStatusError):
            download_retrying(3)(fetch)
        assert len(calls) == 1

    def test_at_least_one_attempt(self):
        assert download_retrying(0)(lambda: "ok") == "ok"
