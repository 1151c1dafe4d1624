# price_aggregator/sources/http_source.py

"""Source backed by a JSON product listing endpoint."""

from typing import Any

from curl_cffi import requests as curl_requests

from price_aggregator.errors import SourceError
from price_aggregator.models.product import RawRecord
from price_aggregator.sources.base_source import BaseSource


class HttpSource(BaseSource):
    """Fetch raw product records from a JSON HTTP endpoint.

    The endpoint may answer with a JSON list of records, or with an
    object holding that list under *items_key*.  Every failure mode is
    reported as ``SourceError`` so the retry wrapper can handle it.
    """

    def __init__(
        self,
        name: str,
        url: str,
        items_key: str = "items",
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__(name)
        self.url = url
        self.items_key = items_key
        self.headers = {
            **self.settings.DEFAULT_HEADERS,
            **(headers or {}),
        }
        self._request_timeout = (
            timeout
            if timeout is not None
            else self.settings.SOURCE_TIMEOUT
        )
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def _extract_records(self, payload: Any) -> list[RawRecord]:
        """Pull the record list out of a decoded JSON payload."""
        if isinstance(payload, dict):
            payload = payload.get(self.items_key)
        if not isinstance(payload, list):
            raise SourceError(
                self.source_name,
                f"Unexpected payload shape from {self.url}",
            )
        return [r for r in payload if isinstance(r, dict)]

    def fetch(self) -> list[RawRecord]:
        """GET the endpoint and return its records."""
        try:
            resp = self.session.get(
                self.url,
                headers=self.headers,
                timeout=self._request_timeout,
            )
        except Exception as exc:
            raise SourceError(
                self.source_name, f"Request failed: {exc}"
            ) from exc

        if resp.status_code != 200:
            raise SourceError(
                self.source_name,
                f"HTTP {resp.status_code} from {self.url}",
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise SourceError(
                self.source_name, "Malformed JSON response"
            ) from exc

        records = self._extract_records(payload)
        self.logger.info(
            "[%s] Fetched %d records from %s",
            self.source_name,
            len(records),
            self.url,
        )
        return records
