"""
Growthstation / GS Engage Integration
======================================

Read-only client for the GS Engage list endpoints:
- Prospections (sales pipeline entries with status and responsible user)
- Leads

Every list endpoint takes `limit` (max 100), `page` and `apiKey` query
parameters and answers `{"data": [...], "meta": {"totalPages": N}}`.
Pages are fetched strictly one after the other.

Setup:
1. Get the API key from GS Engage -> Settings -> Integrations
2. Set GROWTHSTATION_API_URL and GROWTHSTATION_API_KEY in .env
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from scripts.lib.circuit_breaker import CircuitBreaker
from scripts.lib.config import MAX_PAGE_SIZE, GrowthstationConfig
from scripts.lib.errors import (
    APIAuthError,
    APIConnectionError,
    APIError,
    APIRateLimitError,
    APITimeoutError,
    APIValidationError,
)
from scripts.lib.logger import setup_logger

logger = setup_logger("growthstation")

PROSPECTIONS_ENDPOINT = "/prospections"
LEADS_ENDPOINT = "/leads"


def _error_message(payload: Any, status_code: int) -> str:
    """Turn an upstream error body into something an operator can read."""
    if isinstance(payload, dict):
        query_errors = payload.get("query")
        if isinstance(query_errors, list) and query_errors:
            for err in query_errors:
                path = err.get("path") if isinstance(err, dict) else None
                if path and "limit" in path:
                    return f"Invalid 'limit' parameter: {err.get('message') or 'must be <= 100'}"
            messages = [
                str(err.get("message")) for err in query_errors
                if isinstance(err, dict) and err.get("message")
            ]
            if messages:
                return f"Validation error: {', '.join(messages)}"
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if payload.get("message"):
            return str(payload["message"])
    elif isinstance(payload, str) and payload.strip():
        return payload.strip()[:200]
    return f"API returned {status_code}"


class GrowthstationClient:
    """GS Engage API client with sequential pagination and a circuit breaker."""

    def __init__(
        self,
        config: GrowthstationConfig,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self.breaker = breaker or CircuitBreaker.get("growthstation")

    def _raise_for_status(self, resp: requests.Response, url: str) -> None:
        status = resp.status_code
        if status < 400:
            return
        try:
            payload = resp.json()
        except ValueError:
            payload = resp.text
        message = _error_message(payload, status)

        if status >= 500:
            raise APIError(f"GS Engage server error {status}: {message}",
                           code="API_SERVER_ERROR", status_code=status, url=url)
        if status in (401, 403):
            raise APIAuthError(url, status_code=status)
        if status == 429:
            retry_after = resp.headers.get("Retry-After")
            raise APIRateLimitError(url, int(retry_after) if str(retry_after).isdigit() else None)
        if status == 404:
            raise APIValidationError(f"Endpoint not found: {url}", url=url, status_code=404)
        raise APIValidationError(message, url=url, status_code=status)

    def _get(self, endpoint: str, params: Dict[str, Any] = None) -> Dict[str, Any]:
        """GET an endpoint. Raises an APIError subclass on any failure."""
        self.breaker.check()

        url = f"{self.config.base_url}{endpoint}"
        merged = dict(params or {})
        merged["apiKey"] = self.config.api_key
        logger.debug("GET %s params=%s", url, {**merged, "apiKey": "***"})

        try:
            resp = self.session.get(url, params=merged, timeout=self.config.timeout)
        except requests.exceptions.Timeout:
            self.breaker.record_failure()
            logger.error("GET %s timed out after %ss", endpoint, self.config.timeout)
            raise APITimeoutError(url, self.config.timeout)
        except requests.exceptions.ConnectionError as e:
            self.breaker.record_failure()
            logger.error("GET %s connection failed: %s", endpoint, e)
            raise APIConnectionError(url, str(e))
        except requests.RequestException as e:
            self.breaker.record_failure()
            logger.error("GET %s failed: %s", endpoint, e)
            raise APIError(str(e), url=url)

        if resp.status_code >= 500:
            self.breaker.record_failure()
        else:
            self.breaker.record_success()

        if resp.status_code >= 400:
            logger.error("GET %s returned %d", endpoint, resp.status_code)
        self._raise_for_status(resp, url)

        try:
            return resp.json()
        except ValueError:
            raise APIError(f"GS Engage returned a non-JSON body for {endpoint}",
                           code="API_BAD_RESPONSE", status_code=resp.status_code, url=url)

    def fetch_all_pages(self, endpoint: str, max_pages: int = None) -> List[dict]:
        """
        Collect every record of a list endpoint.

        Stops on an empty page, once meta.totalPages is reached, or at
        max_pages. A 400 after at least one page stops pagination and keeps
        what was collected so far; a 400 on the first page (e.g. a rejected
        `limit`) and every other error propagates.
        """
        limit = min(self.config.page_size, MAX_PAGE_SIZE)
        max_pages = max_pages or self.config.max_pages
        all_records: List[dict] = []
        page = 1

        while page <= max_pages:
            try:
                payload = self._get(endpoint, {"limit": limit, "page": page})
            except APIValidationError as e:
                if e.status_code == 400 and all_records:
                    logger.warning(
                        "400 on %s page %d (%s) — stopping with %d records",
                        endpoint, page, e.message, len(all_records),
                    )
                    break
                raise

            if not isinstance(payload, dict):
                payload = {}
            page_data = payload.get("data") or []
            if not page_data:
                break

            all_records.extend(page_data)
            logger.debug("%s page %d: %d records (total: %d)",
                         endpoint, page, len(page_data), len(all_records))

            meta = payload.get("meta") or {}
            try:
                total_pages = int(meta.get("totalPages") or 1)
            except (TypeError, ValueError):
                total_pages = 1
            if page >= total_pages:
                break
            page += 1
        else:
            logger.warning("%s: page bound (%d) reached, results may be incomplete",
                           endpoint, max_pages)

        logger.info("Fetched %d records from %s", len(all_records), endpoint)
        return all_records

    def get_prospections(self, max_pages: int = None) -> List[dict]:
        return self.fetch_all_pages(PROSPECTIONS_ENDPOINT, max_pages)

    def get_leads(self, max_pages: int = None) -> List[dict]:
        return self.fetch_all_pages(LEADS_ENDPOINT, max_pages)

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": "Growthstation",
            "base_url": self.config.base_url,
            "page_size": min(self.config.page_size, MAX_PAGE_SIZE),
            "max_pages": self.config.max_pages,
            "circuit": self.breaker.status(),
        }
