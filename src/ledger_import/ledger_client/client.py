"""
Notion ledger API client implementation.
"""

import json
import logging
import re
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import ConfigValidationError, LedgerConfig

logger = logging.getLogger(__name__)

_MISSING_PROPERTY_RE = re.compile(r"Could not find property with name or id: ([^.]+)")


class LedgerError(Exception):
    """Base exception for ledger client errors."""

    pass


class LedgerConnectionError(LedgerError):
    """Failed to connect to the ledger."""

    pass


class LedgerAPIError(LedgerError):
    """API returned an error response."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        response_body: str | None = None,
    ):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Notion API error {status_code} ({code}): {message}")


class LedgerObjectNotFoundError(LedgerAPIError):
    """Database or page does not exist or is not shared with the integration."""

    pass


class LedgerUnauthorizedError(LedgerAPIError):
    """Token rejected."""

    pass


class LedgerRateLimitedError(LedgerAPIError):
    """Rate limit exceeded after retries."""

    pass


class LedgerValidationError(LedgerAPIError):
    """Request body rejected by schema validation."""

    pass


class LedgerMissingPropertyError(LedgerValidationError):
    """A filter or payload referenced a property the database does not have."""

    def __init__(self, property_name: str, **kwargs: Any):
        self.property_name = property_name
        super().__init__(**kwargs)


_ERROR_CLASSES: dict[str, type[LedgerAPIError]] = {
    "object_not_found": LedgerObjectNotFoundError,
    "unauthorized": LedgerUnauthorizedError,
    "restricted_resource": LedgerUnauthorizedError,
    "rate_limited": LedgerRateLimitedError,
    "validation_error": LedgerValidationError,
}


def _api_error(status_code: int, code: str, message: str, body: str | None) -> LedgerAPIError:
    """Map a Notion error response onto the typed error hierarchy."""
    if code == "validation_error":
        missing = _MISSING_PROPERTY_RE.search(message)
        if missing:
            return LedgerMissingPropertyError(
                property_name=missing.group(1).strip(),
                status_code=status_code,
                code=code,
                message=message,
                response_body=body,
            )
    error_cls = _ERROR_CLASSES.get(code, LedgerAPIError)
    return error_cls(status_code=status_code, code=code, message=message, response_body=body)


def page_url(page_id: str, base_url: str = "https://www.notion.so") -> str:
    """Human-navigable URL for a page id (hyphens stripped)."""
    return f"{base_url.rstrip('/')}/{page_id.replace('-', '')}"


class LedgerClient:
    """
    Client for the Notion ledger API.

    Features:
    - Query a database (filter + pagination)
    - Create pages
    - Retrieve a database (schema lookup)
    - Automatic retry with backoff on rate limiting
    """

    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.notion.com",
        api_version: str = "2022-06-28",
        page_base_url: str = "https://www.notion.so",
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        """
        Initialize ledger client.

        Args:
            token: Notion integration token
            base_url: API URL
            api_version: Value of the Notion-Version header
            page_base_url: Prefix for human-facing page URLs
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts
            backoff_factor: Backoff factor for retries

        Raises:
            ConfigValidationError: If the token is missing or empty
        """
        if not token or not token.strip():
            raise ConfigValidationError(
                "Notion API token is not configured (set NOTION_API_TOKEN or ledger.token)"
            )

        self.base_url = base_url.rstrip("/")
        self.page_base_url = page_base_url
        self.timeout = timeout

        # Configure session with retry
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Notion-Version": api_version,
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

        # 429/503 mean the request was not applied, so POST retries cannot double-write
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 503],
            allowed_methods=["GET", "POST", "PATCH"],
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    @classmethod
    def from_config(cls, config: LedgerConfig) -> "LedgerClient":
        """Build a client from the ledger config section."""
        return cls(
            token=config.token,
            base_url=config.base_url,
            api_version=config.api_version,
            page_base_url=config.page_base_url,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
        )

    def _request(
        self,
        method: str,
        endpoint: str,
        json_data: dict | None = None,
    ) -> dict[str, Any]:
        """Make an API request with error handling."""
        url = f"{self.base_url}{endpoint}"

        logger.debug("API Request: %s %s", method, url)
        if json_data:
            logger.debug("Request body: %s", json.dumps(json_data)[:500])

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=json_data,
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            logger.error("Connection error to %s: %s", url, e)
            raise LedgerConnectionError(f"Failed to connect to Notion at {self.base_url}: {e}") from e
        except requests.exceptions.Timeout as e:
            logger.error("Timeout for %s: %s", url, e)
            raise LedgerConnectionError(f"Request to Notion timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error("Request error for %s: %s", url, e)
            raise LedgerError(f"Request failed: {e}") from e

        logger.debug("Response status: %s", response.status_code)

        if not response.ok:
            error_body = response.text
            try:
                error_json = response.json()
                code = error_json.get("code", "unknown")
                message = error_json.get("message", response.reason)
            except ValueError:
                code = "unknown"
                message = response.reason or "Unknown error"

            logger.error("API Error %s (%s): %s", response.status_code, code, message)
            raise _api_error(response.status_code, code, message, error_body)

        try:
            return response.json()
        except ValueError as e:
            raise LedgerError(f"Invalid JSON in Notion response: {e}") from e

    def query_database(
        self,
        database_id: str,
        filter: dict | None = None,
        start_cursor: str | None = None,
        page_size: int = 100,
    ) -> dict[str, Any]:
        """
        Query a database (one page of results).

        Returns:
            Raw response with "results", "has_more" and "next_cursor"
        """
        body: dict[str, Any] = {"page_size": page_size}
        if filter:
            body["filter"] = filter
        if start_cursor:
            body["start_cursor"] = start_cursor
        return self._request("POST", f"/v1/databases/{database_id}/query", json_data=body)

    def query_all(self, database_id: str, filter: dict | None = None) -> list[dict[str, Any]]:
        """Query a database following pagination until exhausted."""
        pages: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            response = self.query_database(database_id, filter=filter, start_cursor=cursor)
            pages.extend(response.get("results", []))
            if not response.get("has_more") or not response.get("next_cursor"):
                return pages
            cursor = response["next_cursor"]

    def create_page(self, database_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        """
        Create a page in a database.

        Returns:
            Created page object (its "id" is the ledger page id)

        Raises:
            LedgerAPIError: If API returns an error
        """
        return self._request(
            "POST",
            "/v1/pages",
            json_data={"parent": {"database_id": database_id}, "properties": properties},
        )

    def get_database(self, database_id: str) -> dict[str, Any]:
        """Retrieve a database object (title and property schema)."""
        return self._request("GET", f"/v1/databases/{database_id}")

    def test_connection(self, database_id: str) -> bool:
        """Check that the database exists and is shared with the integration."""
        try:
            self.get_database(database_id)
            return True
        except LedgerError:
            return False

    def page_url(self, page_id: str) -> str:
        """Human-navigable URL for a page id."""
        return page_url(page_id, self.page_base_url)

    def close(self) -> None:
        self.session.close()
