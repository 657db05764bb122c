"""
Categorization API client for external domain classification.

This module provides an async client for a web categorization service with
TLS enforcement, HTTP Basic authentication, a hard cap on the reply size,
and interpretation of the reply into a service category.

Request:  GET {base_url}/categories/v3/{base64(domain)}
Reply:    {"data": [{"categories": [{"id": str, "score": str, "confident": bool}, ...]}]}

Every failure is reported in the returned CategorizationResponse; the client
never raises from categorize().
"""

import base64
import json
import math
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .enums import (
    CategorizationErrorCode,
    CategorizationStatus,
    ServiceCategory,
)
from .event_log import EventLogger
from .exceptions import ConfigurationError, ProtocolError
from .models import CategoryCandidate


DEFAULT_BASE_URL = "https://api.webshrinker.com"
CATEGORIES_PATH = "categories/v3"

# Reply bodies beyond this size are not accepted
MAX_RESPONSE_SIZE = 2048

# Categorization ids that map to a service category; all others are unclassified
CATEGORY_ID_MAP: dict[str, ServiceCategory] = {
    "IAB25-WS2": ServiceCategory.STREAMING_VIDEO,
    "IAB9-30": ServiceCategory.GAMING,
    "IAB1-7": ServiceCategory.STREAMING_VIDEO,
    "IAB25-WS1": ServiceCategory.STREAMING_VIDEO,
}


@dataclass
class CategorizationError:
    """Error information from a categorization query."""

    code: CategorizationErrorCode
    message: str
    http_status_code: Optional[int] = None


@dataclass
class CategorizationResponse:
    """Complete categorization query response."""

    domain: str
    status: CategorizationStatus
    category: ServiceCategory
    http_status_code: int = 0
    candidates: Optional[list[CategoryCandidate]] = None
    error: Optional[CategorizationError] = None
    response_time_ms: float = 0.0


def category_for_id(category_id: str) -> ServiceCategory:
    """Map a categorization id to a service category."""
    return CATEGORY_ID_MAP.get(category_id, ServiceCategory.UNCLASSIFIED)


def parse_categorization_reply(body: bytes) -> list[CategoryCandidate]:
    """
    Extract category candidates from a reply body.

    Entries without a boolean 'confident', a string 'score' and a string
    'id' are skipped.

    Args:
        body: Raw reply bytes

    Returns:
        Candidates in reply order

    Raises:
        ProtocolError: If the body is not JSON of the expected shape
    """
    try:
        document = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise ProtocolError(
            code=CategorizationErrorCode.PARSE_ERROR.value,
            message=f"Reply is not valid JSON: {e}",
        )

    if not isinstance(document, dict):
        raise ProtocolError(
            code=CategorizationErrorCode.PARSE_ERROR.value,
            message="Reply is not a JSON object",
        )

    data = document.get("data")
    if not isinstance(data, list) or len(data) != 1 or not isinstance(data[0], dict):
        raise ProtocolError(
            code=CategorizationErrorCode.PARSE_ERROR.value,
            message="Reply 'data' must hold exactly one object",
        )

    categories = data[0].get("categories")
    if not isinstance(categories, list):
        raise ProtocolError(
            code=CategorizationErrorCode.PARSE_ERROR.value,
            message="Reply has no 'categories' list",
        )

    candidates = []
    for item in categories:
        if not isinstance(item, dict):
            continue
        category_id = item.get("id")
        score = item.get("score")
        confident = item.get("confident")
        if (
            isinstance(category_id, str)
            and isinstance(score, str)
            and isinstance(confident, bool)
        ):
            candidates.append(CategoryCandidate(
                category_id=category_id,
                score=score,
                confident=confident,
            ))
    return candidates


def _numeric_score(score: str) -> float:
    try:
        value = float(score)
    except ValueError:
        return -math.inf
    return -math.inf if math.isnan(value) else value


def select_best_category(
    candidates: list[CategoryCandidate],
    numeric_scores: bool = False,
) -> ServiceCategory:
    """
    Pick the category of the best confident candidate.

    A candidate replaces the current best when it is confident (or the best
    is not yet confident) and its score is greater. Scores compare as
    strings unless numeric_scores is set, so by default "9" outranks "10".
    The winning id is mapped through CATEGORY_ID_MAP.

    Args:
        candidates: Candidates from parse_categorization_reply
        numeric_scores: Compare scores as numbers instead of strings

    Returns:
        The mapped category, or UNCLASSIFIED if no confident candidate exists
    """
    key = _numeric_score if numeric_scores else str
    best: Optional[CategoryCandidate] = None
    best_score: Any = key("0")

    for candidate in candidates:
        best_confident = best is not None and best.confident
        score = key(candidate.score)
        if (candidate.confident or not best_confident) and score > best_score:
            best = candidate
            best_score = score

    if best is None or not best.confident:
        return ServiceCategory.UNCLASSIFIED
    return category_for_id(best.category_id)


def encode_domain(domain: str) -> str:
    """Base64-encode a domain name for the request path."""
    return base64.b64encode(domain.encode("utf-8")).decode("ascii")


def split_credential(credential: str) -> tuple[str, str]:
    """
    Split a 'username:password' credential.

    Raises:
        ConfigurationError: If the credential has no colon or no username
    """
    username, separator, password = credential.partition(":")
    if not separator or not username:
        raise ConfigurationError(
            code="invalid_credential",
            message="Credential must have the form 'username:password'",
        )
    return username, password


class CategorizationClient:
    """
    Async categorization API client with TLS enforcement.

    One request per categorize() call; the reply body is read up to
    max_response_bytes and anything larger is rejected.
    """

    COMPONENT = "categorization_client"

    def __init__(
        self,
        credential: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        max_response_bytes: int = MAX_RESPONSE_SIZE,
        verify_tls: bool = True,
        numeric_scores: bool = False,
        simulation_mode: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[EventLogger] = None,
    ) -> None:
        """
        Initialize the categorization client.

        Args:
            credential: 'username:password' for HTTP Basic authentication
            base_url: Service root, must use HTTPS
            timeout: Request timeout in seconds
            max_response_bytes: Upper bound on the accepted reply body
            verify_tls: Verify the server certificate
            numeric_scores: Compare candidate scores numerically
            simulation_mode: If True, no real network requests are made
            transport: Optional httpx transport (used by tests)
            logger: Optional event logger

        Raises:
            ConfigurationError: If the URL is not HTTPS or the credential
                is malformed
        """
        self._validate_base_url(base_url)
        self._auth = httpx.BasicAuth(*split_credential(credential))
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_response_bytes = max_response_bytes
        self._verify_tls = verify_tls
        self._numeric_scores = numeric_scores
        self._simulation_mode = simulation_mode
        self._transport = transport
        self._logger = logger
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "CategorizationClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @staticmethod
    def _validate_base_url(base_url: str) -> None:
        parsed = urlparse(base_url)
        if parsed.scheme.lower() != "https" or not parsed.netloc:
            raise ConfigurationError(
                code=CategorizationErrorCode.TLS_ERROR.value,
                message=f"Categorization endpoint must use HTTPS: {base_url}",
                details={"base_url": base_url, "scheme": parsed.scheme},
            )

    def build_url(self, domain: str) -> str:
        return f"{self._base_url}/{CATEGORIES_PATH}/{encode_domain(domain)}"

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=self._verify_tls,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def categorize(self, domain: str) -> CategorizationResponse:
        """
        Ask the service for the category of a domain.

        Args:
            domain: Exact domain to classify

        Returns:
            CategorizationResponse; category is UNCLASSIFIED on any failure
        """
        start_time = time.perf_counter()

        if self._simulation_mode:
            return CategorizationResponse(
                domain=domain,
                status=CategorizationStatus.UNCLASSIFIED,
                category=ServiceCategory.UNCLASSIFIED,
                candidates=[],
                response_time_ms=self._elapsed_ms(start_time),
            )

        url = self.build_url(domain)
        client = self._ensure_client()

        try:
            async with client.stream(
                "GET",
                url,
                auth=self._auth,
                headers={"Accept": "application/json"},
            ) as response:
                status_code = response.status_code
                if not 200 <= status_code < 300:
                    return self._http_error(domain, url, status_code, start_time)

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > self._max_response_bytes:
                        return self._error(
                            domain,
                            CategorizationErrorCode.RESPONSE_TOO_LARGE,
                            f"Reply exceeds {self._max_response_bytes} bytes",
                            start_time,
                            http_status_code=status_code,
                            url=url,
                        )
        except httpx.TimeoutException as e:
            return self._error(
                domain,
                CategorizationErrorCode.TIMEOUT,
                f"Request timed out after {self._timeout}s",
                start_time,
                url=url,
                exc=e,
            )
        except httpx.ConnectError as e:
            error_msg = str(e)
            code = CategorizationErrorCode.NETWORK_ERROR
            if "ssl" in error_msg.lower() or "certificate" in error_msg.lower():
                code = CategorizationErrorCode.TLS_ERROR
            return self._error(
                domain, code, f"Connection error: {error_msg}", start_time, url=url, exc=e
            )
        except httpx.HTTPError as e:
            return self._error(
                domain,
                CategorizationErrorCode.NETWORK_ERROR,
                f"HTTP error: {e}",
                start_time,
                url=url,
                exc=e,
            )

        try:
            candidates = parse_categorization_reply(bytes(body))
        except ProtocolError as e:
            return self._error(
                domain,
                CategorizationErrorCode.PARSE_ERROR,
                e.message,
                start_time,
                http_status_code=status_code,
                url=url,
            )

        category = select_best_category(candidates, self._numeric_scores)
        return CategorizationResponse(
            domain=domain,
            status=(
                CategorizationStatus.CLASSIFIED
                if category.is_resolved
                else CategorizationStatus.UNCLASSIFIED
            ),
            category=category,
            http_status_code=status_code,
            candidates=candidates,
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _http_error(
        self,
        domain: str,
        url: str,
        status_code: int,
        start_time: float,
    ) -> CategorizationResponse:
        if status_code in (401, 403):
            code = CategorizationErrorCode.AUTH_ERROR
        elif status_code == 429:
            code = CategorizationErrorCode.RATE_LIMITED
        else:
            code = CategorizationErrorCode.SERVER_ERROR
        return self._error(
            domain,
            code,
            f"Unexpected HTTP status: {status_code}",
            start_time,
            http_status_code=status_code,
            url=url,
        )

    def _error(
        self,
        domain: str,
        code: CategorizationErrorCode,
        message: str,
        start_time: float,
        http_status_code: int = 0,
        url: Optional[str] = None,
        exc: Optional[BaseException] = None,
    ) -> CategorizationResponse:
        if self._logger is not None:
            self._logger.log_error(
                self.COMPONENT,
                message,
                error=exc,
                request_url=url,
                response_status_code=http_status_code or None,
                additional_data={"domain": domain, "code": code.value},
            )
        return CategorizationResponse(
            domain=domain,
            status=CategorizationStatus.ERROR,
            category=ServiceCategory.UNCLASSIFIED,
            http_status_code=http_status_code,
            error=CategorizationError(
                code=code,
                message=message,
                http_status_code=http_status_code or None,
            ),
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _elapsed_ms(self, start_time: float) -> float:
        """Calculate elapsed time in milliseconds."""
        return (time.perf_counter() - start_time) * 1000

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
