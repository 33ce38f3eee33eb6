import logging
import time
from datetime import datetime
from typing import Any, Callable, List, Optional

import requests
from dotenv import load_dotenv

from ...config.sync_config import SyncConfig
from ...services.sync.errors import ExternalServiceError, FailureKind
from ...services.sync.models import ExternalWay
from ...utils.geo_utils import GeoBox
from .rate_limiter import RateLimiter


load_dotenv()
logger = logging.getLogger(__name__)

# OSM highway classes requested from Overpass
HIGHWAY_TYPES = [
    "primary",
    "primary_link",
    "secondary",
    "secondary_link",
    "tertiary",
    "tertiary_link",
    "residential",
    "unclassified",
    "living_street",
    "service",
]


class OverpassClient:
    """Client for fetching OSM road ways from the Overpass API.

    Every request passes through a shared RateLimiter. Rate-limit, timeout,
    server and network failures are retried with a linear backoff of
    ``attempt * retry_backoff`` seconds before an ExternalServiceError is raised.
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or SyncConfig.from_env()
        self.rate_limiter = rate_limiter or RateLimiter(self.config.min_request_interval_s)
        self._sleep = sleep
        self.session = session or requests.Session()

        # Set session defaults
        self.session.headers.update({
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
        })

    def build_query(self, cell: GeoBox) -> str:
        """Build the Overpass QL query for one cell."""
        bbox_str = f"{cell.min_lat},{cell.min_lng},{cell.max_lat},{cell.max_lng}"
        highway_regex = "|".join(HIGHWAY_TYPES)
        timeout_s = int(self.config.request_timeout_ms // 1000)
        return (
            f"[out:json][timeout:{timeout_s}];\n"
            f"(\n"
            f'  way["highway"~"^({highway_regex})$"]({bbox_str});\n'
            f");\n"
            f"out geom meta;\n"
        )

    def fetch_ways(self, cell: GeoBox, max_retries: Optional[int] = None) -> List[ExternalWay]:
        """Fetch all road ways intersecting a cell.

        Args:
            cell: Query rectangle, already within the service's size limits
            max_retries: Maximum number of attempts (defaults to config)

        Returns:
            Decoded way records

        Raises:
            ExternalServiceError: After the last attempt fails, carrying the
                last observed failure kind
            ValueError: If max_retries is below 1
        """
        attempts = max_retries if max_retries is not None else self.config.max_retries
        if attempts < 1:
            raise ValueError(f"max_retries must be at least 1, got {attempts}")
        query = self.build_query(cell)
        last_error: Optional[ExternalServiceError] = None

        for attempt in range(1, attempts + 1):
            try:
                return self._fetch(query)
            except ExternalServiceError as e:
                last_error = e
                if not e.retryable or attempt == attempts:
                    break

                wait_s = attempt * self.config.retry_backoff_s
                if e.kind is FailureKind.RATE_LIMITED:
                    logger.warning(
                        f"Rate limited (429), waiting {wait_s:.1f}s (attempt {attempt}/{attempts})"
                    )
                elif e.kind is FailureKind.TIMEOUT:
                    logger.warning(
                        f"Request timed out, retrying in {wait_s:.1f}s (attempt {attempt}/{attempts})"
                    )
                else:
                    logger.warning(
                        f"Request failed ({e}), retrying in {wait_s:.1f}s (attempt {attempt}/{attempts})"
                    )
                self._sleep(wait_s)

        logger.error(f"Giving up on cell {cell.to_param()}: {last_error}")
        raise last_error

    def _fetch(self, query: str) -> List[ExternalWay]:
        """Dispatch a single query and decode the response."""
        self.rate_limiter.wait()

        try:
            response = self.session.post(
                self.config.base_url,
                data={"data": query},
                timeout=self.config.request_timeout_s,
            )
        except requests.Timeout as e:
            raise ExternalServiceError(FailureKind.TIMEOUT, str(e))
        except requests.RequestException as e:
            raise ExternalServiceError(FailureKind.NETWORK_ERROR, str(e))

        logger.debug(f"Response status: {response.status_code}")

        if response.status_code == 429:
            raise ExternalServiceError(FailureKind.RATE_LIMITED, "HTTP 429", status_code=429)
        if response.status_code == 504:
            raise ExternalServiceError(FailureKind.TIMEOUT, "HTTP 504", status_code=504)
        if response.status_code >= 500:
            raise ExternalServiceError(
                FailureKind.SERVER_ERROR, f"HTTP {response.status_code}", status_code=response.status_code
            )
        if not response.ok:
            logger.error(f"API error: {response.text[:1000]}")
            raise ExternalServiceError(
                FailureKind.SERVER_ERROR,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                retryable=False,
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Response: {response.text[:1000]}")
            raise ExternalServiceError(FailureKind.SERVER_ERROR, f"Invalid JSON response: {e}")

        return self._parse_ways(data.get("elements", []))

    def _parse_ways(self, elements: List[dict]) -> List[ExternalWay]:
        """Parse way elements from an Overpass JSON response."""
        ways = []

        for i, element in enumerate(elements):
            if element.get("type") != "way":
                continue
            try:
                vertices = [
                    (float(node["lat"]), float(node["lon"]))
                    for node in element.get("geometry") or []
                ]
                ways.append(ExternalWay(
                    external_id=int(element["id"]),
                    vertices=vertices,
                    tags={str(k): str(v) for k, v in (element.get("tags") or {}).items()},
                    last_modified=self._parse_timestamp(element.get("timestamp")),
                ))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Error parsing element {i}: {e}")
                continue

        logger.debug(f"Parsed {len(ways)} ways from {len(elements)} elements")
        return ways

    def _parse_timestamp(self, timestamp: Any) -> Optional[datetime]:
        """Parse an OSM ISO-8601 timestamp."""
        if not timestamp:
            return None
        if isinstance(timestamp, datetime):
            return timestamp
        try:
            return datetime.fromisoformat(str(timestamp).replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Could not parse way timestamp: {timestamp}")
            return None

    def get_service_info(self) -> dict[str, Any]:
        """Get information about the Overpass client configuration."""
        return {
            "service_name": "OverpassClient",
            "base_url": self.config.base_url,
            "timeout_ms": self.config.request_timeout_ms,
            "max_retries": self.config.max_retries,
            "retry_backoff_ms": self.config.retry_backoff_ms,
            "min_request_interval_ms": self.config.min_request_interval_ms,
            "user_agent": self.config.user_agent,
        }
