"""
Configuration for the OSM road synchronization pipeline
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


@dataclass
class SyncConfig:
    """Configuration for road network sync runs"""

    # Overpass service
    base_url: str = "https://overpass-api.de/api/interpreter"
    user_agent: str = "RoadSync-OsmSync/1.0"
    min_request_interval_ms: int = 2000
    request_timeout_ms: int = 90000

    # Retry policy
    max_retries: int = 3
    retry_backoff_ms: int = 10000

    # Cell ceilings for bbox partitioning
    max_cell_area_m2: float = 1_000_000.0  # 1km²
    max_cell_side_km: float = 1.0

    # Segmentation
    min_segment_length_m: float = 15.0
    nearby_roads_limit: int = 5000

    # Ward boundary GeoJSON files
    region_boundary_dir: str = "sample-data/ward-boundaries"

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Create config from environment variables with fallbacks"""
        return cls(
            base_url=os.getenv("OVERPASS_API_URL", "https://overpass-api.de/api/interpreter"),
            user_agent=os.getenv("OVERPASS_USER_AGENT", "RoadSync-OsmSync/1.0"),
            min_request_interval_ms=int(os.getenv("OVERPASS_RATE_LIMIT_MS", "2000")),
            request_timeout_ms=int(os.getenv("OVERPASS_TIMEOUT_MS", "90000")),
            max_retries=int(os.getenv("OVERPASS_MAX_RETRIES", "3")),
            retry_backoff_ms=int(os.getenv("OVERPASS_RETRY_BACKOFF_MS", "10000")),
            max_cell_area_m2=float(os.getenv("OSM_SYNC_MAX_AREA_M2", "1000000")),
            max_cell_side_km=float(os.getenv("OSM_SYNC_MAX_SIDE_KM", "1.0")),
            min_segment_length_m=float(os.getenv("OSM_SYNC_MIN_SEGMENT_M", "15")),
            nearby_roads_limit=int(os.getenv("OSM_SYNC_NEARBY_LIMIT", "5000")),
            region_boundary_dir=os.getenv("REGION_BOUNDARY_DIR", "sample-data/ward-boundaries"),
        )

    @property
    def min_request_interval_s(self) -> float:
        return self.min_request_interval_ms / 1000.0

    @property
    def request_timeout_s(self) -> float:
        return self.request_timeout_ms / 1000.0

    @property
    def retry_backoff_s(self) -> float:
        return self.retry_backoff_ms / 1000.0

    @property
    def max_cell_side_m(self) -> float:
        return self.max_cell_side_km * 1000.0

    def validate(self) -> None:
        """Validate configuration parameters"""
        if not self.base_url:
            raise ValueError("Overpass base URL must be set")
        if self.min_request_interval_ms < 0:
            raise ValueError("Minimum request interval cannot be negative")
        if self.request_timeout_ms <= 0:
            raise ValueError("Request timeout must be positive")
        if self.max_retries < 1:
            raise ValueError("At least one request attempt is required")
        if self.retry_backoff_ms < 0:
            raise ValueError("Retry backoff cannot be negative")
        if self.max_cell_area_m2 <= 0 or self.max_cell_side_km <= 0:
            raise ValueError("Cell ceilings must be positive")
        if self.min_segment_length_m < 0:
            raise ValueError("Minimum segment length cannot be negative")
        if self.nearby_roads_limit <= 0:
            raise ValueError("Nearby roads limit must be positive")
