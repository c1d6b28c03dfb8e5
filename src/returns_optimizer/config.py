"""Configuration management for the Return Optimization Engine."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from returns_optimizer.errors import ConfigurationError
from returns_optimizer.models import PricePolicy

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_int(name: str, default: str, minimum: int = 1) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'") from e
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_policy(name: str) -> PricePolicy:
    raw = os.getenv(name, PricePolicy.LATEST.value).strip().lower()
    try:
        return PricePolicy(raw)
    except ValueError as e:
        choices = ", ".join(p.value for p in PricePolicy)
        raise ConfigurationError(f"{name} must be one of: {choices}") from e


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        log_level: Logging verbosity level.
        data_dir: Directory holding CSV/Excel exports of the backing store.
        observation_batch_size: Page size for batched observation reads.
        recommendation_price_policy: Price aggregation for recommendations.
        package_price_policy: Price aggregation for package building.
        availability_filter_enabled: Whether the 30-day availability
            signal is computed (otherwise every distributor is available).
        availability_window_days: Window for the availability signal.
        distributor_match_threshold: Minimum fuzzy score (0-100) when
            resolving report distributor names against the directory.
    """

    log_level: str
    data_dir: Path
    observation_batch_size: int = 1000
    recommendation_price_policy: PricePolicy = PricePolicy.LATEST
    package_price_policy: PricePolicy = PricePolicy.LATEST
    availability_filter_enabled: bool = False
    availability_window_days: int = 30
    distributor_match_threshold: int = 85

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables.

        Returns:
            Settings instance with loaded configuration.

        Raises:
            ConfigurationError: If a numeric or policy variable is invalid.
        """
        load_dotenv()

        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}"
            )
        data_dir = Path(os.getenv("DATA_DIR", "./data/exports"))
        batch_size = _parse_int("OBSERVATION_BATCH_SIZE", "1000")
        availability_enabled = (
            os.getenv("AVAILABILITY_FILTER_ENABLED", "false").lower() == "true"
        )
        window_days = _parse_int("AVAILABILITY_WINDOW_DAYS", "30")
        threshold = _parse_int("DISTRIBUTOR_MATCH_THRESHOLD", "85", minimum=0)
        if threshold > 100:
            raise ConfigurationError(
                f"DISTRIBUTOR_MATCH_THRESHOLD must be <= 100, got {threshold}"
            )

        settings = cls(
            log_level=log_level,
            data_dir=data_dir,
            observation_batch_size=batch_size,
            recommendation_price_policy=_parse_policy("RECOMMENDATION_PRICE_POLICY"),
            package_price_policy=_parse_policy("PACKAGE_PRICE_POLICY"),
            availability_filter_enabled=availability_enabled,
            availability_window_days=window_days,
            distributor_match_threshold=threshold,
        )

        logger.debug(
            f"Loaded settings: log_level={log_level}, data_dir={data_dir}, "
            f"batch_size={batch_size}, availability={availability_enabled}"
        )

        return settings

    def configure_logging(self) -> None:
        """Apply log_level to the root logger."""
        logging.getLogger().setLevel(self.log_level)
        logger.debug(f"Log level set to {self.log_level}")

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured data directory exists: {self.data_dir}")
