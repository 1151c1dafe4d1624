# price_aggregator/config/settings.py

"""Central configuration for the price aggregator."""

import logging
import os
from pathlib import Path
from typing import Any

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("price_aggregator.config")


def _env_number(
    name: str,
    default: int | float,
    cast: type = int,
    minimum: float = 0,
    inclusive: bool = True,
) -> Any:
    """Read a numeric env var, falling back to *default* when unusable.

    A value that does not parse, or falls below *minimum* (or equals it
    when *inclusive* is False), is logged and replaced by the default.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning(
            "Ignoring %s=%r: not a valid %s, using %s",
            name, raw, cast.__name__, default,
        )
        return default
    too_small = value < minimum if inclusive else value <= minimum
    if too_small or value != value:
        logger.warning(
            "Ignoring %s=%r: out of range, using %s", name, raw, default,
        )
        return default
    return value


class Settings:
    """Central configuration for the price aggregator."""

    # --- Scheduling ---
    FETCH_INTERVAL_MS: int = _env_number(
        "DATA_FETCH_INTERVAL", 300000, inclusive=False,
    )                                   # Milliseconds between cycles

    # --- Fetching ---
    MAX_ATTEMPTS: int = _env_number(
        "FETCH_MAX_ATTEMPTS", 3, minimum=1,
    )                                   # Attempts per source per cycle
    BASE_DELAY_MS: int = _env_number(
        "FETCH_BASE_DELAY_MS", 1000,
    )                                   # Linear backoff step
    SOURCE_TIMEOUT: float = _env_number(
        "SOURCE_TIMEOUT", 10.0, cast=float, inclusive=False,
    )                                   # Seconds before an attempt times out
    SLOW_SOURCE_MS: float = 5000.0      # Health check "slow" threshold

    # --- HTTP sources ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json",
        "Accept-Language": "en-US,en;q=0.9",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    CATALOG_DB_PATH: Path = Path(
        os.getenv(
            "CATALOG_DB_PATH",
            str(BASE_DIR / "data" / "catalog.db"),
        )
    )
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Sources (fetched and normalised in this order) ---
    AVAILABLE_SOURCES: list[dict[str, Any]] = [
        {
            "id": "provider1",
            "label": "Provider 1",
            "source": "price_aggregator.sources.mock_source.MockSource",
            "options": {"provider": "Provider 1"},
        },
        {
            "id": "provider2",
            "label": "Provider 2",
            "source": "price_aggregator.sources.mock_source.MockSource",
            "options": {"provider": "Provider 2"},
        },
        {
            "id": "provider3",
            "label": "Provider 3",
            "source": "price_aggregator.sources.mock_source.MockSource",
            "options": {"provider": "Provider 3"},
        },
    ]
