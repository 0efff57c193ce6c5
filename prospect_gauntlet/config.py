"""Configuration loader for the prospect gauntlet."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


class Config:
    """Configuration container loaded from environment variables."""

    def __init__(self):
        """Load configuration from .env file and environment."""
        # Load .env file from project root
        load_dotenv()

        # Planning Data API (national register)
        self.planning_data_api_base_url: str = os.getenv(
            "PLANNING_DATA_API_BASE_URL", "https://www.planning.data.gov.uk"
        )
        self.planning_data_api_rate_limit: int = int(
            os.getenv("PLANNING_DATA_API_RATE_LIMIT", "30")
        )

        # London Planning Datahub
        self.london_datahub_base_url: str = os.getenv(
            "LONDON_DATAHUB_BASE_URL", "https://planningdata.london.gov.uk/api-guest"
        )
        self.london_datahub_allow_header: str = os.getenv(
            "LONDON_DATAHUB_ALLOW_HEADER", "be2rmRnt&"
        )
        self.london_datahub_rate_limit: int = int(
            os.getenv("LONDON_DATAHUB_RATE_LIMIT", "30")
        )

        # HM Land Registry - Use Land & Property Data
        self.land_property_api_base_url: str = os.getenv(
            "LAND_PROPERTY_API_BASE_URL",
            "https://use-land-property-data.service.gov.uk",
        )
        self.land_property_api_key: Optional[str] = os.getenv("LAND_PROPERTY_API_KEY")
        self.land_property_api_rate_limit: int = int(
            os.getenv("LAND_PROPERTY_API_RATE_LIMIT", "60")
        )

        # Shared registry behaviour
        self.registry_timeout_seconds: float = float(
            os.getenv("REGISTRY_TIMEOUT_SECONDS", "30")
        )
        # Upper bound on one adapter search, which may span several requests
        self.registry_call_timeout_seconds: float = float(
            os.getenv("REGISTRY_CALL_TIMEOUT_SECONDS", "120")
        )
        self.registry_result_limit: int = int(
            os.getenv("REGISTRY_RESULT_LIMIT", "100")
        )
        self.person_search_concurrency: int = int(
            os.getenv("PERSON_SEARCH_CONCURRENCY", "1")
        )

        # Scoring
        self.score_lookback_months: int = int(
            os.getenv("SCORE_LOOKBACK_MONTHS", "24")
        )

        # Refresh scheduler
        self.refresh_days_old: int = int(os.getenv("REFRESH_DAYS_OLD", "7"))
        self.refresh_batch_limit: int = int(os.getenv("REFRESH_BATCH_LIMIT", "50"))
        self.refresh_dispatch_delay_ms: int = int(
            os.getenv("REFRESH_DISPATCH_DELAY_MS", "100")
        )

        # File paths
        self.database_path: Path = Path(
            os.getenv("DATABASE_PATH", "data/prospects.db")
        )
        self.output_dir: Path = Path(os.getenv("OUTPUT_DIR", "output"))
        self.companies_file: Path = Path(
            os.getenv("COMPANIES_FILE", "data/companies.xlsx")
        )

        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")

        self._validate()

    def require(self, key: str) -> str:
        """Get required environment variable or raise error."""
        value = os.getenv(key)
        if not value:
            raise ValueError(
                f"Required environment variable {key} is not set. "
                f"Copy .env.example to .env and configure."
            )
        return value

    def _validate(self):
        """Validate configuration."""
        for name in (
            "planning_data_api_rate_limit",
            "london_datahub_rate_limit",
            "land_property_api_rate_limit",
            "person_search_concurrency",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")

        if self.registry_timeout_seconds <= 0 or self.registry_call_timeout_seconds <= 0:
            raise ValueError("Registry timeouts must be positive")


# Global config instance
config = Config()
