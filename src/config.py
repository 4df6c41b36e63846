"""
Configuration settings for the application.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Redis / promotion catalog settings
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    PROMOTION_CATALOG_KEY: str = os.getenv(
        "PROMOTION_CATALOG_KEY",
        "promotions:catalog",
    )

    # Storefront assets
    ASSET_BASE_URL: str = os.getenv("ASSET_BASE_URL", "")
    PLACEHOLDER_IMAGE_URL: str = os.getenv("PLACEHOLDER_IMAGE_URL", "/placeholder.png")

    # Pricing display
    MAX_INSTALLMENTS: int = int(os.getenv("MAX_INSTALLMENTS", "12"))

    @property
    def is_production(self) -> bool:
        """
        Check if running in production environment.
        """
        return self.ENVIRONMENT.lower() == "production"

    @property
    def asset_base_url(self) -> str:
        """Asset prefix without trailing slashes."""
        return self.ASSET_BASE_URL.rstrip("/")

    def __init__(self):
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(level=self.log_level)
        self.logger = logging.getLogger(__name__)

        self.logger.debug(
            f"Settings loaded for {self.ENVIRONMENT} "
            f"(catalog key {self.PROMOTION_CATALOG_KEY}, log_level={self.log_level})"
        )


# Create a global settings instance for import
settings = Settings()
