from typing import List
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """
    Application settings managed by Pydantic.
    Reads from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # App
    DEBUG: bool = Field(default=False, description="Debug mode")
    LOG_FILE: str = Field(default="", description="Optional log file, stdout only when empty")

    # Admin
    ADMIN_KEY: str = Field(default="", description="Shared secret expected in x-admin-key")

    # Storage
    DATA_DIR: str = Field(default="data", description="Directory holding the JSON stores")
    DEALS_FILE_NAME: str = Field(default="deals.json", description="Base name, partitioned per country")
    USERS_FILE_NAME: str = Field(default="users.json", description="Points ledger file")
    LEGACY_DEALS_FILES_STR: str = Field(default="", alias="LEGACY_DEALS_FILES")
    ALLOW_STORE_RESET: bool = Field(default=False, description="Enables the admin wipe endpoint")

    # Moderation
    APPROVAL_POINTS: int = 25
    SUBMIT_RATE_LIMIT: int = 5
    SUBMIT_RATE_WINDOW_SECONDS: int = 600
    DUPLICATE_WINDOW_HOURS: float = 24.0

    # Affiliate
    AMAZON_TAG_CA: str = ""
    AMAZON_TAG_US: str = ""
    EBAY_CAMPAIGN_ID: str = ""
    EBAY_CUSTOM_ID: str = ""

    @computed_field
    def LEGACY_DEALS_FILES(self) -> List[str]:
        """Parses the comma-separated list of legacy single-file stores."""
        if not self.LEGACY_DEALS_FILES_STR:
            return []
        return [p.strip() for p in self.LEGACY_DEALS_FILES_STR.split(',') if p.strip()]

settings = Settings()
