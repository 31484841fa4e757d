"""Application settings and configuration"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "App Catalog Crawler"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database (required at process start, see create_session_factory)
    DATABASE_URL: Optional[str] = None

    # GitHub API
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_PER_PAGE: int = 100

    # Vercel API
    VERCEL_TOKEN: Optional[str] = None
    VERCEL_TEAM: Optional[str] = None
    VERCEL_API_URL: str = "https://api.vercel.com"
    VERCEL_PAGE_LIMIT: int = 100

    # Crawling settings
    MAX_CONCURRENT_REQUESTS: int = 5
    HTTP_TIMEOUT_SECONDS: float = 20.0
    PROJECT_TIMEOUT_SECONDS: float = 60.0
    USER_AGENT: str = "AppCatalogCrawler/1.0"

    # Activity
    ACTIVITY_WINDOW_DAYS: int = 365
    COMMIT_REINGEST_POLICY: str = "preserve"  # "preserve" or "refresh"
    DEPLOYMENT_REINGEST_POLICY: str = "refresh"

    # Scanner
    MANIFEST_OVERRIDE_FILE: str = ".catalog.json"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()
