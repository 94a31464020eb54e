"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App settings
    app_name: str = "Label Verification API"
    debug: bool = False

    # CORS - Allow all origins for prototype (restrict in production)
    cors_origins: list[str] = ["*"]

    # Vision-language model access (OpenAI-compatible endpoint)
    openai_endpoint: str | None = None
    openai_api_key: str | None = None
    openai_deployment: str | None = None
    # Comma-separated fallback list, in priority order. Wins over openai_deployment.
    openai_deployments: str | None = None
    openai_timeout_seconds: float = 60.0

    # Rate-limit fallback and backoff
    rate_limit_max_retries: int = 6
    rate_limit_initial_delay_seconds: float = 1.0
    rate_limit_max_delay_seconds: float = 16.0
    content_policy_retry_delay_seconds: float = 0.3

    # Independent extraction attempts per image
    extraction_attempts: int = 2

    # Image preparation
    max_upload_size_mb: int = 15
    allowed_mime_types: set[str] = {
        "image/jpeg", "image/png", "image/webp", "image/gif", "image/bmp", "image/tiff",
    }
    image_max_width: int = 1600
    jpeg_quality: int = 70

    # Deterministic comparator thresholds
    text_match_threshold: float = 0.85
    text_review_threshold: float = 0.6
    abv_match_tolerance: float = 0.1
    abv_review_tolerance: float = 1.0
    net_contents_match_tolerance: float = 0.1
    net_contents_review_ratio: float = 0.05
    country_review_threshold: float = 0.9

    # Batch processing
    max_batch_size: int = 50
    batch_parallel_limit: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def model_deployments(self) -> list[str]:
        """Model identifiers in fallback order (primary first)."""
        if self.openai_deployments:
            return [d.strip() for d in self.openai_deployments.split(",") if d.strip()]
        if self.openai_deployment:
            return [self.openai_deployment.strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
