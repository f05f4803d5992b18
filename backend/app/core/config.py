from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings

DEFAULT_RECIPE_IMAGE = "https://images.unsplash.com/photo-1546069901-ba9599a7e63c?w=400&h=300&fit=crop"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    max_tokens: int = 4096

    # Retry policy for failed extraction attempts (seconds between attempts)
    max_retries: int = 3
    retry_delays: List[float] = [5.0, 30.0, 120.0]

    # recipeData is kept on the analysis at or above this confidence
    recipe_confidence_threshold: float = 0.7
    # recipes are created automatically at or above this confidence
    recipe_creation_threshold: float = 0.8

    max_html_input_chars: int = 120_000
    max_file_size: int = 10 * 1024 * 1024
    url_fetch_timeout: float = 20.0

    default_recipe_image: str = DEFAULT_RECIPE_IMAGE
    default_meal_type: str = "lunch"
    storage_base_url: str = "http://localhost:8000/storage"

    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_prefix": "",
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
