from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "env_prefix": "",
        "case_sensitive": False,
    }

    # Credentials
    gemini_api_key: str = ""
    discogs_token: str = ""

    # Discogs
    discogs_base_url: str = "https://api.discogs.com"
    discogs_user_agent: str = "VinylScout/1.0"
    discogs_timeout_seconds: float = 15.0

    # Shelf scan: ordered fallback, both models get a chance inside the budget
    scan_models: list[str] = ["gemini-2.0-flash", "gemini-3-flash-preview"]
    scan_attempt_timeout_seconds: float = 25.0
    scan_total_budget_seconds: float = 55.0
    image_fetch_timeout_seconds: float = 20.0

    # Text features (intent analysis, smart recommendation)
    intent_models: list[str] = ["gemini-2.0-flash"]
    recommend_models: list[str] = ["gemini-2.0-flash"]
    text_attempt_timeout_seconds: float = 20.0
    text_total_budget_seconds: float = 40.0

    # App
    environment: str = "development"
    log_level: str = "INFO"
    log_file: str = ""


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings object."""
    return settings
