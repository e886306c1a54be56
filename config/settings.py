"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # JSON or CSV export of the deals table
    deals_file: str = "data/sample_deals.json"

    # Forecasting
    default_months_to_forecast: int = 6

    # API
    cors_origins: str = "*"  # comma-separated


settings = Settings()
