"""
Configuration management for the BrandBuddy analytics backend
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "BrandBuddy Operations API"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4

    # Tenant (applied as upstream query param and in-memory filter)
    tenant_brand: str = "Callahan-Smith"

    # Products feed
    tinybird_base_url: Optional[str] = None
    tinybird_token: Optional[str] = None

    # Shipments feed
    warehouse_base_url: Optional[str] = None
    warehouse_token: Optional[str] = None

    # Sales history view (per-item explainers only)
    orders_base_url: Optional[str] = None
    orders_token: Optional[str] = None

    # Feed paging
    dashboard_feed_limit: int = 150
    page_feed_limit: int = 1000
    insights_feed_limit: int = 100
    sales_history_limit: int = 20

    # Feed client
    feed_cache_seconds: int = 0  # 0 = no caching between requests

    # LLM Configuration
    openai_api_key: Optional[str] = None
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"
    ai_model_fast: str = "gpt-3.5-turbo"
    ai_model_advanced: str = "gpt-4"
    enable_llm_insights: bool = True
    llm_timeout_seconds: float = 25.0

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
