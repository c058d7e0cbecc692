"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Logging
    log_level: str = "INFO"

    # Scraping provider (Apify)
    apify_token: Optional[str] = None
    apify_base_url: str = "https://api.apify.com"
    apify_request_timeout_seconds: float = 90.0
    profile_actor_id: str = "apify/instagram-profile-scraper"
    comments_actor_id: str = "apify/instagram-comment-scraper"
    profile_posts_limit: int = 10
    comments_limit: int = 200
    profile_post_comments_limit: int = 1000

    # Language model (OpenAI)
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    # Job store: "memory", "local" or "supabase"
    job_store: str = "memory"
    job_store_dir: str = "/tmp/instalens"
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_jobs_bucket: str = "instagram-scrape-jobs"

    # Job retention / sweep
    job_retention_minutes: int = 60
    job_sweep_interval_minutes: int = 10

    # Dispatch: "sync", "background" or "callback"
    dispatch_mode: str = "background"
    max_concurrent_scrapes: int = 2
    sync_scrape_timeout_seconds: float = 25.0

    # Callback dispatch (only when dispatch_mode=callback)
    scrape_worker_url: Optional[str] = None
    public_base_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    webhook_delivery_attempts: int = 3

    # Access gate
    access_code: Optional[str] = None

    # Server
    port: int = 8000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
