"""Supabase client for the job bucket (service role, server side only)."""

import logging

from supabase import create_client, Client
from instalens.config import settings

logger = logging.getLogger(__name__)

_client: Client | None = None


def get_supabase() -> Client:
    """Get or create the service-role client. Job records are never exposed
    to browsers, so the anon key is not used."""
    global _client
    if _client is None:
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError(
                "JOB_STORE=supabase needs SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
            )
        _client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        logger.info("Connected to Supabase at %s", settings.supabase_url)
    return _client


def ensure_private_bucket(client, bucket: str) -> None:
    """Create ``bucket`` as a private bucket unless it already exists."""
    try:
        client.storage.get_bucket(bucket)
        return
    except Exception:
        logger.info("Storage bucket %s not found, creating it", bucket)

    try:
        client.storage.create_bucket(bucket, options={"public": False})
    except Exception as exc:
        # Another instance may have created it in the meantime
        logger.warning("Could not create storage bucket %s: %s", bucket, exc)
