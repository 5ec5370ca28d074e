"""
MindForge Application Configuration
===================================

PURPOSE:
    Pydantic-Settings based configuration for the MindForge backend.
    All settings can be overridden via environment variables (MINDFORGE_ prefix).

GROUPS:
    application, data, authentication (Clerk), LLM task routing,
    free-tier metering, billing (Stripe).
"""

import logging
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime settings, resolved once at import time."""

    app_name: str = "MindForge"
    debug: bool = False  # Default OFF for production safety

    # Public URL of the web app, used for checkout/portal return URLs
    app_url: str = "http://localhost:3000"

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Data
    data_directory: str = "./data"
    log_dir: str = "./logs"

    # Authentication (Clerk session JWTs)
    auth_enabled: bool = True  # Set MINDFORGE_AUTH_ENABLED=false only for local dev.
    auth_cache_ttl: int = 300  # 5 minutes in seconds
    clerk_jwks_url: Optional[str] = None  # e.g. https://<instance>.clerk.accounts.dev/.well-known/jwks.json
    clerk_issuer: Optional[str] = None
    clerk_webhook_secret: Optional[str] = None  # whsec_...

    # LLM credentials
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    llm_timeout_s: float = 300.0  # generation endpoints may take minutes

    # LLM task routing: mindmaps and recommendations on OpenAI, documents and code on Anthropic
    mindmap_provider: Literal["openai", "anthropic"] = "openai"
    mindmap_model: str = "gpt-4o-mini"
    mindmap_temperature: float = 0.7
    mindmap_max_tokens: int = 1500

    decision_tree_model: str = "gpt-4o"
    decision_tree_max_tokens: int = 3000

    recommendations_model: str = "gpt-4o-mini"

    prd_provider: Literal["openai", "anthropic"] = "anthropic"
    prd_model: str = "claude-sonnet-4-20250514"
    prd_max_tokens: int = 4096
    project_prd_max_tokens: int = 16000

    code_provider: Literal["openai", "anthropic"] = "anthropic"
    code_model: str = "claude-sonnet-4-5-20250929"
    code_max_tokens: int = 16000
    code_temperature: float = 0.3

    chat_model: str = "claude-sonnet-4-20250514"
    chat_max_tokens: int = 2048

    # Metering
    free_tier_mindmap_limit: int = 3
    monthly_prd_limit: int = 20  # display only
    monthly_code_gen_limit: int = 10  # display only

    # Billing (Stripe)
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_monthly: Optional[str] = None
    stripe_price_yearly: Optional[str] = None

    class Config:
        env_file = ".env"
        env_prefix = "MINDFORGE_"


settings = Settings()
