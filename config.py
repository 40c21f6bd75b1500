import os
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("codecraft")

DEFAULT_MODELS = [
    "anthropic/claude-3.5-sonnet",
    "openai/gpt-4o",
    "google/gemini-pro-1.5",
    "meta-llama/llama-3.1-70b-instruct",
]
FALLBACK_MODEL = "openai/gpt-3.5-turbo"


def _split_models(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [m.strip() for m in value.split(",") if m.strip()]


class Settings(BaseModel):
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    # None keeps the transport default (no timeout)
    openrouter_timeout: Optional[float] = None
    site_url: str = "http://localhost:3000"
    app_title: str = "CodeCraft AI"
    default_models: List[str] = Field(default_factory=lambda: list(DEFAULT_MODELS))
    allowed_models: List[str] = Field(default_factory=lambda: list(DEFAULT_MODELS) + [FALLBACK_MODEL])
    fallback_model: str = FALLBACK_MODEL
    image_model: str = "stability/stable-diffusion-xl"
    github_api_url: str = "https://api.github.com"
    deploy_delay: float = 3.0
    data_dir: str = "data"
    log_level: str = "INFO"


def load_settings(environ: Optional[Dict[str, str]] = None) -> Settings:
    """Build Settings from environment variables.

    Secrets are only read from the environment, never from the repo.
    """
    env = os.environ if environ is None else environ
    values = {}

    key = env.get("OPENROUTER_API_KEY") or env.get("OPENROUTER_KEY")
    if key:
        values["openrouter_api_key"] = key
    else:
        logger.warning("OPENROUTER_API_KEY not set. Chat calls need an x-openrouter-key header.")

    if env.get("OPENROUTER_BASE_URL"):
        values["openrouter_base_url"] = env["OPENROUTER_BASE_URL"].rstrip("/")
    if env.get("OPENROUTER_TIMEOUT"):
        values["openrouter_timeout"] = float(env["OPENROUTER_TIMEOUT"])
    if env.get("SITE_URL"):
        values["site_url"] = env["SITE_URL"]
    if env.get("APP_TITLE"):
        values["app_title"] = env["APP_TITLE"]

    models = _split_models(env.get("CHAT_MODELS"))
    if models:
        values["default_models"] = models
    allowed = _split_models(env.get("CHAT_ALLOWED_MODELS"))
    if allowed:
        values["allowed_models"] = allowed
    if env.get("CHAT_FALLBACK_MODEL"):
        values["fallback_model"] = env["CHAT_FALLBACK_MODEL"]
    if env.get("IMAGE_MODEL"):
        values["image_model"] = env["IMAGE_MODEL"]

    if env.get("GITHUB_API_URL"):
        values["github_api_url"] = env["GITHUB_API_URL"].rstrip("/")
    if env.get("DEPLOY_DELAY_SECONDS"):
        values["deploy_delay"] = float(env["DEPLOY_DELAY_SECONDS"])
    if env.get("DATA_DIR"):
        values["data_dir"] = env["DATA_DIR"]
    if env.get("LOG_LEVEL"):
        values["log_level"] = env["LOG_LEVEL"].upper()

    return Settings(**values)
