import os
import logging
from dotenv import load_dotenv
from typing import Dict, Any, List

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

RETRIEVAL_MODES = ("keyword", "full")
DEFAULT_MODELS = "meta-llama/llama-3.3-70b-instruct:free"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENAI_DEFAULT_MODELS = "gpt-4"


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """Central configuration class for all application settings."""

    _instance = None

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            cls._instance = super(Config, cls).__new__(cls, *args, **kwargs)
        return cls._instance

    def __init__(self):
        # Re-read the environment every time so tests can patch it
        self._load_shopify_config()
        self._load_completion_config()
        self._load_assistant_config()
        self._load_app_config()

        # Validate configurations (warn only; components degrade on their own)
        self._validate_shopify_config()
        self._validate_completion_config()
        self._validate_assistant_config()

        # Add direct attributes for frequently accessed credentials
        self.SHOPIFY_DOMAIN = self.SHOPIFY["domain"]
        self.SHOPIFY_TOKEN = self.SHOPIFY["storefront_token"]
        self.COMPLETION_API_KEY = self.COMPLETION["api_key"]

    # ---------------------------------------------------------------------
    # Shopify Storefront Configuration
    # ---------------------------------------------------------------------
    def _load_shopify_config(self):
        self.SHOPIFY: Dict[str, Any] = {
            "domain": os.getenv("SHOPIFY_DOMAIN"),
            "storefront_token": os.getenv("SHOPIFY_STOREFRONT_TOKEN"),
            "api_version": os.getenv("SHOPIFY_API_VERSION", "2024-01"),
            "page_size": int(os.getenv("SHOPIFY_PAGE_SIZE", "250")),
            "refresh_interval": float(os.getenv("CATALOG_REFRESH_HOURS", "6")) * 60 * 60,
            "timeout": float(os.getenv("SHOPIFY_TIMEOUT", "15")),
        }

    # ---------------------------------------------------------------------
    # Completion Provider Configuration (OpenRouter / OpenAI compatible)
    # ---------------------------------------------------------------------
    def _load_completion_config(self):
        openrouter_key = os.getenv("OPENROUTER_API_KEY")
        openai_key = os.getenv("OPENAI_API_KEY")
        # An OpenAI-only key talks to OpenAI directly
        if openrouter_key or not openai_key:
            base_url, models = OPENROUTER_BASE_URL, DEFAULT_MODELS
        else:
            base_url, models = OPENAI_BASE_URL, OPENAI_DEFAULT_MODELS
        self.COMPLETION: Dict[str, Any] = {
            "api_key": openrouter_key or openai_key,
            "base_url": os.getenv("COMPLETION_BASE_URL", base_url),
            "models": _split_list(os.getenv("COMPLETION_MODELS", models)),
            "timeout": float(os.getenv("COMPLETION_TIMEOUT", "30")),
            "max_retries": int(os.getenv("COMPLETION_MAX_RETRIES", "0")),
            "temperature": float(os.getenv("COMPLETION_TEMPERATURE", "0.7")),
        }

    # ---------------------------------------------------------------------
    # Assistant / Retrieval Settings
    # ---------------------------------------------------------------------
    def _load_assistant_config(self):
        self.ASSISTANT: Dict[str, Any] = {
            "store_name": os.getenv("STORE_NAME", "Resto Supply Hub"),
            "store_url": os.getenv("STORE_URL", "https://www.restosupplyhub.com").rstrip("/"),
            "retrieval_mode": os.getenv("RETRIEVAL_MODE", "keyword").lower(),
            "match_limit": int(os.getenv("MATCH_LIMIT", "8")),
            "full_catalog_limit": int(os.getenv("FULL_CATALOG_LIMIT", "200")),
            "query_words": int(os.getenv("QUERY_WORDS", "3")),
            "link_style": os.getenv("LINK_STYLE", "markdown").lower(),
            "store_info_path": os.getenv("STORE_INFO_PATH", "config/store_info.json"),
        }

    # ---------------------------------------------------------------------
    # Application Settings
    # ---------------------------------------------------------------------
    def _load_app_config(self):
        self.APP: Dict[str, Any] = {
            "debug": os.getenv("DEBUG", "False").lower() == "true",
            "port": int(os.getenv("PORT", "3000")),
            "cors_origins": _split_list(os.getenv("CORS_ORIGINS", "*")),
            "log_dir": os.getenv("LOG_DIR", "logs"),
        }

    # ---------------------------------------------------------------------
    # Validation Methods
    # ---------------------------------------------------------------------
    def _validate_shopify_config(self):
        """Warn when the catalog provider is not configured."""
        if not self.SHOPIFY["domain"] or not self.SHOPIFY["storefront_token"]:
            logging.warning("Shopify storefront credentials are missing; catalog sync will be skipped.")

    def _validate_completion_config(self):
        """Warn when no completion API key or model is configured."""
        if not self.COMPLETION["api_key"]:
            logging.warning("Completion API key is missing; /chat will answer with a configuration error.")
        if not self.COMPLETION["models"]:
            logging.warning("COMPLETION_MODELS is empty; no completion backend can be tried.")

    def _validate_assistant_config(self):
        """Fall back to keyword retrieval on an unknown mode."""
        if self.ASSISTANT["retrieval_mode"] not in RETRIEVAL_MODES:
            logging.warning(
                "Unknown RETRIEVAL_MODE %r; using 'keyword'.", self.ASSISTANT["retrieval_mode"]
            )
            self.ASSISTANT["retrieval_mode"] = "keyword"

    # ---------------------------------------------------------------------
    # Logging Configuration
    # ---------------------------------------------------------------------
    def log_configuration(self):
        """Log the loaded configuration for debugging purposes (secrets masked)."""
        logging.info("Configuration loaded successfully.")
        shopify = dict(self.SHOPIFY, storefront_token="***" if self.SHOPIFY["storefront_token"] else None)
        completion = dict(self.COMPLETION, api_key="***" if self.COMPLETION["api_key"] else None)
        logging.debug(f"Shopify Config: {shopify}")
        logging.debug(f"Completion Config: {completion}")
        logging.debug(f"Assistant Config: {self.ASSISTANT}")
        logging.debug(f"App Settings: {self.APP}")

# ---------------------------------------------------------------------
# Singleton Configuration Instance
# ---------------------------------------------------------------------
config = Config()
config.log_configuration()
