"""
Survey Configuration Loader

This module loads the questionnaire definition from the shared JSON file and
the runtime settings from environment variables. The questionnaire file is
located at config/survey.json and is shared between the backend and the
questionnaire client.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Get the project root directory (parent of the package directory)
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_PATH = Path(os.getenv("SURVEY_CONFIG_PATH", PROJECT_ROOT / "config" / "survey.json"))

DEFAULT_MAIL_API_URL = "https://api.resend.com/emails"


def load_config(path=None):
    """
    Load survey configuration from JSON file.

    Returns:
        dict: Survey configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        json.JSONDecodeError: If config file is invalid JSON
    """
    config_path = Path(path) if path else CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found at {config_path}. "
            "Please ensure config/survey.json exists or set SURVEY_CONFIG_PATH."
        )

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    return config


class Settings(BaseModel):
    """Runtime settings for the service, read from the environment."""
    data_dir: Path = PROJECT_ROOT / "data"
    database_url: Optional[str] = None
    mail_api_url: str = DEFAULT_MAIL_API_URL
    mail_api_key: Optional[str] = None
    mail_from: Optional[str] = None
    notify_email: Optional[str] = None
    port: int = 3000

    @property
    def responses_file(self) -> Path:
        return self.data_dir / "responses.json"

    @property
    def emails_file(self) -> Path:
        return self.data_dir / "emails.json"

    @property
    def mail_configured(self) -> bool:
        return bool(self.mail_api_key and self.mail_from)

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            data_dir=Path(os.getenv("SURVEY_DATA_DIR", PROJECT_ROOT / "data")),
            database_url=os.getenv("DATABASE_URL") or None,
            mail_api_url=os.getenv("MAIL_API_URL", DEFAULT_MAIL_API_URL),
            mail_api_key=os.getenv("MAIL_API_KEY") or None,
            mail_from=os.getenv("MAIL_FROM") or None,
            notify_email=os.getenv("NOTIFY_EMAIL") or None,
            port=int(os.getenv("PORT", "3000")),
        )

        if not settings.mail_api_key:
            logger.warning("MAIL_API_KEY not set in environment variables; email is disabled")
        if not settings.notify_email:
            logger.warning("NOTIFY_EMAIL not set in environment variables; submission summaries are not sent")

        return settings


# Load configuration on module import
SURVEY_CONFIG = load_config()
