"""Environment-driven configuration."""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from green_rewards.types import EngineConfig

# Load environment variables from .env file
load_dotenv()

_config: Optional[EngineConfig] = None


def load_config() -> EngineConfig:
    """Build a fresh config from the environment."""
    return EngineConfig(
        database_url=os.getenv('DATABASE_URL', 'sqlite:///./green_rewards.db'),
        gemini_api_key=os.getenv('GEMINI_API_KEY') or os.getenv('GOOGLE_GENAI_API_KEY'),
        gemini_model=os.getenv('GEMINI_MODEL', 'gemini-2.5-flash'),
        groq_api_key=os.getenv('GROQ_API_KEY') or os.getenv('GROQ_CLOUD_API'),
        oracle_timeout_seconds=float(os.getenv('ORACLE_TIMEOUT_SECONDS', '30')),
        oracle_max_retries=int(os.getenv('ORACLE_MAX_RETRIES', '3')),
        webhook_secret=os.getenv('SHA_WEBHOOK_SECRET') or None,
        reward_timezone=os.getenv('REWARD_TIMEZONE', 'Asia/Jakarta'),
        media_dir=Path(os.getenv('MEDIA_DIR', './media')),
        output_dir=Path(os.getenv('OUTPUT_DIR', './outputs')),
        log_level=os.getenv('LOG_LEVEL', 'INFO'),
    )


def get_config() -> EngineConfig:
    """Get or create the process-wide configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """Drop the cached configuration (for testing)."""
    global _config
    _config = None
