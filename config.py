"""
Config - Environment-driven settings.

Reads a local .env (if any) and falls back to development defaults.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()


@dataclass(frozen=True)
class Settings:
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    key_prefix: str = "insight-map"
    demo_student_id: str = "student-demo"
    demo_student_name: str = "Demo Student"
    default_unit_id: str = "quadratic_function"
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        redis_host=os.getenv("REDIS_HOST", "localhost"),
        redis_port=int(os.getenv("REDIS_PORT", 6379)),
        redis_password=os.getenv("REDIS_PASSWORD", None),
        redis_db=int(os.getenv("REDIS_DB", 0)),
        key_prefix=os.getenv("KEY_PREFIX", "insight-map"),
        demo_student_id=os.getenv("DEMO_STUDENT_ID", "student-demo"),
        demo_student_name=os.getenv("DEMO_STUDENT_NAME", "Demo Student"),
        default_unit_id=os.getenv("DEFAULT_UNIT_ID", "quadratic_function"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_format=os.getenv("LOG_FORMAT", "text").lower(),
    )
