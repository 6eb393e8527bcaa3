"""Configuration management."""

import logging
from typing import List

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

from .domain.models import User


class Settings(BaseSettings):
    """Application settings."""

    # Auth
    jwt_secret: str = "nexthire-dev-secret"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 30

    # Server
    host: str = "0.0.0.0"
    port: int = 5000
    client_url: str = "http://localhost:3000"  # CORS origin
    api_prefix: str = "/api/chat"
    log_level: str = "INFO"

    # Messages
    max_content_length: int = 1000
    default_page_size: int = 50
    max_page_size: int = 100
    allow_self_messages: bool = False

    # Users known to the in-memory directory at startup, as JSON
    seed_users: List[User] = []

    model_config = SettingsConfigDict(
        env_prefix="NEXTHIRE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


def configure_logging(level: str = "INFO") -> None:
    """Set up structlog with a level filter."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=False,
    )
