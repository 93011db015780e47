"""
Newsletter Service Configuration

Centralized configuration management for the API and the delivery workers.
"""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class ServiceConfig:
    """Configuration for the newsletter service."""

    def __init__(self):
        # Server settings
        self.API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
        self.API_PORT: int = int(os.getenv("API_PORT", "8000"))
        self.APP_VERSION: str = os.getenv("APP_VERSION", "1.0.0")
        self.AUTH_REQUIRED: bool = _env_bool("AUTH_REQUIRED", "false")

        # Logging / observability
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
        self.LOG_STRUCTURED: bool = _env_bool("LOG_STRUCTURED", "true")
        self.OTEL_ENABLED: bool = _env_bool("OTEL_ENABLED", "false")
        self.OTEL_EXPORTER_OTLP_ENDPOINT: str = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")
        self.OTEL_CONSOLE_EXPORT: bool = _env_bool("OTEL_CONSOLE_EXPORT", "false")

        # Mail transport
        self.EMAIL_BASE_URL: str = os.getenv("EMAIL_BASE_URL", "http://localhost:8025")
        self.EMAIL_SENDER: str = os.getenv("EMAIL_SENDER", "newsletter@example.com")
        self.EMAIL_AUTH_TOKEN: str = os.getenv("EMAIL_AUTH_TOKEN", "")
        self.EMAIL_TIMEOUT_SECONDS: float = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))

        # Delivery workers
        self.DELIVERY_ENABLED: bool = _env_bool("DELIVERY_ENABLED", "true")
        self.DELIVERY_WORKERS: int = int(os.getenv("DELIVERY_WORKERS", "2"))
        self.DELIVERY_BATCH_SIZE: int = int(os.getenv("DELIVERY_BATCH_SIZE", "10"))
        self.DELIVERY_IDLE_INTERVAL: float = float(os.getenv("DELIVERY_IDLE_INTERVAL", "10"))
        self.DELIVERY_ERROR_INTERVAL: float = float(os.getenv("DELIVERY_ERROR_INTERVAL", "1"))
        self.DELIVERY_MAX_ATTEMPTS: int = int(os.getenv("DELIVERY_MAX_ATTEMPTS", "5"))
        self.DELIVERY_BASE_DELAY: float = float(os.getenv("DELIVERY_BASE_DELAY", "5"))
        self.DELIVERY_MAX_DELAY: float = float(os.getenv("DELIVERY_MAX_DELAY", "300"))
        self.DELIVERY_JITTER_RATIO: float = float(os.getenv("DELIVERY_JITTER_RATIO", "0.1"))
        self.DELIVERY_LEASE_SECONDS: int = int(os.getenv("DELIVERY_LEASE_SECONDS", "300"))
        self.DELIVERY_SWEEP_INTERVAL: float = float(os.getenv("DELIVERY_SWEEP_INTERVAL", "60"))
        self.DELIVERY_SHUTDOWN_GRACE: float = float(os.getenv("DELIVERY_SHUTDOWN_GRACE", "30"))

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if not self.EMAIL_AUTH_TOKEN:
            issues.append("WARNING: No mail API token configured (EMAIL_AUTH_TOKEN)")

        if self.DELIVERY_MAX_ATTEMPTS < 1:
            issues.append("ERROR: DELIVERY_MAX_ATTEMPTS must be at least 1")

        if self.DELIVERY_BATCH_SIZE < 1:
            issues.append("ERROR: DELIVERY_BATCH_SIZE must be at least 1")

        if self.DELIVERY_LEASE_SECONDS <= self.EMAIL_TIMEOUT_SECONDS * self.DELIVERY_BATCH_SIZE:
            issues.append(
                "WARNING: DELIVERY_LEASE_SECONDS is shorter than a worst-case batch; "
                "claimed tasks may be reclaimed while still being sent"
            )

        return issues


def get_config() -> ServiceConfig:
    """Build a config snapshot from the current environment."""
    return ServiceConfig()
