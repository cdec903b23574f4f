"""Startup-time helpers for safe config logging."""

from marketplace.common.config import settings
from marketplace.common.logging import logger

_SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN")


def _safe_value(name: str, value) -> str:
    """Render one effective setting, hiding secrets and DSN credentials."""

    if value is None:
        return "<unset>"
    if any(marker in name for marker in _SECRET_MARKERS):
        return "<redacted>"
    text = str(value)
    if name.endswith("_URL") and "@" in text:
        scheme, _, rest = text.partition("://")
        return f"{scheme}://<redacted>@{rest.rsplit('@', 1)[1]}"
    return text


def log_startup_config(service_name: str, keys: list[str]) -> dict[str, str]:
    """Log the effective value of each named setting (env var name, e.g. `DATABASE_URL`)."""

    config = {"service": service_name}
    for key in keys:
        config[key] = _safe_value(key, getattr(settings, key.lower(), None))
    logger.info("startup_config=%s", config)
    return config
