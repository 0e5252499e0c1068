"""Engine configuration — reads settings from environment variables.

All settings have sensible defaults for local development and tests.
Deployments override them via ``IMNCI_*`` env vars.
"""

import logging
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class EngineSettings:
    """Immutable engine configuration read from environment at startup."""

    # Alternative YAML definition (None -> the bundled rules/imnci_skills.yaml)
    checklist_path: str | None = None

    # Raise on score invariant violations instead of logging them.
    # Keep this on in tests and development builds.
    strict_scores: bool = True

    # Logging
    log_level: str = "INFO"


def load_settings() -> EngineSettings:
    """Build settings from ``IMNCI_*`` environment variables."""
    return EngineSettings(
        checklist_path=os.getenv("IMNCI_CHECKLIST_PATH") or None,
        strict_scores=os.getenv("IMNCI_STRICT_SCORES", "1").strip() not in ("0", "false", "no"),
        log_level=os.getenv("IMNCI_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(settings: EngineSettings | None = None) -> None:
    """Configure root logging for scripts and host applications.

    Library modules only create loggers; the embedding application calls
    this once at startup.
    """
    if settings is None:
        settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
