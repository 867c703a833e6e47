"""
condo_config -- single public entrypoint for condominium settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``: house bounds, matching thresholds, batch
    chunk size and the fallback charge amounts.

Architecture position:
    Configuration -- YAML-driven settings.  This package sits above
    ``condo_kernel`` and ``condo_engines`` and below ``condo_services``
    callers.  The kernel MUST NEVER import from ``condo_config``; bridges in
    this package translate settings into kernel-compatible inputs.

Invariants enforced:
    - Single entrypoint: all runtime settings flow through
      ``get_active_settings()``.
    - Deterministic checksum: the same YAML always yields the same
      ``CondoSettings.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every successful ``get_active_settings()`` call emits a
    ``CONDO_CONFIG_TRACE`` log entry with the settings name, version and
    checksum, tying each reconciliation run to the thresholds it used.
"""

from __future__ import annotations

import logging
from pathlib import Path

from condo_config.loader import load_settings
from condo_config.schema import (
    CondoSettings,
    HouseSettings,
    PaymentDefaults,
    ReconciliationSettings,
    SystemIds,
)

_logger = logging.getLogger("condo_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_settings(path: Path | None = None) -> CondoSettings:
    """The ONLY public settings entrypoint.

    Args:
        path: Override settings file.  Defaults to condo_config/defaults.yaml.
    """
    settings_path = path or DEFAULT_SETTINGS_PATH
    settings = load_settings(settings_path)

    _logger.info(
        "CONDO_CONFIG_TRACE",
        extra={
            "trace_type": "CONDO_CONFIG_TRACE",
            "settings_name": settings.name,
            "settings_version": settings.version,
            "checksum": settings.checksum,
            "source": str(settings_path),
            "house_range": f"{settings.houses.min_number}-{settings.houses.max_number}",
        },
    )
    return settings


__all__ = [
    "CondoSettings",
    "DEFAULT_SETTINGS_PATH",
    "HouseSettings",
    "PaymentDefaults",
    "ReconciliationSettings",
    "SystemIds",
    "get_active_settings",
]
