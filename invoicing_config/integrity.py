"""
Configuration Integrity -- checksum pinning for approved configs.

When a config set directory contains an APPROVED_CHECKSUM file, the
compiled rule-table checksum must match the pinned value.  This prevents
unreviewed edits to an approved workflow.  Without a pin file the check
is skipped (draft/dev workflow).
"""

from __future__ import annotations

from pathlib import Path

from invoicing_config.loader import ConfigurationError

PINFILE_NAME = "APPROVED_CHECKSUM"


class ConfigIntegrityError(ConfigurationError):
    """Compiled checksum does not match the approved pin."""

    code: str = "CONFIG_INTEGRITY_MISMATCH"

    def __init__(self, config_id: str, expected: str, actual: str, pin_path: Path):
        self.config_id = config_id
        self.expected = expected
        self.actual = actual
        self.pin_path = pin_path
        super().__init__(
            config_id,
            f"pinned checksum {expected[:16]}... != compiled checksum "
            f"{actual[:16]}... (pin file: {pin_path})",
        )


def read_pinned_checksum(config_dir: Path) -> str | None:
    pin_path = config_dir / PINFILE_NAME
    if not pin_path.is_file():
        return None
    return pin_path.read_text(encoding="utf-8").strip()


def verify_checksum_pin(config_id: str, checksum: str, config_dir: Path) -> None:
    """
    Raises:
        ConfigIntegrityError: a pin exists and does not match.
    """
    pinned = read_pinned_checksum(config_dir)
    if pinned is None:
        return
    if checksum != pinned:
        raise ConfigIntegrityError(
            config_id=config_id,
            expected=pinned,
            actual=checksum,
            pin_path=config_dir / PINFILE_NAME,
        )
