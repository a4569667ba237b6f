"""
invoicing_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a ``CompiledWorkflowConfig``: the
    database settings, log level and compiled TransitionPolicy of one
    configuration set.  YAML loading is internal tooling.

Architecture position:
    Configuration sits above ``invoicing_kernel``.  The kernel MUST NEVER
    import from ``invoicing_config``; ``invoicing_config.bridges``
    translates compiled artifacts into kernel objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Build-time validation: rule tables must compile into a
      TransitionPolicy before a config is returned.
    - Checksum pinning: when an APPROVED_CHECKSUM file exists, the
      compiled checksum must match it.

Failure modes:
    - ``ConfigurationError`` -- unknown set, missing root.yaml, malformed
      YAML, invalid rules.
    - ``ConfigIntegrityError`` -- checksum mismatch against a pin file.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``INVOICING_CONFIG_TRACE`` log entry with the config_id, version and
    checksum, tying every status change to the rule table in force.
"""

from __future__ import annotations

from pathlib import Path

from invoicing_config.compiler import CompiledWorkflowConfig, compile_workflow_config
from invoicing_config.integrity import ConfigIntegrityError, verify_checksum_pin
from invoicing_config.loader import ConfigurationError, load_configuration_set
from invoicing_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = [
    "CompiledWorkflowConfig",
    "ConfigIntegrityError",
    "ConfigurationError",
    "get_active_config",
]


def get_active_config(
    config_name: str = "default",
    config_dir: Path | None = None,
) -> CompiledWorkflowConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_name: Name of the configuration set (a subdirectory of
            ``config_dir`` holding a ``root.yaml``).
        config_dir: Override path to the configuration sets directory.
            Defaults to invoicing_config/sets/.

    Raises:
        ConfigurationError: no such set, or the set fails validation.
        ConfigIntegrityError: an APPROVED_CHECKSUM pin does not match.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    set_dir = sets_dir / config_name
    root_file = set_dir / "root.yaml"
    if not root_file.is_file():
        raise ConfigurationError(
            config_name, f"no root.yaml in configuration set directory {set_dir}"
        )

    config_set = load_configuration_set(root_file)
    compiled = compile_workflow_config(config_set)

    _logger.info(
        "INVOICING_CONFIG_TRACE",
        extra={
            "trace_type": "INVOICING_CONFIG_TRACE",
            "config_set_id": compiled.config_id,
            "config_set_version": compiled.version,
            "checksum": compiled.checksum,
            "rule_count": len(compiled.policy),
        },
    )

    verify_checksum_pin(compiled.config_id, compiled.checksum, set_dir)
    return compiled
