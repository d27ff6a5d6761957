"""
YAML configuration files for journal_sync.

Config files are discovered by convention, may pull in other files with
``!include``, and may reference environment variables as ``${VAR}`` or
``${VAR:-default}``.  Files are merged so the project-level file wins over
the global one, then handed to ``load_config()`` as fallbacks behind CLI
arguments and environment variables.

Usage:
    from journal_sync.config_loader import resolve_config

    config, unified, sources = resolve_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .config import Config, load_config
from .config_schema import UnifiedConfig, build_config

logger = logging.getLogger(__name__)

PROJECT_DIR = ".journal_sync"
CONFIG_ENV_VAR = "JOURNAL_SYNC_CONFIG"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# ${NAME} or ${NAME:-fallback}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${NAME}`` and ``${NAME:-fallback}`` references in *value*.

    An unset or empty variable expands to its fallback, or to ``""`` when
    there is none.  An unterminated ``${`` is kept as written.
    """

    def _expand(match: re.Match) -> str:
        current = os.environ.get(match.group(1))
        if current:
            return current
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_expand, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(val) for val in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` that understands ``!include <path>``.

    The tag is registered on this subclass only; plain ``yaml.safe_load``
    keeps rejecting it.  ``_include_stack`` holds the chain of files being
    loaded so a cycle can be reported instead of recursing forever.
    """

    _include_stack: list[Path]


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Load the file named by an ``!include`` node in place."""
    raw = Path(loader.construct_scalar(node))
    including_file = Path(loader.name).resolve()
    target = (raw if raw.is_absolute() else including_file.parent / raw).resolve()

    stack = getattr(loader, "_include_stack", [])
    if target in stack:
        chain = " -> ".join(str(p) for p in [*stack, target])
        raise ValueError(f"Circular include detected: {chain}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {including_file})"
        )
    return _load_yaml_with_includes(target, _include_stack=[*stack, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Discovery and starter config
# ---------------------------------------------------------------------------


def _candidate_paths() -> list[Path]:
    """Every place a config file may live, highest precedence first."""
    candidates = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    project = Path.cwd() / PROJECT_DIR
    candidates += [project / "config.yml", project / "config.yaml"]
    candidates.append(Path.home() / ".config" / "journal_sync" / "config.yml")
    return candidates


def discover_config_files() -> list[Path]:
    """Return the config files that exist, highest precedence first.

    Precedence: the file named by ``JOURNAL_SYNC_CONFIG``, then
    ``.journal_sync/config.yml`` and ``.journal_sync/config.yaml`` in the
    working directory, then ``~/.config/journal_sync/config.yml``.
    """
    return [p for p in _candidate_paths() if p.exists()]


_STARTER_CONFIG = """\
# journal-sync configuration
#
# Environment variables override these settings:
#   JOURNAL_SYNC_DATA_DIR, JOURNAL_SYNC_MEDIA_DIR, JOURNAL_SYNC_TIMEOUT,
#   JOURNAL_SYNC_INSECURE, JOURNAL_SYNC_CONFLICT_STRATEGY
#
# storage:
#   data_dir: ~/.local/share/journal_sync
#   media_dir: ${JOURNAL_MEDIA:-~/.local/share/journal_sync/media}
#
# transport:
#   timeout: 30
#   insecure: false
#   max_parallel_requests: 4
#
# sync:
#   conflict_strategy: last-write-wins
#   root_path: /journal_app
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """The active config file, or where a new project config would go."""
    existing = discover_config_files()
    return existing[0] if existing else Path.cwd() / PROJECT_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Where to write the starter file.  Defaults to
            ``resolve_config_path()``.
    """
    existing = [target] if target and target.exists() else discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered config file into one dict.

    Files are applied from lowest to highest precedence and a later file
    replaces whole top-level sections of an earlier one.  Environment
    references are expanded after the merge.  No files means ``{}``.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config: %s", path)
        data = _load_yaml_with_includes(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Ignoring config file %s: top level is a %s, not a mapping",
                path,
                type(data).__name__,
            )
    return _interpolate_recursive(merged)


# ---------------------------------------------------------------------------
# 5. Runtime resolution
# ---------------------------------------------------------------------------


def resolve_config(
    overrides: dict[str, Any] | None = None,
) -> tuple[Config, UnifiedConfig, list[str]]:
    """Resolve runtime settings from every source.

    Loads ``.env`` first (so ``${VAR}`` interpolation in YAML can use its
    values), then the YAML hierarchy, then applies env vars and CLI
    overrides through ``load_config()``.

    Args:
        overrides: CLI values (data_dir, media_dir, insecure, debug).

    Returns:
        The validated ``Config``, the ``UnifiedConfig`` it was built from,
        and a list describing which sources contributed.

    Raises:
        ValueError: If the resolved configuration is invalid.
    """
    load_dotenv()

    sources: list[str] = []
    config_files = discover_config_files()
    unified = build_config(load_hierarchical_config())
    if config_files:
        sources.append(f"config file: {config_files[0]}")

    opts = overrides or {}
    config = load_config(
        data_dir=opts.get("data_dir"),
        media_dir=opts.get("media_dir"),
        insecure=opts.get("insecure", False),
        debug=opts.get("debug", False),
        yaml_fallbacks=unified.fallbacks(),
    )
    if opts:
        sources.append("CLI arguments")
    sources.append("environment variables")
    return config, unified, sources
