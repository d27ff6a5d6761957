"""Runtime settings for the sync service.

Reads storage locations and transport settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    JOURNAL_SYNC_DATA_DIR: Directory for the local store, configs and manifests
        (optional, default: ~/.local/share/journal_sync)
    JOURNAL_SYNC_MEDIA_DIR: Attachment media root (optional, default: {data_dir}/media)
    JOURNAL_SYNC_TIMEOUT: Per-request network timeout in seconds (optional, default: 30)
    JOURNAL_SYNC_MAX_PARALLEL_REQUESTS: Max parallel blocking I/O calls (optional, default: 4)
    JOURNAL_SYNC_INSECURE: Skip SSL verification (optional, default: false)
    JOURNAL_SYNC_CONFLICT_STRATEGY: Conflict resolution strategy (optional, default: last-write-wins)
    JOURNAL_SYNC_ROOT_PATH: Remote root collection for new configs (optional, default: /journal_app)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .sync.resolver import STRATEGIES

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "journal_sync"


@dataclass
class Config:
    data_dir: Path
    media_dir: Path
    timeout: float = 30.0
    max_parallel_requests: int = 4
    insecure: bool = False
    debug: bool = False
    conflict_strategy: str = "last-write-wins"
    root_path: str = "/journal_app"


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a value is out of range or unknown.
    """
    if config.timeout <= 0:
        raise ValueError(
            f"Invalid timeout {config.timeout}: must be a positive number of seconds"
        )

    if not (1 <= config.max_parallel_requests <= 100):
        raise ValueError(
            f"Invalid max_parallel_requests {config.max_parallel_requests}: "
            "must be a number between 1 and 100"
        )

    if config.conflict_strategy not in STRATEGIES:
        raise ValueError(
            f"Unknown conflict strategy '{config.conflict_strategy}'. "
            f"Valid strategies: {sorted(STRATEGIES)}"
        )

    config.root_path = "/" + config.root_path.strip().strip("/")
    if config.root_path == "/":
        raise ValueError("Remote root path cannot be the server root")

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _resolve_flag(cli_value: bool, env_key: str, yaml_value: object) -> bool:
    if cli_value:
        return True
    raw = os.getenv(env_key)
    if raw is not None:
        return raw.strip().lower() in ("true", "1", "yes", "on")
    return bool(yaml_value)


def _get_number_env(key: str, cast: type, low: float, high: float):
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    data_dir: str | None = None,
    media_dir: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Build a validated ``Config`` from CLI values, the environment and YAML.

    Each field takes the first value set among: CLI argument, environment
    variable, *yaml_fallbacks*, built-in default.  ``.env`` values only count
    if ``load_dotenv()`` ran first; ``resolve_config()`` takes care of that.

    Args:
        data_dir: Override data directory.
        media_dir: Override media root.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file
            (see ``UnifiedConfig.fallbacks()``).

    Raises:
        ValueError: If any value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- Paths: CLI > env > YAML > default ---

    final_data_dir = Path(
        data_dir
        or os.getenv("JOURNAL_SYNC_DATA_DIR")
        or fb.get("data_dir")
        or DEFAULT_DATA_DIR
    ).expanduser()

    final_media_dir = Path(
        media_dir
        or os.getenv("JOURNAL_SYNC_MEDIA_DIR")
        or fb.get("media_dir")
        or final_data_dir / "media"
    ).expanduser()

    # --- Flags: CLI > env > YAML > default ---

    final_insecure = _resolve_flag(insecure, "JOURNAL_SYNC_INSECURE", fb.get("insecure"))
    final_debug = _resolve_flag(debug, "JOURNAL_SYNC_DEBUG", fb.get("debug"))

    # --- Numbers: env > YAML > default ---

    final_timeout = _get_number_env("JOURNAL_SYNC_TIMEOUT", float, 1, 3600)
    if final_timeout is None:
        final_timeout = float(fb.get("timeout", 30.0))

    final_max_parallel = _get_number_env(
        "JOURNAL_SYNC_MAX_PARALLEL_REQUESTS", int, 1, 100
    )
    if final_max_parallel is None:
        final_max_parallel = int(fb.get("max_parallel_requests", 4))

    # --- Strings: env > YAML > default ---

    final_strategy = (
        os.getenv("JOURNAL_SYNC_CONFLICT_STRATEGY")
        or fb.get("conflict_strategy")
        or "last-write-wins"
    )
    final_root = (
        os.getenv("JOURNAL_SYNC_ROOT_PATH")
        or fb.get("root_path")
        or "/journal_app"
    )

    config = Config(
        data_dir=final_data_dir,
        media_dir=final_media_dir,
        timeout=final_timeout,
        max_parallel_requests=final_max_parallel,
        insecure=final_insecure,
        debug=final_debug,
        conflict_strategy=final_strategy,
        root_path=final_root,
    )

    validate_config(config)
    return config
