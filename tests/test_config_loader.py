"""Tests for journal_sync.config_loader: YAML discovery, includes,
interpolation and runtime resolution."""

import pytest
import yaml

from journal_sync.config_loader import (
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    resolve_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Empty CWD and HOME with no config or env overrides."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for var in (
        "JOURNAL_SYNC_CONFIG",
        "JOURNAL_SYNC_DATA_DIR",
        "JOURNAL_SYNC_MEDIA_DIR",
        "JOURNAL_SYNC_TIMEOUT",
        "JOURNAL_SYNC_MAX_PARALLEL_REQUESTS",
        "JOURNAL_SYNC_INSECURE",
        "JOURNAL_SYNC_DEBUG",
        "JOURNAL_SYNC_CONFLICT_STRATEGY",
        "JOURNAL_SYNC_ROOT_PATH",
    ):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


def _project_config(base, text, name="config.yml"):
    path = base / ".journal_sync" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolation:
    def test_set_var(self, monkeypatch):
        monkeypatch.setenv("DAV_HOST", "dav.local")
        assert interpolate_env_vars("https://${DAV_HOST}/") == "https://dav.local/"

    def test_unset_var_is_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("a${UNSET_VAR_XYZ}b") == "ab"

    def test_default_when_unset_or_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-/media}") == "/media"
        assert interpolate_env_vars("${EMPTY_VAR:-x}") == "x"

    def test_unterminated_reference_kept(self):
        assert interpolate_env_vars("cost ${") == "cost ${"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("ROOT", "/data")
        data = {"storage": {"data_dir": "${ROOT}/j", "dirs": ["${ROOT}"]}, "n": 3}
        assert _interpolate_recursive(data) == {
            "storage": {"data_dir": "/data/j", "dirs": ["/data"]},
            "n": 3,
        }


# -------------------------------------------------------------------------
# !include
# -------------------------------------------------------------------------


class TestInclude:
    def test_relative_include(self, tmp_path):
        (tmp_path / "transport.yml").write_text("timeout: 10\n")
        main = tmp_path / "config.yml"
        main.write_text("transport: !include transport.yml\n")
        assert _load_yaml_with_includes(main) == {"transport": {"timeout": 10}}

    def test_missing_include(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("x: !include missing.yml\n")
        with pytest.raises(FileNotFoundError, match="missing.yml"):
            _load_yaml_with_includes(main)

    def test_circular_include(self, tmp_path):
        (tmp_path / "a.yml").write_text("x: !include b.yml\n")
        (tmp_path / "b.yml").write_text("y: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(tmp_path / "a.yml")

    def test_safe_loader_untouched(self, tmp_path):
        cfg = tmp_path / "c.yml"
        cfg.write_text("x: !include other.yml\n")
        with pytest.raises(yaml.constructor.ConstructorError):
            yaml.safe_load(cfg.read_text())


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


class TestDiscovery:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []
        assert load_hierarchical_config() == {}

    def test_precedence(self, isolated, monkeypatch):
        explicit = isolated / "explicit.yml"
        explicit.write_text("a: 1\n")
        monkeypatch.setenv("JOURNAL_SYNC_CONFIG", str(explicit))
        project = _project_config(isolated, "a: 2\n")
        home_cfg = isolated / "home" / ".config" / "journal_sync" / "config.yml"
        home_cfg.parent.mkdir(parents=True)
        home_cfg.write_text("a: 3\n")

        found = discover_config_files()
        assert found[0] == explicit.resolve()
        assert found.index(project) < found.index(home_cfg)

    def test_project_wins_per_section(self, isolated):
        home_cfg = isolated / "home" / ".config" / "journal_sync" / "config.yml"
        home_cfg.parent.mkdir(parents=True)
        home_cfg.write_text("transport:\n  timeout: 5\nlogging:\n  level: DEBUG\n")
        _project_config(isolated, "transport:\n  insecure: true\n")

        merged = load_hierarchical_config()
        assert merged["transport"] == {"insecure": True}
        assert merged["logging"] == {"level": "DEBUG"}

    def test_non_mapping_file_ignored(self, isolated):
        _project_config(isolated, "- just\n- a list\n")
        assert load_hierarchical_config() == {}


class TestEnsureConfig:
    def test_creates_starter(self, isolated):
        path = ensure_config()
        assert path == isolated / ".journal_sync" / "config.yml"
        assert "conflict_strategy" in path.read_text()
        # The starter is all comments
        assert load_hierarchical_config() == {}

    def test_existing_file_untouched(self, isolated):
        existing = _project_config(isolated, "sync:\n  root_path: /mine\n")
        assert ensure_config() == existing
        assert "/mine" in existing.read_text()


# -------------------------------------------------------------------------
# resolve_config()
# -------------------------------------------------------------------------


class TestResolveConfig:
    def test_yaml_values_used(self, isolated):
        _project_config(
            isolated,
            "storage:\n  data_dir: /srv/journal\n"
            "transport:\n  timeout: 12\n"
            "sync:\n  conflict_strategy: remote-wins\n",
        )
        config, unified, sources = resolve_config()
        assert str(config.data_dir) == "/srv/journal"
        assert str(config.media_dir) == "/srv/journal/media"
        assert config.timeout == 12.0
        assert config.conflict_strategy == "remote-wins"
        assert unified.transport.timeout == 12.0
        assert sources[0].startswith("config file:")

    def test_env_beats_yaml_and_cli_beats_env(self, isolated, monkeypatch):
        _project_config(isolated, "storage:\n  data_dir: /from/yaml\n")
        monkeypatch.setenv("JOURNAL_SYNC_DATA_DIR", "/from/env")
        config, _, _ = resolve_config()
        assert str(config.data_dir) == "/from/env"

        config, _, sources = resolve_config({"data_dir": "/from/cli"})
        assert str(config.data_dir) == "/from/cli"
        assert "CLI arguments" in sources

    def test_invalid_yaml_value(self, isolated):
        _project_config(isolated, "transport:\n  max_parallel_requests: 0\n")
        with pytest.raises(ValueError):
            resolve_config()
