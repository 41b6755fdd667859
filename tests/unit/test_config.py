"""Unit tests for Dev Maestro configuration loading and plan discovery."""

import json

import pytest

from maestro.config import (
    DEFAULT_LOCAL_CONFIG,
    DEFAULT_PORT,
    ConfigHolder,
    MaestroConfig,
    ensure_local_structure,
    find_master_plan,
    load_config,
    load_local_config,
    project_root_from_plan,
    resolve_plan_location,
)
from maestro.errors import ConfigurationError
from maestro.maestro_logging import observability_hooks


def _write_plan(path, text="### TASK-001: A\n"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestPlanDiscovery:
    """Test cases for locating MASTER_PLAN.md in a project."""

    def test_root_plan(self, tmp_path):
        """Test a plan at the project root."""
        plan = _write_plan(tmp_path / "MASTER_PLAN.md")

        assert find_master_plan(tmp_path) == plan.resolve()

    def test_preferred_locations_order(self, tmp_path):
        """Test docs/ wins over planning/ and nested copies."""
        _write_plan(tmp_path / "planning" / "MASTER_PLAN.md")
        docs_plan = _write_plan(tmp_path / "docs" / "MASTER_PLAN.md")
        _write_plan(tmp_path / "a" / "MASTER_PLAN.md")

        assert find_master_plan(tmp_path) == docs_plan.resolve()

    def test_search_depth(self, tmp_path):
        """Test nested plans are found up to three levels down."""
        plan = _write_plan(tmp_path / "a" / "b" / "MASTER_PLAN.md")

        assert find_master_plan(tmp_path) == plan.resolve()

    def test_too_deep(self, tmp_path):
        """Test plans below the search depth are ignored."""
        _write_plan(tmp_path / "a" / "b" / "c" / "MASTER_PLAN.md")

        assert find_master_plan(tmp_path) is None

    def test_missing_directory(self, tmp_path):
        """Test a project directory that does not exist."""
        assert find_master_plan(tmp_path / "missing") is None

    @pytest.mark.parametrize("container", ["docs", "doc", "planning", ".github"])
    def test_project_root_strips_container(self, tmp_path, container):
        """Test the documentation folder is not taken as the project root."""
        plan = tmp_path / container / "MASTER_PLAN.md"

        assert project_root_from_plan(plan) == tmp_path.resolve()

    def test_project_root_of_root_plan(self, tmp_path):
        """Test a plan at the root belongs to that root."""
        assert project_root_from_plan(tmp_path / "MASTER_PLAN.md") == tmp_path.resolve()

    def test_resolve_plan_location_file_and_dir(self, tmp_path):
        """Test a file or a project directory both resolve to the plan."""
        plan = _write_plan(tmp_path / "docs" / "MASTER_PLAN.md")

        assert resolve_plan_location(plan) == plan.resolve()
        assert resolve_plan_location(tmp_path) == plan.resolve()

    def test_resolve_plan_location_errors(self, tmp_path):
        """Test missing paths and directories without a plan."""
        with pytest.raises(ConfigurationError, match="Path not found"):
            resolve_plan_location(tmp_path / "nope")
        with pytest.raises(ConfigurationError, match="Could not find"):
            resolve_plan_location(tmp_path)


class TestLocalConfig:
    """Test cases for local/config.json."""

    def test_missing_local_config(self, tmp_path):
        """Test a missing file reads as empty."""
        assert load_local_config(tmp_path) == {}

    def test_invalid_json(self, tmp_path):
        """Test malformed JSON is a configuration error."""
        path = tmp_path / "local" / "config.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid local config"):
            load_local_config(tmp_path)

    def test_non_object(self, tmp_path):
        """Test the file must hold a JSON object."""
        path = tmp_path / "local" / "config.json"
        path.parent.mkdir(parents=True)
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="JSON object"):
            load_local_config(tmp_path)

    def test_ensure_local_structure(self, tmp_path):
        """Test the customization folders and default config are created."""
        local_dir = ensure_local_structure(tmp_path)

        assert local_dir == tmp_path.resolve() / "local"
        for name in ("icons", "css", "views"):
            assert (local_dir / name).is_dir()
        data = json.loads((local_dir / "config.json").read_text(encoding="utf-8"))
        assert data == DEFAULT_LOCAL_CONFIG

    def test_ensure_local_structure_keeps_existing_config(self, tmp_path):
        """Test an existing config.json is not overwritten."""
        config_path = tmp_path / "local" / "config.json"
        config_path.parent.mkdir(parents=True)
        config_path.write_text('{"port": 7000}', encoding="utf-8")

        ensure_local_structure(tmp_path)

        assert json.loads(config_path.read_text(encoding="utf-8")) == {"port": 7000}


class TestLoadConfig:
    """Test cases for building MaestroConfig from the environment."""

    def test_defaults(self, tmp_path):
        """Test defaults with an empty environment and no plan."""
        config = load_config({"DEV_MAESTRO_DIR": str(tmp_path / "install")}, cwd=tmp_path)

        assert config.install_dir == (tmp_path / "install").resolve()
        assert config.plan_path is None
        assert config.project_root is None
        assert config.port == DEFAULT_PORT
        assert config.host == "127.0.0.1"
        assert config.task_prefix == "TASK"
        assert config.log_level == "INFO"
        assert config.url == f"http://127.0.0.1:{DEFAULT_PORT}"

    def test_master_plan_path(self, tmp_path):
        """Test an explicit plan path wins over discovery."""
        plan = _write_plan(tmp_path / "docs" / "MASTER_PLAN.md")
        _write_plan(tmp_path / "MASTER_PLAN.md")

        config = load_config(
            {"DEV_MAESTRO_DIR": str(tmp_path / "install"), "MASTER_PLAN_PATH": str(plan)},
            cwd=tmp_path,
        )

        assert config.plan_path == plan.resolve()
        assert config.project_root == tmp_path.resolve()

    def test_project_root_discovery(self, tmp_path):
        """Test the plan is discovered inside PROJECT_ROOT."""
        project = tmp_path / "project"
        plan = _write_plan(project / "planning" / "MASTER_PLAN.md")

        config = load_config(
            {"DEV_MAESTRO_DIR": str(tmp_path / "install"), "PROJECT_ROOT": str(project)},
            cwd=tmp_path / "elsewhere",
        )

        assert config.plan_path == plan.resolve()
        assert config.project_root == project.resolve()

    def test_cwd_discovery(self, tmp_path):
        """Test the working directory is searched last."""
        plan = _write_plan(tmp_path / "MASTER_PLAN.md")

        config = load_config({"DEV_MAESTRO_DIR": str(tmp_path / "install")}, cwd=tmp_path)

        assert config.plan_path == plan.resolve()

    def test_port_sources(self, tmp_path):
        """Test PORT beats local config, which beats the default."""
        install = tmp_path / "install"
        (install / "local").mkdir(parents=True)
        (install / "local" / "config.json").write_text(
            json.dumps({"port": 7001, "updateBranch": "dev", "theme": "dark"}), encoding="utf-8"
        )

        from_local = load_config({"DEV_MAESTRO_DIR": str(install)}, cwd=tmp_path)
        from_env = load_config({"DEV_MAESTRO_DIR": str(install), "PORT": "7002"}, cwd=tmp_path)

        assert from_local.port == 7001
        assert from_local.update_branch == "dev"
        assert from_env.port == 7002

    @pytest.mark.parametrize("port", ["abc", "0", "70000"])
    def test_invalid_port(self, tmp_path, port):
        """Test unusable ports are rejected."""
        with pytest.raises(ConfigurationError):
            load_config({"DEV_MAESTRO_DIR": str(tmp_path), "PORT": port}, cwd=tmp_path)

    @pytest.mark.parametrize("prefix", ["DEV-X", "DM2", "TA SK"])
    def test_invalid_task_prefix(self, tmp_path, prefix):
        """Test prefixes that headings could not carry are rejected."""
        with pytest.raises(ConfigurationError, match="Invalid task prefix"):
            load_config(
                {"DEV_MAESTRO_DIR": str(tmp_path), "DEV_MAESTRO_TASK_PREFIX": prefix},
                cwd=tmp_path,
            )

    @pytest.mark.parametrize("value,expected", [("warn", "WARNING"), ("fatal", "CRITICAL"), (" error ", "ERROR")])
    def test_log_level_aliases(self, tmp_path, value, expected):
        """Test alternate level names map to ones uvicorn accepts."""
        config = load_config(
            {"DEV_MAESTRO_DIR": str(tmp_path), "DEV_MAESTRO_LOG_LEVEL": value}, cwd=tmp_path
        )

        assert config.log_level == expected

    @pytest.mark.parametrize("value", ["VERBOSE", "trace", "10"])
    def test_invalid_log_level(self, tmp_path, value):
        """Test unknown log levels are rejected."""
        with pytest.raises(ConfigurationError, match="Invalid log level"):
            load_config(
                {"DEV_MAESTRO_DIR": str(tmp_path), "DEV_MAESTRO_LOG_LEVEL": value}, cwd=tmp_path
            )

    def test_keep_alive(self, tmp_path):
        """Test the keep-alive timeout default and override."""
        default = load_config({"DEV_MAESTRO_DIR": str(tmp_path)}, cwd=tmp_path)
        custom = load_config(
            {"DEV_MAESTRO_DIR": str(tmp_path), "DEV_MAESTRO_KEEP_ALIVE": "10"}, cwd=tmp_path
        )

        assert default.keep_alive_timeout == 5
        assert custom.keep_alive_timeout == 10

    @pytest.mark.parametrize("value", ["abc", "0", "-3"])
    def test_invalid_keep_alive(self, tmp_path, value):
        """Test unusable keep-alive timeouts are rejected."""
        with pytest.raises(ConfigurationError, match="keep-alive"):
            load_config(
                {"DEV_MAESTRO_DIR": str(tmp_path), "DEV_MAESTRO_KEEP_ALIVE": value}, cwd=tmp_path
            )

    def test_other_settings(self, tmp_path):
        """Test host, prefix, log level and log file settings."""
        config = load_config(
            {
                "DEV_MAESTRO_DIR": str(tmp_path),
                "DEV_MAESTRO_HOST": "0.0.0.0",
                "DEV_MAESTRO_TASK_PREFIX": "FEAT",
                "DEV_MAESTRO_LOG_LEVEL": "debug",
                "DEV_MAESTRO_LOG_FILE": str(tmp_path / "logs" / "maestro.log"),
            },
            cwd=tmp_path,
        )

        assert config.host == "0.0.0.0"
        assert config.task_prefix == "FEAT"
        assert config.log_level == "DEBUG"
        assert config.log_file == (tmp_path / "logs" / "maestro.log").resolve()

    def test_reads_process_environment(self, tmp_path, monkeypatch):
        """Test os.environ is used when no mapping is given."""
        plan = _write_plan(tmp_path / "MASTER_PLAN.md")
        monkeypatch.setenv("DEV_MAESTRO_DIR", str(tmp_path / "install"))
        monkeypatch.setenv("MASTER_PLAN_PATH", str(plan))
        monkeypatch.delenv("PORT", raising=False)

        config = load_config()

        assert config.plan_path == plan.resolve()

    def test_to_dict(self, tmp_path):
        """Test the serialized form."""
        config = MaestroConfig(install_dir=tmp_path, plan_path=tmp_path / "MASTER_PLAN.md")

        data = config.to_dict()

        assert data["masterPlanPath"] == str(tmp_path / "MASTER_PLAN.md")
        assert data["projectRoot"] is None
        assert data["port"] == DEFAULT_PORT
        assert data["autoUpdate"] is True


class TestConfigHolder:
    """Test cases for runtime reconfiguration."""

    def test_reload_picks_up_environment(self, tmp_path):
        """Test reload re-reads the environment mapping."""
        first = _write_plan(tmp_path / "one" / "MASTER_PLAN.md")
        second = _write_plan(tmp_path / "two" / "MASTER_PLAN.md")
        env = {"DEV_MAESTRO_DIR": str(tmp_path / "install"), "MASTER_PLAN_PATH": str(first)}
        holder = ConfigHolder(env=env)

        assert holder.config.plan_path == first.resolve()

        env["MASTER_PLAN_PATH"] = str(second)
        holder.reload()

        assert holder.config.plan_path == second.resolve()

    def test_set_plan_path(self, tmp_path):
        """Test switching plans from a project directory."""
        plan = _write_plan(tmp_path / "project" / "docs" / "MASTER_PLAN.md")
        holder = ConfigHolder(config=MaestroConfig(install_dir=tmp_path, port=7100))
        events = []

        def on_reload(**data):
            events.append(data)

        observability_hooks.register_hook("config_reloaded", on_reload)
        try:
            config = holder.set_plan_path(tmp_path / "project")
        finally:
            observability_hooks.unregister_hook("config_reloaded", on_reload)

        assert config.plan_path == plan.resolve()
        assert config.project_root == (tmp_path / "project").resolve()
        assert config.port == 7100
        assert holder.config is config
        assert events[0]["plan_path"] == str(plan.resolve())
        assert events[0]["reason"] == "plan_path"

    def test_set_invalid_plan_path(self, tmp_path):
        """Test a bad location keeps the current configuration."""
        original = MaestroConfig(install_dir=tmp_path)
        holder = ConfigHolder(config=original)

        with pytest.raises(ConfigurationError):
            holder.set_plan_path(tmp_path / "missing.md")

        assert holder.config is original
