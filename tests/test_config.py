"""
Layered configuration: files, .env, environment and overrides.
"""

import json

import pytest

from modcomm.config import CommunicationConfig, ConfigError, ConfigLoader, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    import os

    for key in list(os.environ):
        if key.startswith("MODCOMM_"):
            monkeypatch.delenv(key)


class TestDefaults:

    def test_defaults(self):
        config = ConfigLoader.load().build()
        assert config == CommunicationConfig()
        assert config.max_resolution_depth == 10
        assert config.discovery_max_files == 5000
        assert config.discovery_max_memory_mb == 30.0
        assert config.descriptor_location == "infrastructure/communication"
        assert config.default_hook_priority == 10


class TestSources:

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "modcomm.yaml"
        path.write_text("max_resolution_depth: 6\nmodules_path: src/modules\n")

        config = load_config([str(path)])
        assert config.max_resolution_depth == 6
        assert config.modules_path == "src/modules"

    def test_json_file(self, tmp_path):
        path = tmp_path / "modcomm.json"
        path.write_text(json.dumps({"discovery_max_depth": 3}))
        assert load_config([str(path)]).discovery_max_depth == 3

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("MODCOMM_DISCOVERY_MAX_FILES", "250")
        monkeypatch.setenv("MODCOMM_ASYNC_DISPATCH", "true")

        config = load_config()
        assert config.discovery_max_files == 250
        assert config.async_dispatch is True

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("MODCOMM_LOG_LEVEL=debug\nOTHER_SETTING=1\n")

        loader = ConfigLoader.load(env_file=str(env_file))
        assert loader.build().log_level == "debug"
        assert "other_setting" not in loader.to_dict()

    def test_missing_env_file_ignored(self, tmp_path):
        assert load_config(env_file=str(tmp_path / "absent.env")) == CommunicationConfig()

    def test_precedence(self, tmp_path, monkeypatch):
        path = tmp_path / "modcomm.yaml"
        path.write_text("discovery_max_depth: 2\ndiscovery_max_files: 10\nmax_resolution_depth: 7\n")
        env_file = tmp_path / ".env"
        env_file.write_text("MODCOMM_DISCOVERY_MAX_FILES=20\nMODCOMM_DISCOVERY_MAX_DEPTH=3\n")
        monkeypatch.setenv("MODCOMM_DISCOVERY_MAX_FILES", "30")

        config = load_config([str(path)], env_file=str(env_file), overrides={"max_resolution_depth": 8})

        assert config.discovery_max_depth == 3
        assert config.discovery_max_files == 30
        assert config.max_resolution_depth == 8

    def test_nested_environment_and_dotted_get(self, monkeypatch):
        monkeypatch.setenv("MODCOMM_MODULES__BILLING__ENABLED", "no")
        loader = ConfigLoader.load()
        assert loader.get("modules.billing.enabled") is False
        assert loader.get("modules.crm.enabled", "unset") == "unset"


class TestValidation:

    def test_int_accepted_for_float(self):
        config = load_config(overrides={"discovery_max_memory_mb": 64})
        assert config.discovery_max_memory_mb == 64.0
        assert isinstance(config.discovery_max_memory_mb, float)

    def test_wrong_type_rejected(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config(overrides={"discovery_max_files": "many"})
        assert exc_info.value.details["field"] == "discovery_max_files"

    def test_bool_is_not_an_int(self):
        with pytest.raises(ConfigError):
            load_config(overrides={"max_resolution_depth": True})

    def test_optional_field_accepts_none(self):
        assert load_config(overrides={"log_level": None}).log_level is None

    def test_section(self):
        loader = ConfigLoader.load(overrides={"comm": {"default_listener_priority": 5}})
        assert loader.build(section="comm").default_listener_priority == 5

        with pytest.raises(ConfigError):
            ConfigLoader.load(overrides={"comm": 1}).build(section="comm")
