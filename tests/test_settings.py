"""Layered configuration: model defaults, YAML files, then environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from AgentsToKG.errors import ConfigurationError
from AgentsToKG.settings import (
    DEFAULT_CONTEXT,
    EnvironmentOverrides,
    get_settings,
    invalidate_settings_cache,
    load_config,
)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "agentkg.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_defaults_without_file(self):
        settings = load_config()

        assert settings.graph.context == DEFAULT_CONTEXT
        assert settings.storage.backend == "sqlite"
        assert settings.harvest.page_size == 100
        assert "erc-8004" in settings.registries.hol.registries
        assert settings.registries.agentverse.jwt is None

    def test_secrets_are_hidden_from_repr(self, monkeypatch):
        monkeypatch.setenv("AGENTVERSE_JWT", "super-secret")

        settings = load_config()

        assert settings.registries.agentverse.jwt == "super-secret"
        assert "super-secret" not in repr(settings)


class TestYaml:
    def test_sections_mirror_the_model(self, tmp_path):
        path = _write(
            tmp_path,
            "harvest:\n  page_size: 25\n"
            "graph:\n  base_url: https://graph.example/\n  repository: agents\n"
            "logging:\n  level: debug\n",
        )

        settings = load_config(path)

        assert settings.harvest.page_size == 25
        assert settings.graph.base_url == "https://graph.example"
        assert settings.logging.level == "DEBUG"

    def test_empty_file_means_defaults(self, tmp_path):
        assert load_config(_write(tmp_path, "")).harvest.page_size == 100

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_config(_write(tmp_path, "harvest: [unclosed\n"))

    def test_root_must_be_a_mapping(self, tmp_path):
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(_write(tmp_path, "- a\n- b\n"))

    @pytest.mark.parametrize(
        "text",
        [
            "harvest:\n  page_size: 0\n",
            "storage:\n  backend: postgres\n",
            "logging:\n  level: chatty\n",
        ],
    )
    def test_invalid_values(self, tmp_path, text):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(_write(tmp_path, text))


class TestEnvironment:
    def test_env_wins_over_yaml(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "harvest:\n  page_size: 25\n")
        monkeypatch.setenv("AGENTKG_PAGE_SIZE", "40")

        assert load_config(path).harvest.page_size == 40

    def test_service_variables_keep_their_names(self, monkeypatch):
        monkeypatch.setenv("HOL_REGISTRIES", "pulse, mcp ,")
        monkeypatch.setenv("GRAPHDB_BASE_URL", "https://graph.example/")
        monkeypatch.setenv("GRAPHDB_REPOSITORY", "agents")
        monkeypatch.setenv("GRAPHDB_CF_ACCESS_CLIENT_ID", "cid")
        monkeypatch.setenv("CLOUDFLARE_D1_DATABASE_ID", "db-1")

        settings = load_config()

        assert settings.registries.hol.registries == ["pulse", "mcp"]
        assert settings.graph.base_url == "https://graph.example"
        assert settings.graph.repository == "agents"
        assert settings.graph.access_client_id == "cid"
        assert settings.storage.database_id == "db-1"

    def test_blank_values_are_ignored(self, monkeypatch):
        monkeypatch.setenv("GRAPHDB_REPOSITORY", "   ")

        assert load_config().graph.repository == "agentkg"

    def test_store_path_expands_home(self, monkeypatch):
        monkeypatch.setenv("AGENTKG_STORE_PATH", "~/agents.sqlite")

        assert load_config().storage.path == Path.home() / "agents.sqlite"

    def test_unparseable_override(self, monkeypatch):
        monkeypatch.setenv("AGENTKG_PAGE_SIZE", "many")

        with pytest.raises(ConfigurationError):
            load_config()

    def test_explicit_overrides_skip_the_environment(self, monkeypatch):
        monkeypatch.setenv("AGENTKG_PAGE_SIZE", "40")
        overrides = EnvironmentOverrides.model_validate({"AGENTKG_PAGE_SIZE": 7})

        assert load_config(overrides=overrides).harvest.page_size == 7


class TestCache:
    def test_cached_until_invalidated(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("AGENTKG_PAGE_SIZE", "12")

        assert get_settings() is first

        invalidate_settings_cache()
        assert get_settings().harvest.page_size == 12

    def test_explicit_path_reloads(self, tmp_path):
        get_settings()

        assert get_settings(_write(tmp_path, "harvest:\n  page_size: 3\n")).harvest.page_size == 3
