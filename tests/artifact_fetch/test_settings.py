"""Tests for configuration loading, validation and environment credentials."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from ArtifactFetch.errors import ConfigError
from ArtifactFetch.models import RepoRef
from ArtifactFetch.settings import (
    DEFAULT_API_URL,
    Credentials,
    FetchSettings,
    default_cache_dir,
    load_raw_yaml,
    load_settings,
)


class TestRepoRef:
    def test_parse_round_trips(self) -> None:
        ref = RepoRef.parse("octo/widgets")
        assert (ref.owner, ref.name) == ("octo", "widgets")
        assert str(ref) == "octo/widgets"

    @pytest.mark.parametrize("value", ["", "octo", "octo/", "/widgets", "octo/widgets/extra"])
    def test_parse_rejects_malformed(self, value: str) -> None:
        with pytest.raises(ConfigError):
            RepoRef.parse(value)


class TestFetchSettings:
    def test_defaults(self) -> None:
        settings = FetchSettings(repo="octo/widgets")
        assert settings.since_run_id == 0
        assert settings.run_id is None
        assert settings.pattern == ".*"
        assert settings.unpack is True
        assert settings.output is None
        assert settings.api_url == DEFAULT_API_URL
        assert settings.timeout_sec == 30.0
        assert settings.connect_timeout_sec == 10.0
        assert settings.per_page == 50
        assert settings.http_cache is False
        assert not settings.single_run
        assert settings.repo_ref == RepoRef(owner="octo", name="widgets")

    def test_settings_are_frozen(self) -> None:
        settings = FetchSettings(repo="octo/widgets")
        with pytest.raises(ValidationError):
            settings.since_run_id = 5  # type: ignore[misc]

    def test_invalid_pattern_rejected(self) -> None:
        with pytest.raises(ValidationError, match="invalid artifact pattern"):
            FetchSettings(repo="octo/widgets", pattern="build-(")

    def test_api_url_normalised(self) -> None:
        settings = FetchSettings(repo="octo/widgets", api_url=" https://ghe.example.com/api/v3/ ")
        assert settings.api_url == "https://ghe.example.com/api/v3"

    def test_log_level_upper_cased(self) -> None:
        assert FetchSettings(repo="octo/widgets", log_level="debug").log_level == "DEBUG"

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FetchSettings(repo="octo/widgets", retries=3)

    def test_cache_dir_defaults_to_user_cache(self, tmp_path: Path) -> None:
        assert FetchSettings(repo="octo/widgets").resolved_cache_dir() == default_cache_dir()
        explicit = FetchSettings(repo="octo/widgets", http_cache_dir=tmp_path)
        assert explicit.resolved_cache_dir() == tmp_path


class TestLoadSettings:
    def test_overrides_win_over_yaml(self, tmp_path: Path) -> None:
        config = tmp_path / "fetch.yaml"
        config.write_text("repo: octo/widgets\npattern: '^build'\nper_page: 20\n", encoding="utf-8")

        settings = load_settings(config, {"pattern": "^test", "per_page": None})

        assert settings.repo == "octo/widgets"
        assert settings.pattern == "^test"
        assert settings.per_page == 20

    def test_missing_repo_is_config_error(self) -> None:
        with pytest.raises(ConfigError, match="must set repo"):
            load_settings(None, {"repo": None})

    def test_validation_errors_become_config_errors(self) -> None:
        with pytest.raises(ConfigError, match="per_page"):
            load_settings(None, {"repo": "octo/widgets", "per_page": 500})

    def test_malformed_repo_is_config_error(self) -> None:
        with pytest.raises(ConfigError, match="<org>/<repository>"):
            load_settings(None, {"repo": "widgets"})

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_raw_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        config = tmp_path / "broken.yaml"
        config.write_text("repo: [unterminated\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_raw_yaml(config)

    def test_non_mapping_root(self, tmp_path: Path) -> None:
        config = tmp_path / "list.yaml"
        config.write_text("- octo/widgets\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_raw_yaml(config)

    def test_empty_file_is_empty_mapping(self, tmp_path: Path) -> None:
        config = tmp_path / "empty.yaml"
        config.write_text("", encoding="utf-8")
        assert load_raw_yaml(config) == {}


class TestCredentials:
    def test_read_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "secret-token")
        monkeypatch.setenv("GITHUB_USER", "octocat")

        credentials = Credentials()

        assert credentials.has_token
        assert credentials.token.get_secret_value() == "secret-token"
        assert credentials.user == "octocat"
        assert "secret-token" not in repr(credentials)

    def test_absent_token(self) -> None:
        credentials = Credentials()
        assert not credentials.has_token
        assert credentials.user is None

    def test_empty_token_counts_as_absent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GITHUB_TOKEN", "")
        assert not Credentials().has_token
