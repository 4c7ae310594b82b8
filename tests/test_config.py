"""Tests for markmv.config: .markmv.yaml discovery and root selection."""

import pytest

from markmv.config import Settings, get_root, load_settings
from markmv.errors import ConfigurationError


class TestLoadSettings:
    """Finding and validating .markmv.yaml."""

    def test_defaults_without_file(self, tmp_path):
        settings = load_settings(tmp_path)

        assert settings == Settings()
        assert settings.merge_strategy == "interactive"
        assert settings.order_strategy == "dependency"

    def test_found_in_parent_directory(self, tmp_path):
        (tmp_path / ".markmv.yaml").write_text("order_strategy: alphabetical\n", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        settings = load_settings(nested)

        assert settings.order_strategy == "alphabetical"
        assert settings.root == tmp_path.resolve()

    def test_relative_root(self, tmp_path):
        (tmp_path / "docs").mkdir()
        (tmp_path / ".markmv.yaml").write_text("root: docs\n", encoding="utf-8")

        assert load_settings(tmp_path).root == (tmp_path / "docs").resolve()

    def test_empty_file(self, tmp_path):
        (tmp_path / ".markmv.yaml").write_text("", encoding="utf-8")

        assert load_settings(tmp_path).link_style == "combined"

    @pytest.mark.parametrize(
        "content",
        [
            "link_style: html\n",
            "extensions: 3\n",
            "- just\n- a list\n",
            "key: [unclosed\n",
        ],
    )
    def test_invalid_file(self, tmp_path, content):
        (tmp_path / ".markmv.yaml").write_text(content, encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_settings(tmp_path)


class TestGetRoot:
    """Root discovery order: argument, environment, config file, cwd."""

    def test_explicit(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MARKMV_ROOT", "/nonexistent")

        assert get_root(tmp_path) == tmp_path.resolve()

    def test_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MARKMV_ROOT", str(tmp_path))

        assert get_root() == tmp_path.resolve()

    def test_settings_then_cwd(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MARKMV_ROOT", raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / "x").mkdir()

        assert get_root(settings=Settings(root=tmp_path / "x")) == (tmp_path / "x").resolve()
        assert get_root(settings=Settings()) == tmp_path.resolve()

    def test_not_a_directory(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MARKMV_ROOT", raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            get_root(tmp_path / "missing")

        assert "not a directory" in exc_info.value.message
