"""Unit tests for core.yaml module."""

from pathlib import Path

import pytest

from nostrpool.core.yaml import load_yaml
from nostrpool.exceptions import ConfigurationError


class TestLoadYaml:
    def test_mapping(self, tmp_path: Path):
        path = tmp_path / "pool.yaml"
        path.write_text("name: main\nrelays:\n  - wss://relay.example.com\n", encoding="utf-8")
        assert load_yaml(path) == {"name": "main", "relays": ["wss://relay.example.com"]}

    def test_str_path(self, tmp_path: Path):
        path = tmp_path / "pool.yaml"
        path.write_text("name: main\n", encoding="utf-8")
        assert load_yaml(str(path)) == {"name": "main"}

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_yaml(path) == {}

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("name: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_yaml(path)

    def test_non_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml(path)

    def test_python_tags_rejected(self, tmp_path: Path):
        path = tmp_path / "unsafe.yaml"
        path.write_text("x: !!python/object/apply:os.system ['true']\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_yaml(path)
