"""Unit tests for core.yaml module."""

import pytest

from relayguard.core.exceptions import ConfigurationError
from relayguard.core.yaml import load_yaml


class TestLoadYaml:
    def test_mapping(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("store:\n  timeouts:\n    query: 5\n")
        assert load_yaml(path) == {"store": {"timeouts": {"query": 5}}}

    def test_accepts_str_path(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("a: 1\n")
        assert load_yaml(str(path)) == {"a": 1}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("a: [1, 2\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_yaml(path)

    def test_non_mapping_top_level(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml(path)

    def test_safe_load_rejects_python_tags(self, tmp_path):
        path = tmp_path / "tag.yaml"
        path.write_text("a: !!python/object/apply:os.system ['true']\n")
        with pytest.raises(ConfigurationError):
            load_yaml(path)
