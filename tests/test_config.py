"""Tests for environment-driven configuration."""

import pytest

from basequery.config import QueryConfig
from basequery.vault import DEFAULT_INCLUDE

ENV_VARS = (
    "BASEQUERY_STRICT",
    "BASEQUERY_INCLUDE",
    "BASEQUERY_EXCLUDE",
    "BASEQUERY_LOG_LEVEL",
    "BASEQUERY_FORMAT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestQueryConfig:
    def test_defaults(self):
        config = QueryConfig.from_env()

        assert config.strict is True
        assert config.include == DEFAULT_INCLUDE
        assert config.exclude == ()
        assert config.log_level == "WARNING"
        assert config.output_format == "json"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BASEQUERY_STRICT", "off")
        monkeypatch.setenv("BASEQUERY_INCLUDE", "Projects/**, Notes/*.md ,")
        monkeypatch.setenv("BASEQUERY_EXCLUDE", "Archive/**")
        monkeypatch.setenv("BASEQUERY_LOG_LEVEL", "debug")
        monkeypatch.setenv("BASEQUERY_FORMAT", "CSV")

        config = QueryConfig.from_env()

        assert config.strict is False
        assert config.include == ("Projects/**", "Notes/*.md")
        assert config.exclude == ("Archive/**",)
        assert config.log_level == "DEBUG"
        assert config.output_format == "csv"

    @pytest.mark.parametrize("value", ["1", "true", "YES", " on "])
    def test_truthy_values(self, monkeypatch, value):
        monkeypatch.setenv("BASEQUERY_STRICT", value)
        assert QueryConfig.from_env().strict is True

    def test_invalid_boolean(self, monkeypatch):
        monkeypatch.setenv("BASEQUERY_STRICT", "maybe")

        with pytest.raises(ValueError, match="Invalid boolean value"):
            QueryConfig.from_env()
