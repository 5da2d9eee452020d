from pathlib import Path

import pytest

from config import DEFAULT_SOURCES, Config, parse_sources

ENV_KEYS = (
    "NEWS_API_BASE_URL", "NEWS_SOURCES", "NEWS_MAX_PER_SOURCE", "NEWS_TOTAL_LIMIT",
    "RETRY_ATTEMPTS", "REQUEST_TIMEOUT", "CACHE_DURATION", "MAX_WORKERS",
    "ENRICHMENT_ENABLED", "ENRICHMENT_BATCH_SIZE", "LLM_ENABLED", "LLM_API_KEY",
    "LLM_BASE_URL", "LLM_MODEL", "SUMMARY_ENABLED", "LANGUAGE", "WEBHOOK_ENABLED",
    "WEBHOOK_URL", "WEBHOOK_SECRET", "DIGEST_FILE", "REPORTS_DIR",
    "POLL_INTERVAL_SECONDS", "LOG_LEVEL", "LOG_DIR", "LOG_FORMAT",
    "LOG_BACKUP_COUNT", "LOG_MAX_BYTES", "ENABLE_LOGFIRE", "LOGFIRE_TOKEN",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # LANGUAGE is also a locale variable on many systems
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    config = Config()
    assert config.validate() is None
    assert config.news_api_base_url == "http://localhost:5173"
    assert len(config.sources) == len(DEFAULT_SOURCES)
    assert "weibo" not in {source.id for source in config.enabled_sources}


def test_load_from_env(monkeypatch):
    monkeypatch.setenv("NEWS_API_BASE_URL", "https://news.example")
    monkeypatch.setenv("NEWS_MAX_PER_SOURCE", "5")
    monkeypatch.setenv("RETRY_ATTEMPTS", "4")
    monkeypatch.setenv("LLM_ENABLED", "yes")
    monkeypatch.setenv("LLM_API_KEY", "key")
    monkeypatch.setenv("LLM_MODEL", "doubao")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("REPORTS_DIR", "out/reports")

    config = Config.load()

    assert config.news_api_base_url == "https://news.example"
    assert config.retry_attempts == 4
    assert config.llm_enabled
    assert config.log_level == "DEBUG"
    assert config.reports_dir == Path("out/reports")
    assert all(source.max_items == 5 for source in config.sources)
    assert config.validate() is None


def test_load_rejects_bad_integer(monkeypatch):
    monkeypatch.setenv("NEWS_TOTAL_LIMIT", "lots")
    with pytest.raises(ValueError, match="NEWS_TOTAL_LIMIT"):
        Config.load()


def test_sources_override(monkeypatch):
    monkeypatch.setenv("NEWS_SOURCES", "ithome:IT之家:3, hackernews ,!weibo:微博")
    config = Config.load()
    assert [(s.id, s.name, s.enabled, s.max_items) for s in config.sources] == [
        ("ithome", "IT之家", True, 3),
        ("hackernews", "hackernews", True, 10),
        ("weibo", "微博", False, 10),
    ]


def test_parse_sources_rejects_bad_cap():
    with pytest.raises(ValueError):
        parse_sources("ithome:IT之家:many", 10)


@pytest.mark.parametrize(
    "overrides, fragment",
    [
        ({"news_api_base_url": ""}, "NEWS_API_BASE_URL"),
        ({"sources": []}, "sources"),
        ({"retry_attempts": 0}, "RETRY_ATTEMPTS"),
        ({"news_total_limit": -1}, "NEWS_TOTAL_LIMIT"),
        ({"cache_duration": -5}, "CACHE_DURATION"),
        ({"llm_enabled": True}, "LLM_API_KEY"),
        ({"llm_enabled": True, "llm_api_key": "k"}, "LLM_MODEL"),
        ({"language": "fr"}, "LANGUAGE"),
        ({"webhook_enabled": True}, "WEBHOOK_URL"),
        ({"webhook_enabled": True, "webhook_url": "ftp://hook"}, "http(s)"),
        ({"log_level": "LOUD"}, "LOG_LEVEL"),
        ({"log_format": "xml"}, "LOG_FORMAT"),
    ],
)
def test_validate_errors(overrides, fragment):
    error = Config(**overrides).validate()
    assert error is not None
    assert fragment in error
