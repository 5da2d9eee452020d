"""Configuration management for the relay news digest pipeline.

This module provides centralized configuration for all pipeline components.
All settings are loaded from environment variables with sensible defaults.

Environment Variables:
    Sources:
        NEWS_API_BASE_URL: Aggregation endpoint base URL
        NEWS_SOURCES: Override registry, comma-separated id[:name[:maxItems]]
        NEWS_MAX_PER_SOURCE: Default per-source item cap
        NEWS_TOTAL_LIMIT: Max items kept after collection dedup

    Fetching:
        RETRY_ATTEMPTS: Attempts per source (default: 3)
        REQUEST_TIMEOUT: Per-request timeout in seconds (default: 15)
        CACHE_DURATION: Per-source cache TTL in seconds (0 disables)
        MAX_WORKERS: Maximum concurrent connections

    Enrichment:
        ENRICHMENT_ENABLED: Blend the relevance signal into ranking
        ENRICHMENT_BATCH_SIZE: Items enriched concurrently per batch
        LLM_ENABLED: Use the chat-completion endpoint (else local keywords)
        LLM_API_KEY / LLM_BASE_URL / LLM_MODEL: Chat-completion endpoint
        SUMMARY_ENABLED: Let the LLM polish the digest summary

    Output:
        LANGUAGE: Summary language ('zh' or 'en')
        WEBHOOK_ENABLED / WEBHOOK_URL / WEBHOOK_SECRET: Digest delivery
        DIGEST_FILE: Path for JSONL digest archive
        REPORTS_DIR: Directory for markdown digests (empty disables)

    Pipeline Behavior:
        POLL_INTERVAL_SECONDS: Delay between runs in continuous mode

    Optional Features:
        ENABLE_LOGFIRE: Enable Logfire/OpenTelemetry tracing

    Logging:
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_DIR: Directory for log files
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from models.news import NewsSource


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default.

    Args:
        key: Environment variable name
        default: Value to return if not set

    Returns:
        Environment variable value or default
    """
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


# Upstream aggregation feeds, in priority order
DEFAULT_SOURCES: tuple[tuple[str, str, bool], ...] = (
    ("v2ex-share", "V2EX-最新分享", True),
    ("zhihu", "知乎", True),
    ("weibo", "微博-实时热搜", False),  # Upstream answers 432
    ("zaobao", "联合早报", True),
    ("coolapk", "酷安-今日最热", True),
    ("mktnews-flash", "MKTNews-快讯", True),
    ("wallstreetcn-quick", "华尔街见闻-实时快讯", True),
    ("wallstreetcn-news", "华尔街见闻-最新资讯", True),
    ("36kr-quick", "36氪-快讯", True),
    ("ithome", "IT之家", True),
    ("solidot", "Solidot", True),
    ("hackernews", "Hacker News", True),
    ("github-trending-today", "Github-Today", True),
    ("juejin", "稀土掘金", True),
)


def default_sources(max_items: int) -> list[NewsSource]:
    return [
        NewsSource(id=source_id, name=name, enabled=enabled, max_items=max_items)
        for source_id, name, enabled in DEFAULT_SOURCES
    ]


def parse_sources(value: str, max_items: int) -> list[NewsSource]:
    """Parse a NEWS_SOURCES value: comma-separated ``id[:name[:maxItems]]``.

    A leading ``!`` marks the source as disabled.

    Raises:
        ValueError: On an empty id or a non-integer item cap
    """
    sources = []
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        enabled = not entry.startswith("!")
        parts = entry.lstrip("!").split(":")
        source_id = parts[0].strip()
        if not source_id:
            raise ValueError(f"Invalid NEWS_SOURCES entry: '{entry}'")
        name = parts[1].strip() if len(parts) > 1 and parts[1].strip() else source_id
        cap = max_items
        if len(parts) > 2 and parts[2].strip():
            try:
                cap = int(parts[2])
            except ValueError:
                raise ValueError(f"Invalid maxItems in NEWS_SOURCES entry: '{entry}'")
        sources.append(NewsSource(id=source_id, name=name, enabled=enabled, max_items=cap))
    return sources


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    All settings can be overridden via environment variables. Use Config.load()
    to create an instance with values from the environment.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Sources ===
    news_api_base_url: str = "http://localhost:5173"  # NEWS_API_BASE_URL
    news_max_per_source: int = 10  # NEWS_MAX_PER_SOURCE - Default per-source cap
    news_total_limit: int = 100  # NEWS_TOTAL_LIMIT - Kept after collection dedup
    sources: list[NewsSource] = field(default_factory=lambda: default_sources(10))

    # === Fetching ===
    retry_attempts: int = 3  # RETRY_ATTEMPTS - Attempts per source
    request_timeout: float = 15.0  # REQUEST_TIMEOUT - Seconds per request
    cache_duration: float = 3600.0  # CACHE_DURATION - Source cache TTL (seconds)
    max_workers: int = 8  # MAX_WORKERS - Concurrent connections

    # === Enrichment ===
    enrichment_enabled: bool = True  # ENRICHMENT_ENABLED
    enrichment_batch_size: int = 10  # ENRICHMENT_BATCH_SIZE
    llm_enabled: bool = False  # LLM_ENABLED - Call the chat-completion endpoint
    llm_api_key: str = ""  # LLM_API_KEY
    llm_base_url: str = "https://ark.cn-beijing.volces.com/api/v3"  # LLM_BASE_URL
    llm_model: str = ""  # LLM_MODEL
    summary_enabled: bool = True  # SUMMARY_ENABLED - LLM summary polish

    # === Output ===
    language: str = "zh"  # LANGUAGE - 'zh' (Chinese) or 'en' (English)
    webhook_enabled: bool = False  # WEBHOOK_ENABLED
    webhook_url: str = ""  # WEBHOOK_URL - POST endpoint for digests
    webhook_secret: str = ""  # WEBHOOK_SECRET - Optional signing secret
    digest_file: str = ""  # DIGEST_FILE - JSONL archive of digests
    reports_dir: Path | None = None  # REPORTS_DIR - Markdown digests

    # === Pipeline Behavior ===
    poll_interval_seconds: int = 3600  # POLL_INTERVAL_SECONDS

    # === Logging Configuration ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT - Number of rotated logs to keep
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json' for structured logging

    # === Optional: Observability ===
    # Requires: pip install logfire
    enable_logfire: bool = False  # ENABLE_LOGFIRE - Enable distributed tracing
    logfire_token: str = ""  # LOGFIRE_TOKEN - Authentication token

    @property
    def enabled_sources(self) -> list[NewsSource]:
        return [source for source in self.sources if source.enabled]

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        max_per_source = _env_int("NEWS_MAX_PER_SOURCE", 10)
        sources_value = _env("NEWS_SOURCES")
        sources = parse_sources(sources_value, max_per_source) if sources_value else default_sources(max_per_source)
        reports_dir = _env("REPORTS_DIR")

        return cls(
            news_api_base_url=_env("NEWS_API_BASE_URL", "http://localhost:5173"),
            news_max_per_source=max_per_source,
            news_total_limit=_env_int("NEWS_TOTAL_LIMIT", 100),
            sources=sources,
            retry_attempts=_env_int("RETRY_ATTEMPTS", 3),
            request_timeout=_env_float("REQUEST_TIMEOUT", 15.0),
            cache_duration=_env_float("CACHE_DURATION", 3600.0),
            max_workers=_env_int("MAX_WORKERS", 8),
            enrichment_enabled=_env_bool("ENRICHMENT_ENABLED", True),
            enrichment_batch_size=_env_int("ENRICHMENT_BATCH_SIZE", 10),
            llm_enabled=_env_bool("LLM_ENABLED", False),
            llm_api_key=_env("LLM_API_KEY"),
            llm_base_url=_env("LLM_BASE_URL", "https://ark.cn-beijing.volces.com/api/v3"),
            llm_model=_env("LLM_MODEL"),
            summary_enabled=_env_bool("SUMMARY_ENABLED", True),
            language=_env("LANGUAGE", "zh"),
            webhook_enabled=_env_bool("WEBHOOK_ENABLED", False),
            webhook_url=_env("WEBHOOK_URL"),
            webhook_secret=_env("WEBHOOK_SECRET"),
            digest_file=_env("DIGEST_FILE"),
            reports_dir=Path(reports_dir) if reports_dir else None,
            poll_interval_seconds=_env_int("POLL_INTERVAL_SECONDS", 3600),
            log_dir=Path(_env("LOG_DIR", "log")),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
        )

    def validate(self) -> str | None:
        """Validate configuration for required fields and valid values.

        Returns:
            Error message string if invalid, None if valid.
        """
        if not self.news_api_base_url:
            return "NEWS_API_BASE_URL is required"
        if not self.sources:
            return "No news sources configured"
        if self.news_max_per_source <= 0:
            return "NEWS_MAX_PER_SOURCE must be positive"
        if self.news_total_limit <= 0:
            return "NEWS_TOTAL_LIMIT must be positive"
        if self.retry_attempts <= 0:
            return "RETRY_ATTEMPTS must be positive"
        if self.request_timeout <= 0:
            return "REQUEST_TIMEOUT must be positive"
        if self.cache_duration < 0:
            return "CACHE_DURATION must be non-negative"
        if self.max_workers <= 0:
            return "MAX_WORKERS must be positive"
        if self.enrichment_batch_size <= 0:
            return "ENRICHMENT_BATCH_SIZE must be positive"
        if self.llm_enabled and not self.llm_api_key:
            return "LLM_API_KEY is required when LLM_ENABLED is set"
        if self.llm_enabled and not self.llm_model:
            return "LLM_MODEL is required when LLM_ENABLED is set"
        if self.language not in ("zh", "en"):
            return f"Invalid LANGUAGE '{self.language}' - must be 'zh' or 'en'"
        if self.webhook_enabled:
            if not self.webhook_url:
                return "WEBHOOK_URL is required when WEBHOOK_ENABLED is set"
            if not self.webhook_url.startswith(("http://", "https://")):
                return "WEBHOOK_URL must be an http(s) URL"
        if self.poll_interval_seconds <= 0:
            return "POLL_INTERVAL_SECONDS must be positive"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
