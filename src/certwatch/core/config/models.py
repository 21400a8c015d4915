"""
Pydantic configuration models for certwatch.

These models provide type-safe configuration with validation for:
- Fetch channels, retry and politeness settings
- Link discovery patterns
- Extraction mode and the LLM completion service
- Declared source endpoints
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, HttpUrl, field_validator


# =============================================================================
# Enums
# =============================================================================


class SourceKind(str, Enum):
    """How a source endpoint's page is processed."""

    LISTING = "listing"
    SINGLE = "single"


class ExtractionMode(str, Enum):
    """Extraction strategy modes."""

    AUTO = "auto"
    DETERMINISTIC = "deterministic"
    LLM = "llm"


# Scrape intervals an operator may pick for a source
ALLOWED_INTERVAL_HOURS = (6, 12, 24, 48)

DEFAULT_BLOCK_SIGNATURES = [
    "access denied",
    "captcha",
    "challenge-platform",
    "cf-browser-verification",
    "please verify you are human",
    "unusual traffic",
    "验证码",
    "访问被拒绝",
    "访问受限",
    "请开启javascript",
    "安全验证",
]

DEFAULT_RELEVANCE_KEYWORDS = [
    "绿证",
    "绿色电力证书",
    "绿色证书",
    "GEC",
    "绿电证书",
    "绿色电力交易证书",
    "可再生能源证书",
    "新能源证书",
]


# =============================================================================
# Fetch Configuration
# =============================================================================


class FetchConfig(BaseModel):
    """Fetcher channel and retry settings."""

    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries per channel after the first attempt",
    )
    retry_base_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Base delay for exponential backoff (base * 2^attempt)",
    )
    rate_limit_base_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Base delay after a 429 response (5s, 10s, 20s)",
    )
    jitter_ms: int = Field(
        default=500,
        ge=0,
        description="Uniform jitter window (+/-) added to every backoff delay",
    )
    min_content_length: int = Field(
        default=100,
        ge=0,
        description="Bodies shorter than this are rejected",
    )
    proxy_enabled: bool = Field(
        default=True,
        description="Fall back to the content-extraction proxy",
    )
    proxy_base_url: str = Field(
        default="https://r.jina.ai",
        description="Content-extraction proxy; target URL is appended to the path",
    )
    block_signatures: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOCK_SIGNATURES),
        description="Case-insensitive markers of block/CAPTCHA pages",
    )
    cookies: dict[str, str] = Field(
        default_factory=dict,
        description="Cookies sent on the disguised channel for defended sources",
    )
    user_agent: str | None = Field(
        default=None,
        description="Override the browser user agent",
    )


class PolitenessConfig(BaseModel):
    """Delays between successive requests to one site."""

    min_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Minimum delay between detail fetches in milliseconds",
    )
    max_delay_ms: int = Field(
        default=2000,
        ge=0,
        description="Maximum delay between detail fetches in milliseconds",
    )

    @field_validator("max_delay_ms")
    @classmethod
    def max_delay_gte_min(cls, v: int, info: Any) -> int:
        """Ensure max delay is at least min delay."""
        min_delay = info.data.get("min_delay_ms", 0)
        if v < min_delay:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        return v


# =============================================================================
# Discovery Configuration
# =============================================================================


class DiscoveryConfig(BaseModel):
    """Detail-link filtering and pagination for listing sources."""

    min_id_digits: int = Field(
        default=7,
        ge=1,
        description="Detail links must carry a numeric id of at least this many digits",
    )
    detail_patterns: list[str] = Field(
        default_factory=lambda: [r"\.jhtml$", r"\.s?html?$"],
        description="Regexes a detail page path must match",
    )
    index_patterns: list[str] = Field(
        default_factory=lambda: [r"/index(_\d+)?\.\w+$", r"/list(_\d+)?(\.\w+)?$"],
        description="Regexes identifying listing/index pages",
    )
    allow_patterns: list[str] = Field(
        default_factory=lambda: ["/lxcggg/", "/cggg/", "/zbgg/", "/zbhxr/"],
        description="Path segments of likely announcement pages",
    )
    deny_patterns: list[str] = Field(
        default_factory=lambda: [
            "/notice/",
            "/xtgg/",
            "/download",
            "/policy",
            "/contact",
            "/help",
            "/login",
            "/register",
            "/about",
        ],
        description="Path segments never followed",
    )
    allow_domains: list[str] = Field(
        default_factory=list,
        description="Extra hosts accepted by the plain-text fallback",
    )
    pagination_params: list[str] = Field(
        default_factory=lambda: ["page", "pageNo", "pageIndex", "currentPage", "p"],
        description="Query parameters recognised as page numbers",
    )
    max_pages: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum listing pages per source",
    )


# =============================================================================
# Extraction Configuration
# =============================================================================


class LLMConfig(BaseModel):
    """Chat-completions endpoint used by the LLM extractor."""

    enabled: bool = Field(default=False)
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL; /chat/completions is appended",
    )
    api_key: str | None = Field(default=None)
    model: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.1, ge=0.0, le=1.0)
    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for one completion call",
    )
    max_input_chars: int = Field(
        default=30000,
        ge=1000,
        description="Normalized content is truncated to this many characters",
    )


class ExtractionConfig(BaseModel):
    """Strategy chain settings."""

    mode: ExtractionMode = Field(default=ExtractionMode.AUTO)
    relevance_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RELEVANCE_KEYWORDS),
        description="Content must mention one of these; empty disables the check",
    )
    fuzzy_header_threshold: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Minimum thefuzz score for header fallback matching",
    )


# =============================================================================
# Source Configuration
# =============================================================================


class SourceConfig(BaseModel):
    """Operator-declared source endpoint, seeded into the store."""

    name: str = Field(..., min_length=1)
    url: HttpUrl
    kind: SourceKind = Field(default=SourceKind.LISTING)
    enabled: bool = Field(default=True)
    schedule_interval_hours: int = Field(default=24)
    defended: bool = Field(
        default=False,
        description="Site deploys anti-bot defenses; use the disguised channel",
    )
    min_content_length: int | None = Field(default=None, ge=0)
    owner_id: str | None = Field(default=None)

    @field_validator("schedule_interval_hours")
    @classmethod
    def interval_allowed(cls, v: int) -> int:
        if v not in ALLOWED_INTERVAL_HOURS:
            raise ValueError(f"schedule_interval_hours must be one of {ALLOWED_INTERVAL_HOURS}")
        return v


# =============================================================================
# Scheduler / Database / Logging
# =============================================================================


class SchedulerConfig(BaseModel):
    """Scheduler settings."""

    enabled: bool = Field(default=True)
    default_interval_hours: int = Field(default=24)
    timezone: str = Field(default="Asia/Shanghai")

    @field_validator("default_interval_hours")
    @classmethod
    def interval_allowed(cls, v: int) -> int:
        if v not in ALLOWED_INTERVAL_HOURS:
            raise ValueError(f"default_interval_hours must be one of {ALLOWED_INTERVAL_HOURS}")
        return v


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///data/certwatch.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging)",
    )


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=Path("logs/certwatch.log"),
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    Loaded from app.yaml and handed to the orchestrator at startup.
    """

    sources_file: Path = Field(
        default=Path("configs/sources.yaml"),
        description="Declared source endpoints",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    fetch: FetchConfig = Field(default_factory=FetchConfig)
    politeness: PolitenessConfig = Field(default_factory=PolitenessConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
