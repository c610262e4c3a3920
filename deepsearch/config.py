"""Service configuration populated from environment variables."""

import os
from dataclasses import dataclass, field
from typing import Literal

from deepsearch.clients.anthropic import AnthropicConfig


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if not value:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class AgentConfig:
    """Configuration for the orchestration loop."""

    max_steps: int = 10
    turn_deadline_seconds: float = 60.0
    search_result_count: int = 10


@dataclass
class CrawlerConfig:
    """Configuration for the bulk crawler and its fetch primitive."""

    max_urls: int = 20
    max_concurrency: int = 5
    request_timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.5
    backoff_multiplier: float = 2.0
    backoff_max: float = 8.0
    jitter: bool = True
    check_robots: bool = True
    max_page_chars: int = 20_000
    user_agent: str = "deepsearch/0.1 (+https://github.com/deepsearch)"


@dataclass
class SearchConfig:
    """Configuration for the Serper web-search client."""

    api_key: str | None = None
    base_url: str = "https://google.serper.dev/search"
    timeout: float = 15.0


@dataclass
class RateLimitConfig:
    """Configuration for per-user request limiting.

    ``policy`` decides what happens when the limit is hit: ``reject`` answers
    immediately, ``wait`` sleeps until the window resets (up to ``wait_retries``
    times, never longer than ``wait_max_seconds`` per wait) before giving up.
    """

    limit: str = "50/day"
    policy: Literal["reject", "wait"] = "reject"
    scope: Literal["user", "global"] = "user"
    wait_retries: int = 3
    wait_max_seconds: float = 5.0
    admin_user_ids: frozenset[str] = frozenset()


@dataclass
class Settings:
    """All service settings."""

    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        anthropic = AnthropicConfig()
        anthropic.model = os.getenv("ANTHROPIC_MODEL", anthropic.model)

        agent = AgentConfig(
            max_steps=_env_int("AGENT_MAX_STEPS", AgentConfig.max_steps),
            turn_deadline_seconds=_env_float("AGENT_TURN_DEADLINE_SECONDS", AgentConfig.turn_deadline_seconds),
            search_result_count=_env_int("AGENT_SEARCH_RESULT_COUNT", AgentConfig.search_result_count),
        )

        crawler = CrawlerConfig(
            max_urls=_env_int("CRAWLER_MAX_URLS", CrawlerConfig.max_urls),
            max_concurrency=_env_int("CRAWLER_MAX_CONCURRENCY", CrawlerConfig.max_concurrency),
            request_timeout=_env_float("CRAWLER_REQUEST_TIMEOUT", CrawlerConfig.request_timeout),
            max_retries=_env_int("CRAWLER_MAX_RETRIES", CrawlerConfig.max_retries),
            check_robots=_env_bool("CRAWLER_CHECK_ROBOTS", CrawlerConfig.check_robots),
        )

        search = SearchConfig(api_key=os.getenv("SERPER_API_KEY"))

        admin_ids = os.getenv("ADMIN_USER_IDS", "")
        rate_limit = RateLimitConfig(
            limit=os.getenv("RATE_LIMIT", RateLimitConfig.limit),
            policy="wait" if os.getenv("RATE_LIMIT_POLICY", "reject").lower() == "wait" else "reject",
            scope="global" if os.getenv("RATE_LIMIT_SCOPE", "user").lower() == "global" else "user",
            admin_user_ids=frozenset(uid.strip() for uid in admin_ids.split(",") if uid.strip()),
        )

        return cls(anthropic=anthropic, agent=agent, crawler=crawler, search=search, rate_limit=rate_limit)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
