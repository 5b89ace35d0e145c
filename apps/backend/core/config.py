"""
Run configuration.

Settings come from three layers, lowest precedence first:
1. ``CRAWLER_*`` environment variables (optionally loaded from ``.env``)
2. a JSON input file
3. explicit overrides (CLI flags)

JSON input accepts both camelCase and snake_case keys.
"""

import json
import logging
import math
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from core.extraction_heuristics import normalize_url

logger = logging.getLogger(__name__)

LISTING_ROOT = "https://www.freelancer.com/jobs"

DEFAULT_RESULTS_WANTED = 100
DEFAULT_MAX_PAGES = 20
DEFAULT_REQUEST_DELAY_MS = 1500
MIN_REQUEST_DELAY_MS = 500
MAX_REQUEST_DELAY_MS = 10000

UNBOUNDED_SENTINELS = {'unbounded', 'inf', 'infinity', '+inf', 'none', 'null'}

# Environment variable -> RunConfig field
ENV_VARS = {
    'CRAWLER_USER_AGENT': 'user_agent',
    'CRAWLER_MAX_CONCURRENCY': 'max_concurrency',
    'CRAWLER_REQUEST_DELAY_MS': 'request_delay_ms',
    'CRAWLER_PROXY_URL': 'proxy_url',
    'CRAWLER_OUTPUT_PATH': 'output_path',
    'CRAWLER_LOG_LEVEL': 'log_level',
}

# Filters accepted in input but not applied to requests or results
UNAPPLIED_FILTER_DEFAULTS = {
    'min_budget': None,
    'max_budget': None,
    'job_type': 'all',
    'sort_by': 'relevance',
}


class ConfigurationError(ValueError):
    """Unusable run configuration. Fatal before any target is processed."""


class RunConfig(BaseModel):
    """Validated settings for one crawl run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    keyword: str = ''
    category: str = ''
    # None means unbounded
    results_wanted: Optional[int] = DEFAULT_RESULTS_WANTED
    max_pages: int = Field(
        DEFAULT_MAX_PAGES,
        validation_alias=AliasChoices('max_pages', 'maxPages', 'maxPagesPerChain'),
    )
    collect_details: bool = True
    dedupe: bool = True
    use_api_first: bool = Field(
        True,
        validation_alias=AliasChoices('use_api_first', 'useApiFirst', 'useRemoteApiFirst'),
    )
    start_urls: List[str] = []
    start_url: Optional[str] = None
    url: Optional[str] = None

    request_delay_ms: int = Field(
        DEFAULT_REQUEST_DELAY_MS,
        validation_alias=AliasChoices('request_delay_ms', 'requestDelayMs', 'requestDelay'),
    )
    max_concurrency: int = 5
    max_request_retries: int = 5
    request_timeout: float = 60.0
    proxy_url: Optional[str] = None
    user_agent: Optional[str] = None
    output_path: Optional[str] = None
    log_level: str = 'INFO'

    min_budget: Optional[float] = None
    max_budget: Optional[float] = None
    job_type: str = 'all'
    sort_by: str = 'relevance'

    @field_validator('results_wanted', mode='before')
    @classmethod
    def _parse_results_wanted(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip().lower()
            if stripped in UNBOUNDED_SENTINELS:
                return None
            try:
                value = float(stripped)
            except ValueError:
                raise ValueError(f"results_wanted must be a number or 'unbounded', got {value!r}")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"results_wanted must be a number, got {value!r}")
        if not math.isfinite(value):
            return None
        return max(1, int(value))

    @field_validator('max_pages', mode='before')
    @classmethod
    def _parse_max_pages(cls, value: Any) -> int:
        try:
            pages = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return DEFAULT_MAX_PAGES
        return max(1, pages)

    @field_validator('request_delay_ms', mode='before')
    @classmethod
    def _clamp_request_delay(cls, value: Any) -> int:
        try:
            delay = int(float(value))
        except (TypeError, ValueError, OverflowError):
            delay = 0
        if delay <= 0:
            delay = DEFAULT_REQUEST_DELAY_MS
        return max(MIN_REQUEST_DELAY_MS, min(MAX_REQUEST_DELAY_MS, delay))

    @field_validator('max_concurrency')
    @classmethod
    def _min_concurrency(cls, value: int) -> int:
        return max(1, value)

    @field_validator('max_request_retries')
    @classmethod
    def _min_retries(cls, value: int) -> int:
        return max(0, value)

    @field_validator('request_timeout')
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError('request_timeout must be positive')
        return value

    @field_validator('start_urls', mode='before')
    @classmethod
    def _flatten_start_urls(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            value = [value]
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"start_urls must be a list, got {type(value).__name__}")
        urls = []
        for item in value:
            if isinstance(item, str):
                urls.append(item)
            elif isinstance(item, dict) and item.get('url'):
                urls.append(str(item['url']))
        return urls

    @field_validator('keyword', 'category', mode='before')
    @classmethod
    def _blank_to_empty(cls, value: Any) -> str:
        return '' if value is None else str(value).strip()

    def seed_urls(self) -> List[str]:
        """
        Seed listing URLs in input order, normalized and deduplicated.

        Falls back to a URL built from the category when no seed is given.

        Raises:
            ConfigurationError: if no usable seed URL remains
        """
        candidates = list(self.start_urls)
        if self.start_url:
            candidates.append(self.start_url)
        if self.url:
            candidates.append(self.url)
        if not candidates:
            candidates.append(build_start_url(self.keyword, self.category))

        seeds = []
        for candidate in candidates:
            normalized = normalize_url(candidate.strip())
            if normalized is None:
                logger.warning(f"[config] Discarding malformed seed URL: {candidate}")
                continue
            if normalized not in seeds:
                seeds.append(normalized)

        if not seeds:
            raise ConfigurationError("No usable seed URL")
        return seeds

    def unapplied_filters(self) -> Dict[str, Any]:
        """Filters set to a non-default value; these are accepted but not applied."""
        return {
            name: getattr(self, name)
            for name, default in UNAPPLIED_FILTER_DEFAULTS.items()
            if getattr(self, name) != default
        }


def build_start_url(keyword: str = '', category: str = '') -> str:
    """
    Listing URL for a category.

    The keyword is only sent to the remote API; listing URLs are browsed by
    category.
    """
    base = LISTING_ROOT
    if category:
        slug = '-'.join(category.lower().split())
        base = f"{base}/{quote(slug, safe='')}"
    return base


def env_settings() -> Dict[str, str]:
    """RunConfig fields set through ``CRAWLER_*`` environment variables."""
    settings = {}
    for var, name in ENV_VARS.items():
        value = os.getenv(var)
        if value not in (None, ''):
            settings[name] = value
    return settings


def read_input_file(path: str) -> Dict[str, Any]:
    """Load a JSON input file into a dict."""
    try:
        with open(Path(path), 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read input file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Input file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Input file {path} must contain a JSON object")
    return data


def load_run_config(
    input_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    use_env: bool = True,
) -> RunConfig:
    """
    Build a RunConfig from environment, input file and overrides.

    Overrides with a value of None are ignored so unset CLI flags do not
    mask lower layers.

    Raises:
        ConfigurationError: on unreadable input or invalid values
    """
    merged: Dict[str, Any] = {}
    if use_env:
        merged.update(env_settings())
    if input_path:
        merged.update(_to_field_names(read_input_file(input_path)))
    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        config = RunConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.info(
        f"[config] results_wanted={config.results_wanted or 'unbounded'}, "
        f"max_pages={config.max_pages}, collect_details={config.collect_details}, "
        f"dedupe={config.dedupe}, use_api_first={config.use_api_first}"
    )
    return config


def _to_field_names(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase input keys onto RunConfig field names so layers merge by field."""
    aliases = {}
    for name, info in RunConfig.model_fields.items():
        aliases[name] = name
        if info.alias:
            aliases[info.alias] = name
        choices = getattr(info.validation_alias, 'choices', None) or []
        for choice in choices:
            aliases[choice] = name

    mapped = {}
    for key, value in data.items():
        mapped[aliases.get(key, key)] = value
    return mapped
