from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError
from .retry import RetryPolicy

DEFAULT_CONFIG_PATH = os.path.join("config", "pipeline_config.json")

# JSON option keys -> ScrapeOptions fields. Legacy keys are accepted as aliases.
OPTION_KEYS: Dict[str, str] = {
    "numberOfWorkers": "number_of_workers",
    "pauseBetweenItemsMs": "pause_between_items_ms",
    "scraperPauseMs": "pause_between_items_ms",
    "perItemTimeoutMs": "per_item_timeout_ms",
    "pageTimeoutMs": "per_item_timeout_ms",
    "maxRetriesPerItem": "max_retries_per_item",
    "maxRetriesPerCompany": "max_retries_per_item",
    "retryDelayMs": "retry_delay_ms",
    "impersonate": "impersonate",
    "sessionProbeUrl": "session_probe_url",
}


@dataclass(frozen=True)
class ScrapeOptions:
    """Per-run options for the worker pool.

    number_of_workers       parallel execution units, >= 1 (default 3)
    pause_between_items_ms  idle time between two items of one unit, >= 0 (default 2000)
    per_item_timeout_ms     hard limit for one attempt, > 0 (default 60000)
    max_retries_per_item    retries after the first attempt, >= 0 (default 0)
    retry_delay_ms          fixed delay between attempts, >= 0 (default 3000)
    impersonate             curl_cffi browser profile; None selects plain requests
    session_probe_url       optional URL fetched when a session is established
    """

    number_of_workers: int = 3
    pause_between_items_ms: int = 2000
    per_item_timeout_ms: int = 60000
    max_retries_per_item: int = 0
    retry_delay_ms: int = 3000
    impersonate: Optional[str] = "chrome120"
    session_probe_url: Optional[str] = None

    def __post_init__(self) -> None:
        _check_int("number_of_workers", self.number_of_workers, minimum=1)
        _check_int("pause_between_items_ms", self.pause_between_items_ms, minimum=0)
        _check_int("per_item_timeout_ms", self.per_item_timeout_ms, minimum=1)
        _check_int("max_retries_per_item", self.max_retries_per_item, minimum=0)
        _check_int("retry_delay_ms", self.retry_delay_ms, minimum=0)

    @property
    def pause_seconds(self) -> float:
        return self.pause_between_items_ms / 1000.0

    @property
    def timeout_seconds(self) -> float:
        return self.per_item_timeout_ms / 1000.0

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries_per_item, delay_seconds=self.retry_delay_ms / 1000.0)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ScrapeOptions":
        values: Dict[str, Any] = {}
        for key, value in raw.items():
            name = OPTION_KEYS.get(key)
            if name is not None:
                values[name] = value
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "ScrapeOptions":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@dataclass(frozen=True)
class InputPaths:
    companies: str = os.path.join("data", "processed_companies.json")
    cookies: str = os.path.join("config", "cookies.json")


@dataclass(frozen=True)
class OutputPaths:
    scraped_financials: str = os.path.join("data", "scraped_financials.jsonl")
    merged_long: str = os.path.join("data", "merged_data_long.json")
    merged_wide: str = os.path.join("data", "merged_data_wide.json")
    merged_long_csv: str = os.path.join("output", "merged_data_long.csv")
    merged_wide_csv: str = os.path.join("output", "merged_data_wide.csv")


@dataclass(frozen=True)
class Steps:
    scrape_financial_details: bool = True
    run_merging_long: bool = True
    run_pivoting_wide: bool = True
    run_csv_conversion_long: bool = True
    run_csv_conversion_wide: bool = True


@dataclass(frozen=True)
class PipelineConfig:
    inputs: InputPaths = field(default_factory=InputPaths)
    outputs: OutputPaths = field(default_factory=OutputPaths)
    options: ScrapeOptions = field(default_factory=ScrapeOptions)
    steps: Steps = field(default_factory=Steps)
    cleanup_intermediate_files: bool = False
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PipelineConfig":
        if not isinstance(raw, Mapping):
            raise ConfigError("configuration must be a JSON object")
        options = _section(raw, "options")
        logging_section = _section(raw, "logging")
        try:
            return cls(
                inputs=_camel_dataclass(InputPaths, _section(raw, "inputFilePaths")),
                outputs=_camel_dataclass(OutputPaths, _section(raw, "outputFilePaths")),
                options=ScrapeOptions.from_mapping(options),
                steps=_camel_dataclass(Steps, _section(raw, "stepsToRun")),
                cleanup_intermediate_files=bool(options.get("cleanupIntermediateFiles", False)),
                log_level=str(logging_section.get("level", "INFO")),
                log_format=str(logging_section.get("format", "json")),
            )
        except TypeError as exc:
            raise ConfigError(f"invalid configuration: {exc}") from exc


def load_config(path: str = DEFAULT_CONFIG_PATH) -> PipelineConfig:
    """Load a PipelineConfig from a JSON file. Any problem is a ConfigError."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"configuration file not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"could not read configuration {path}: {exc}") from exc
    return PipelineConfig.from_mapping(raw)


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' must be an object")
    return value


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _camel_dataclass(cls: Any, raw: Mapping[str, Any]) -> Any:
    values = {}
    for f in fields(cls):
        key = _camel(f.name)
        if key in raw:
            values[f.name] = raw[key]
    return cls(**values)


def _check_int(name: str, value: Any, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
