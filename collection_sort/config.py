"""
Run settings for a collection sort.

Values come from command-line flags, an optional YAML run file and the
process environment (``.env`` files are loaded first), in that order of
precedence.
"""

from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from collection_sort.errors import ConfigurationError

DEFAULT_API_VERSION = "2024-10"
DEFAULT_MOVE_DELAY_MS = 650
DEFAULT_RATE_LIMIT_COOLDOWN_SECONDS = 10.0
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

FORMAT_BY_SUFFIX = {
    ".csv": "csv",
    ".tsv": "csv",
    ".jsonl": "jsonl",
    ".ndjson": "jsonl",
    ".json": "jsonl",
}
RUN_FILE_KEYS = {"collection", "input", "format", "delay_ms", "log_dir"}


@dataclass(frozen=True)
class Settings:
    collection_handle: str
    input_path: pathlib.Path
    input_format: str
    shop_domain: str
    access_token: str
    api_version: str = DEFAULT_API_VERSION
    move_delay_ms: int = DEFAULT_MOVE_DELAY_MS
    rate_limit_cooldown_seconds: float = DEFAULT_RATE_LIMIT_COOLDOWN_SECONDS
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    log_dir: pathlib.Path = pathlib.Path(".")

    @property
    def endpoint(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    @property
    def masked_token(self) -> str:
        return f"{self.access_token[:10]}..."

    @property
    def move_delay_seconds(self) -> float:
        return self.move_delay_ms / 1000


def normalize_shop_domain(shop_url: str) -> str:
    domain = shop_url.strip()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    return domain.strip("/")


def detect_format(path: pathlib.Path, declared: str | None) -> str:
    if declared and declared != "auto":
        if declared not in {"csv", "jsonl"}:
            raise ConfigurationError(f"Unsupported input format: {declared}")
        return declared
    fmt = FORMAT_BY_SUFFIX.get(path.suffix.lower())
    if fmt is None:
        raise ConfigurationError(
            f"Cannot infer input format from '{path.name}'; pass --format csv or --format jsonl."
        )
    return fmt


def load_run_file(path: pathlib.Path) -> dict[str, Any]:
    """Read an optional YAML run file with collection/input/format/delay_ms/log_dir keys."""
    if not path.exists():
        raise ConfigurationError(f"Run file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid run file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Run file {path} must contain a mapping")
    unknown = set(data) - RUN_FILE_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown keys in run file {path}: {sorted(unknown)}")
    return data


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _as_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc
    if number < 0:
        raise ConfigurationError(f"{name} must not be negative, got {number}")
    return number


def _as_float(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if number < 0:
        raise ConfigurationError(f"{name} must not be negative, got {number}")
    return number


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def load_settings(
    *,
    collection: str | None = None,
    input_path: str | os.PathLike[str] | None = None,
    input_format: str | None = None,
    delay_ms: int | None = None,
    log_dir: str | os.PathLike[str] | None = None,
    run_file: str | os.PathLike[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    if environ is None:
        load_dotenv()
        environ = os.environ
    file_values = load_run_file(pathlib.Path(run_file)) if run_file else {}

    shop_url = _env_str(environ, "SHOP_URL")
    token = _env_str(environ, "SHOPIFY_ACCESS_TOKEN")
    if not shop_url or not token:
        raise ConfigurationError("Missing SHOP_URL or SHOPIFY_ACCESS_TOKEN in environment or .env file.")

    handle = _first(collection, file_values.get("collection"), _env_str(environ, "COLLECTION_HANDLE"))
    if not handle:
        raise ConfigurationError("A collection handle is required (--collection).")
    raw_input = _first(input_path, file_values.get("input"), _env_str(environ, "SALES_FILE"))
    if not raw_input:
        raise ConfigurationError("An input file is required (--input).")
    path = pathlib.Path(raw_input)
    fmt = detect_format(path, _first(input_format, file_values.get("format")))

    delay = _first(delay_ms, file_values.get("delay_ms"), _env_str(environ, "MOVE_DELAY_MS"))
    cooldown = _env_str(environ, "RATE_LIMIT_COOLDOWN_SECONDS")
    timeout = _env_str(environ, "HTTP_TIMEOUT_SECONDS")
    directory = _first(log_dir, file_values.get("log_dir"), _env_str(environ, "SORT_LOG_DIR"), ".")

    return Settings(
        collection_handle=str(handle).strip(),
        input_path=path,
        input_format=fmt,
        shop_domain=normalize_shop_domain(shop_url),
        access_token=token,
        api_version=_env_str(environ, "SHOPIFY_API_VERSION") or DEFAULT_API_VERSION,
        move_delay_ms=_as_int(delay, "MOVE_DELAY_MS") if delay is not None else DEFAULT_MOVE_DELAY_MS,
        rate_limit_cooldown_seconds=(
            _as_float(cooldown, "RATE_LIMIT_COOLDOWN_SECONDS")
            if cooldown is not None
            else DEFAULT_RATE_LIMIT_COOLDOWN_SECONDS
        ),
        http_timeout_seconds=(
            max(1.0, _as_float(timeout, "HTTP_TIMEOUT_SECONDS"))
            if timeout is not None
            else DEFAULT_HTTP_TIMEOUT_SECONDS
        ),
        log_dir=pathlib.Path(directory),
    )


def console_log_level(environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    return (_env_str(env, "SORT_LOG_LEVEL") or "INFO").upper()
