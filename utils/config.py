"""
Configuration loader: YAML + env overrides.
No hardcoded model names or keys in the pipeline; all from config.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from core.exceptions import ConfigError
from core.models import Credential, ModelTier

PACING_MODES = ("interval", "window")
PACING_SCOPES = ("global", "per_credential")
NOT_FOUND_POLICIES = ("retry", "fail")
DEFAULT_TIERS = ("gemini-2.5-flash", "gemini-2.5-flash-lite")


def _coerce_bool(s: Any) -> bool:
    if isinstance(s, bool):
        return s
    return (str(s).strip().lower() in ("1", "true", "yes")) if s else False


def _coerce_float(s: Any) -> float:
    if s is None or s == "":
        return 0.0
    try:
        return float(s)
    except (TypeError, ValueError):
        return 0.0


def _coerce_int(s: Any) -> int:
    if s is None or s == "":
        return 0
    try:
        return int(s)
    except (TypeError, ValueError):
        return 0


def _coerce_list(s: Any) -> tuple[str, ...]:
    """Comma-separated string or YAML list -> tuple of non-empty stripped strings."""
    if s is None:
        return ()
    items = s.split(",") if isinstance(s, str) else list(s)
    return tuple(str(i).strip() for i in items if str(i).strip())


@dataclass(frozen=True)
class RecognitionConfig:
    """Recognition provider, credentials and model tiers (primary first)."""

    provider: str = "gemini"
    base_url: str = ""
    api_keys: tuple[str, ...] = field(default=(), repr=False)
    tiers: tuple[str, ...] = DEFAULT_TIERS
    timeout_sec: int = 60
    max_image_px: int = 0  # 0 = send images unchanged

    def credentials(self) -> list[Credential]:
        return [Credential(id=f"key-{i + 1}", api_key=k) for i, k in enumerate(self.api_keys)]

    def model_tiers(self) -> list[ModelTier]:
        out: list[ModelTier] = []
        for i, model in enumerate(self.tiers):
            name = "primary" if i == 0 else ("fallback" if i == 1 else f"fallback-{i}")
            out.append(ModelTier(name=name, model=model))
        return out


@dataclass(frozen=True)
class RetryConfig:
    """Rounds per tier and backoff between rounds."""

    max_retries: int = 5
    backoff_base_sec: float = 2.0
    backoff_multiplier: float = 2.0
    jitter_sec: float = 1.0
    transient_status_codes: tuple[int, ...] = (429, 500, 503, 504)
    quota_markers: tuple[str, ...] = ("PerDay", "per day", "daily")


@dataclass(frozen=True)
class PacingConfig:
    """Rate limit toward the recognition service."""

    mode: str = "interval"  # interval | window
    scope: str = "global"  # global | per_credential
    max_requests: int = 5
    period_sec: float = 60.0
    min_interval_sec: float = 0.0  # 0 = derive from max_requests / period_sec

    def effective_interval(self) -> float:
        if self.min_interval_sec > 0:
            return self.min_interval_sec
        if self.max_requests <= 0:
            return 0.0
        return self.period_sec / self.max_requests


@dataclass(frozen=True)
class ExtractionConfig:
    """Output validation policy."""

    consumer_number_length: int = 12
    not_found_policy: str = "retry"  # retry | fail
    prompt_file: str = "consumer_number_extraction.txt"


@dataclass(frozen=True)
class StorageConfig:
    """Input/destination folders and the registry database."""

    input_dir: str = "Images"
    success_dir: str = "SuccessImages"
    failed_dir: str = "FailedImages"
    pending_dir: str = "PendingImages"
    output_dir: str = "output"
    database_url: str = "sqlite:///consumer_numbers.db"


@dataclass(frozen=True)
class AppConfig:
    """Immutable application configuration. Built from YAML + env."""

    log_level: str = "INFO"
    max_workers: int = 4
    dry_run: bool = False
    recognition: RecognitionConfig = field(default_factory=RecognitionConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    pacing: PacingConfig = field(default_factory=PacingConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def with_overrides(self, **overrides: Any) -> AppConfig:
        """Return new config with replaced keys (top-level; nested sections replaced whole)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> AppConfig:
        """Raise ConfigError on values the engine cannot run with."""
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.retry.max_retries < 1:
            raise ConfigError(f"retry.max_retries must be >= 1, got {self.retry.max_retries}")
        if not self.recognition.tiers:
            raise ConfigError("recognition.tiers must name at least one model")
        if self.pacing.mode not in PACING_MODES:
            raise ConfigError(f"pacing.mode must be one of {PACING_MODES}, got {self.pacing.mode!r}")
        if self.pacing.scope not in PACING_SCOPES:
            raise ConfigError(f"pacing.scope must be one of {PACING_SCOPES}, got {self.pacing.scope!r}")
        if self.pacing.min_interval_sec < 0:
            raise ConfigError(f"pacing.min_interval_sec must be >= 0, got {self.pacing.min_interval_sec}")
        # An explicit interval makes the request budget irrelevant.
        if self.pacing.mode == "window" or self.pacing.min_interval_sec == 0:
            if self.pacing.max_requests < 1:
                raise ConfigError(f"pacing.max_requests must be >= 1, got {self.pacing.max_requests}")
            if self.pacing.period_sec <= 0:
                raise ConfigError(f"pacing.period_sec must be > 0, got {self.pacing.period_sec}")
        if self.extraction.not_found_policy not in NOT_FOUND_POLICIES:
            raise ConfigError(
                f"extraction.not_found_policy must be one of {NOT_FOUND_POLICIES}, "
                f"got {self.extraction.not_found_policy!r}"
            )
        if self.extraction.consumer_number_length < 1:
            raise ConfigError("extraction.consumer_number_length must be >= 1")
        return self

    def require_credentials(self) -> list[Credential]:
        creds = self.recognition.credentials()
        if not creds:
            raise ConfigError("No API keys configured. Set GEMINI_API_KEYS (comma-separated) or GEMINI_API_KEY.")
        return creds


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _config_from_dict(data: dict[str, Any]) -> AppConfig:
    """Build AppConfig from nested dict. Env overrides applied in load_config."""
    rec = data.get("recognition") or {}
    ret = data.get("retry") or {}
    pac = data.get("pacing") or {}
    ext = data.get("extraction") or {}
    sto = data.get("storage") or {}
    defaults = RetryConfig()
    return AppConfig(
        log_level=str(data.get("log_level", "INFO")),
        max_workers=_coerce_int(data.get("max_workers", 4)),
        dry_run=_coerce_bool(data.get("dry_run", False)),
        recognition=RecognitionConfig(
            provider=str(rec.get("provider", "gemini")).strip().lower(),
            base_url=str(rec.get("base_url", "") or ""),
            api_keys=_coerce_list(rec.get("api_keys")),
            tiers=_coerce_list(rec.get("tiers")) or DEFAULT_TIERS,
            timeout_sec=_coerce_int(rec.get("timeout_sec", 60)),
            max_image_px=_coerce_int(rec.get("max_image_px", 0)),
        ),
        retry=RetryConfig(
            max_retries=_coerce_int(ret.get("max_retries", 5)),
            backoff_base_sec=_coerce_float(ret.get("backoff_base_sec", 2.0)),
            backoff_multiplier=_coerce_float(ret.get("backoff_multiplier", 2.0)),
            jitter_sec=_coerce_float(ret.get("jitter_sec", 1.0)),
            transient_status_codes=tuple(
                _coerce_int(c) for c in ret.get("transient_status_codes", defaults.transient_status_codes)
            ),
            quota_markers=_coerce_list(ret.get("quota_markers")) or defaults.quota_markers,
        ),
        pacing=PacingConfig(
            mode=str(pac.get("mode", "interval")).strip().lower(),
            scope=str(pac.get("scope", "global")).strip().lower(),
            max_requests=_coerce_int(pac.get("max_requests", 5)),
            period_sec=_coerce_float(pac.get("period_sec", 60.0)),
            min_interval_sec=_coerce_float(pac.get("min_interval_sec", 0.0)),
        ),
        extraction=ExtractionConfig(
            consumer_number_length=_coerce_int(ext.get("consumer_number_length", 12)),
            not_found_policy=str(ext.get("not_found_policy", "retry")).strip().lower(),
            prompt_file=str(ext.get("prompt_file", "consumer_number_extraction.txt")),
        ),
        storage=StorageConfig(
            input_dir=str(sto.get("input_dir", "Images")),
            success_dir=str(sto.get("success_dir", "SuccessImages")),
            failed_dir=str(sto.get("failed_dir", "FailedImages")),
            pending_dir=str(sto.get("pending_dir", "PendingImages")),
            output_dir=str(sto.get("output_dir", "output")),
            database_url=str(sto.get("database_url", "sqlite:///consumer_numbers.db")),
        ),
    )


def _env(key: str) -> str | None:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """
    Load config from YAML file, then apply env overrides (.env is loaded first).
    Env vars: LOG_LEVEL, MAX_WORKERS, DRY_RUN, RECOGNITION_PROVIDER, RECOGNITION_BASE_URL,
    GEMINI_API_KEYS / GEMINI_API_KEY, MODEL_TIERS, MAX_RETRIES, RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_PERIOD_SEC, RATE_LIMIT_SCOPE, RATE_LIMIT_MODE, NOT_FOUND_POLICY,
    INPUT_DIR, SUCCESS_DIR, FAILED_DIR, PENDING_DIR, OUTPUT_DIR, DATABASE_URL.
    """
    load_dotenv()
    path = Path(config_path) if config_path else Path("config.yaml")
    if config_path and not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    cfg = _config_from_dict(_load_yaml(path))

    overrides: dict[str, Any] = {}
    if _env("LOG_LEVEL"):
        overrides["log_level"] = _env("LOG_LEVEL")
    if _env("MAX_WORKERS"):
        overrides["max_workers"] = _coerce_int(_env("MAX_WORKERS"))
    if _env("DRY_RUN"):
        overrides["dry_run"] = _coerce_bool(_env("DRY_RUN"))

    rec = cfg.recognition
    keys = _coerce_list(_env("GEMINI_API_KEYS")) or _coerce_list(_env("GEMINI_API_KEY"))
    rec = replace(
        rec,
        provider=(_env("RECOGNITION_PROVIDER") or rec.provider).lower(),
        base_url=_env("RECOGNITION_BASE_URL") or rec.base_url,
        api_keys=keys or rec.api_keys,
        tiers=_coerce_list(_env("MODEL_TIERS")) or rec.tiers,
    )
    if rec != cfg.recognition:
        overrides["recognition"] = rec

    if _env("MAX_RETRIES"):
        overrides["retry"] = replace(cfg.retry, max_retries=_coerce_int(_env("MAX_RETRIES")))

    pac = replace(
        cfg.pacing,
        mode=(_env("RATE_LIMIT_MODE") or cfg.pacing.mode).lower(),
        scope=(_env("RATE_LIMIT_SCOPE") or cfg.pacing.scope).lower(),
        max_requests=_coerce_int(_env("RATE_LIMIT_MAX_REQUESTS")) if _env("RATE_LIMIT_MAX_REQUESTS") else cfg.pacing.max_requests,
        period_sec=_coerce_float(_env("RATE_LIMIT_PERIOD_SEC")) if _env("RATE_LIMIT_PERIOD_SEC") else cfg.pacing.period_sec,
    )
    if pac != cfg.pacing:
        overrides["pacing"] = pac

    if _env("NOT_FOUND_POLICY"):
        overrides["extraction"] = replace(cfg.extraction, not_found_policy=_env("NOT_FOUND_POLICY").lower())

    sto = replace(
        cfg.storage,
        input_dir=_env("INPUT_DIR") or cfg.storage.input_dir,
        success_dir=_env("SUCCESS_DIR") or cfg.storage.success_dir,
        failed_dir=_env("FAILED_DIR") or cfg.storage.failed_dir,
        pending_dir=_env("PENDING_DIR") or cfg.storage.pending_dir,
        output_dir=_env("OUTPUT_DIR") or cfg.storage.output_dir,
        database_url=_env("DATABASE_URL") or cfg.storage.database_url,
    )
    if sto != cfg.storage:
        overrides["storage"] = sto

    if overrides:
        cfg = cfg.with_overrides(**overrides)
    return cfg.validate()
