"""Process configuration read once from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

DEFAULT_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _path(env: Mapping[str, str], name: str) -> Path | None:
    raw = (env.get(name) or "").strip()
    return Path(raw).expanduser() if raw else None


@dataclass(frozen=True, slots=True)
class Settings:
    cors_origins: tuple[str, ...] = DEFAULT_ORIGINS
    log_level: str = "INFO"
    cloudinary_cloud_name: str | None = None
    cloudinary_api_key: str | None = None
    cloudinary_api_secret: str | None = field(default=None, repr=False)
    upload_timeout: float = 60.0
    proof_folder: str = "work-query-proofs"
    store_dir: Path | None = None
    service_catalog_path: Path | None = None
    strict_transitions: bool = False
    max_file_mb: int = 25
    max_files: int = 10
    max_fields: int = 20

    @property
    def max_file_bytes(self) -> int:
        return self.max_file_mb * 1024 * 1024

    @property
    def cloudinary_enabled(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env

        origins_env = env.get("API_CORS_ORIGINS", "")
        origins = tuple(origin.strip() for origin in origins_env.split(",") if origin.strip())

        return cls(
            cors_origins=origins or DEFAULT_ORIGINS,
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
            cloudinary_cloud_name=env.get("CLOUDINARY_CLOUD_NAME") or None,
            cloudinary_api_key=env.get("CLOUDINARY_API_KEY") or None,
            cloudinary_api_secret=env.get("CLOUDINARY_API_SECRET") or None,
            upload_timeout=_float(env, "CLOUDINARY_UPLOAD_TIMEOUT", 60.0),
            proof_folder=(env.get("WORK_QUERY_FOLDER") or "work-query-proofs").strip("/ "),
            store_dir=_path(env, "WORK_QUERY_STORE_DIR"),
            service_catalog_path=_path(env, "SERVICE_CATALOG_PATH"),
            strict_transitions=_bool(env, "WORK_QUERY_STRICT_TRANSITIONS", False),
            max_file_mb=_int(env, "MAX_PROOF_FILE_MB", 25),
            max_files=_int(env, "MAX_PROOF_FILES", 10),
            max_fields=_int(env, "MAX_FORM_FIELDS", 20),
        )
