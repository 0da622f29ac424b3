"""Configuration loading for the PropertyDesk service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .images import ALLOWED_IMAGE_TYPES, MAX_UPLOAD_BYTES
from .storage import resolve_storage_path


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_relative(raw: str, base_path: Optional[Path]) -> Path:
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute() and base_path is not None:
        candidate = base_path / candidate
    return candidate.resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    """Runtime settings for storage, uploads and the web interface."""

    storage_path: Path
    session_secret: Optional[str] = None
    seed_demo_data: bool = True
    auto_login_admin: bool = True
    allowed_image_types: Tuple[str, ...] = field(
        default_factory=lambda: tuple(sorted(ALLOWED_IMAGE_TYPES))
    )
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    storage_quota_bytes: Optional[int] = None

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from a parsed YAML mapping."""

        storage_raw = data.get("storage_path")
        if storage_raw:
            storage_path = _resolve_relative(str(storage_raw), base_path)
        else:
            storage_path = resolve_storage_path(None)

        types_raw = data.get("allowed_image_types")
        if types_raw is None:
            allowed_types = tuple(sorted(ALLOWED_IMAGE_TYPES))
        elif isinstance(types_raw, (list, tuple)):
            allowed_types = tuple(str(item).strip().lower() for item in types_raw if str(item).strip())
            if not allowed_types:
                raise ValueError("allowed_image_types must list at least one MIME type")
        else:
            raise ValueError("allowed_image_types must be a list of MIME types")

        max_upload = int(data.get("max_upload_bytes", MAX_UPLOAD_BYTES))  # type: ignore[arg-type]
        if max_upload <= 0:
            raise ValueError("max_upload_bytes must be positive")

        quota_raw = data.get("storage_quota_bytes")
        quota = int(quota_raw) if quota_raw is not None else None  # type: ignore[arg-type]

        secret = data.get("session_secret")
        return Settings(
            storage_path=storage_path,
            session_secret=str(secret) if secret else None,
            seed_demo_data=bool(data.get("seed_demo_data", True)),
            auto_login_admin=bool(data.get("auto_login_admin", True)),
            allowed_image_types=allowed_types,
            max_upload_bytes=max_upload,
            storage_quota_bytes=quota,
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML settings file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "settings.yaml").resolve(
            strict=False
        )
    return candidate


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (when the file exists) and apply environment overrides."""

    env: Mapping[str, str] = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("PROPDESK_CONFIG"))

    raw: Dict[str, object] = {}
    if path.is_file():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
        raw = loaded

    settings = Settings.from_dict(raw, base_path=path.parent)

    overrides: Dict[str, object] = {}
    if env.get("PROPDESK_STORAGE_PATH"):
        overrides["storage_path"] = resolve_storage_path(env["PROPDESK_STORAGE_PATH"])
    if env.get("PROPDESK_SESSION_SECRET"):
        overrides["session_secret"] = env["PROPDESK_SESSION_SECRET"]
    if env.get("PROPDESK_STORAGE_QUOTA"):
        overrides["storage_quota_bytes"] = int(env["PROPDESK_STORAGE_QUOTA"])
    if "PROPDESK_SEED_DEMO_DATA" in env:
        overrides["seed_demo_data"] = _env_flag(env["PROPDESK_SEED_DEMO_DATA"], True)
    if overrides:
        settings = replace(settings, **overrides)  # type: ignore[arg-type]
    return settings


__all__ = ["Settings", "load_settings", "resolve_config_path"]
