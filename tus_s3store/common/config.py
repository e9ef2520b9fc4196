from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

KIB = 1024
MIB = KIB * 1024
GIB = MIB * 1024


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def normalize_prefix(prefix: str) -> str:
    """Strip a leading slash and make sure a non-empty prefix ends with one."""
    cleaned = (prefix or "").strip().lstrip("/")
    if cleaned and not cleaned.endswith("/"):
        cleaned += "/"
    return cleaned


@dataclass
class Settings:
    S3_BUCKET: str | None = None
    S3_ENDPOINT_URL: str | None = None
    S3_REGION: str = "us-east-1"
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_USE_SSL: bool = True
    S3_ADDRESSING_STYLE: str = "path"
    FILE_OBJECT_PREFIX: str = "files/"
    UPLOAD_INFO_OBJECT_PREFIX: str = "upload-info/"
    MIN_PART_SIZE_BYTES: int = 5 * MIB
    PREFERRED_PART_SIZE_BYTES: int = 50 * MIB
    MAX_PART_SIZE_BYTES: int = 5 * GIB
    MAX_MULTIPART_PARTS: int = 1_000
    UPLOAD_EXPIRATION_SECONDS: int = 24 * 60 * 60
    LIST_PAGE_SIZE: int = 1_000
    CONTENT_CHUNK_SIZE_BYTES: int = 1 * MIB
    RECONCILE_INTERVAL_SECONDS: int = 60 * 60
    ORPHAN_GRACE_SECONDS: int = 0
    ENABLE_METRICS: bool = True

    def __post_init__(self) -> None:
        self.FILE_OBJECT_PREFIX = normalize_prefix(self.FILE_OBJECT_PREFIX)
        self.UPLOAD_INFO_OBJECT_PREFIX = normalize_prefix(
            self.UPLOAD_INFO_OBJECT_PREFIX
        )
        files = self.FILE_OBJECT_PREFIX
        infos = self.UPLOAD_INFO_OBJECT_PREFIX
        if files == infos:
            raise ValueError(
                "FILE_OBJECT_PREFIX and UPLOAD_INFO_OBJECT_PREFIX must be distinct "
                f"(both are {files!r})."
            )
        if files.startswith(infos) or infos.startswith(files):
            raise ValueError(
                "FILE_OBJECT_PREFIX and UPLOAD_INFO_OBJECT_PREFIX must not be nested "
                f"({files!r}, {infos!r})."
            )

        if self.MIN_PART_SIZE_BYTES <= 0:
            raise ValueError("MIN_PART_SIZE_BYTES must be positive.")
        if self.MAX_MULTIPART_PARTS < 1:
            raise ValueError("MAX_MULTIPART_PARTS must be at least 1.")
        if not (
            self.MIN_PART_SIZE_BYTES
            <= self.PREFERRED_PART_SIZE_BYTES
            <= self.MAX_PART_SIZE_BYTES
        ):
            raise ValueError(
                "Part sizes must satisfy MIN_PART_SIZE_BYTES <= "
                "PREFERRED_PART_SIZE_BYTES <= MAX_PART_SIZE_BYTES "
                f"(got {self.MIN_PART_SIZE_BYTES}, {self.PREFERRED_PART_SIZE_BYTES}, "
                f"{self.MAX_PART_SIZE_BYTES})."
            )

        for name in (
            "UPLOAD_EXPIRATION_SECONDS",
            "LIST_PAGE_SIZE",
            "CONTENT_CHUNK_SIZE_BYTES",
            "RECONCILE_INTERVAL_SECONDS",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive.")
        if self.ORPHAN_GRACE_SECONDS < 0:
            raise ValueError("ORPHAN_GRACE_SECONDS must not be negative.")

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        env = os.environ
        return cls(
            S3_BUCKET=env.get("S3_BUCKET"),
            S3_ENDPOINT_URL=env.get("S3_ENDPOINT_URL"),
            S3_REGION=env.get("S3_REGION", cls.S3_REGION),
            S3_ACCESS_KEY_ID=env.get("S3_ACCESS_KEY_ID"),
            S3_SECRET_ACCESS_KEY=env.get("S3_SECRET_ACCESS_KEY"),
            S3_USE_SSL=_as_bool(env.get("S3_USE_SSL"), cls.S3_USE_SSL),
            S3_ADDRESSING_STYLE=env.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            FILE_OBJECT_PREFIX=env.get("FILE_OBJECT_PREFIX", cls.FILE_OBJECT_PREFIX),
            UPLOAD_INFO_OBJECT_PREFIX=env.get(
                "UPLOAD_INFO_OBJECT_PREFIX", cls.UPLOAD_INFO_OBJECT_PREFIX
            ),
            MIN_PART_SIZE_BYTES=_as_int(
                env.get("MIN_PART_SIZE_BYTES"), cls.MIN_PART_SIZE_BYTES
            ),
            PREFERRED_PART_SIZE_BYTES=_as_int(
                env.get("PREFERRED_PART_SIZE_BYTES"), cls.PREFERRED_PART_SIZE_BYTES
            ),
            MAX_PART_SIZE_BYTES=_as_int(
                env.get("MAX_PART_SIZE_BYTES"), cls.MAX_PART_SIZE_BYTES
            ),
            MAX_MULTIPART_PARTS=_as_int(
                env.get("MAX_MULTIPART_PARTS"), cls.MAX_MULTIPART_PARTS
            ),
            UPLOAD_EXPIRATION_SECONDS=_as_int(
                env.get("UPLOAD_EXPIRATION_SECONDS"), cls.UPLOAD_EXPIRATION_SECONDS
            ),
            LIST_PAGE_SIZE=_as_int(env.get("LIST_PAGE_SIZE"), cls.LIST_PAGE_SIZE),
            CONTENT_CHUNK_SIZE_BYTES=_as_int(
                env.get("CONTENT_CHUNK_SIZE_BYTES"), cls.CONTENT_CHUNK_SIZE_BYTES
            ),
            RECONCILE_INTERVAL_SECONDS=_as_int(
                env.get("RECONCILE_INTERVAL_SECONDS"), cls.RECONCILE_INTERVAL_SECONDS
            ),
            ORPHAN_GRACE_SECONDS=_as_int(
                env.get("ORPHAN_GRACE_SECONDS"), cls.ORPHAN_GRACE_SECONDS
            ),
            ENABLE_METRICS=_as_bool(env.get("ENABLE_METRICS"), cls.ENABLE_METRICS),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
