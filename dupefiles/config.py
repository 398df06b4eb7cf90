"""
Configuration for DupeFiles.

Module-level constants hold the fixed tuning values; DupeConfig is the
resolved, read-only settings object handed to the index and the scanner.
"""
import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

# --- Catalog ---
DEFAULT_INDEX_FILENAME = "dupefiles.db"
DEFAULT_MIN_FILE_SIZE = 1024  # bytes; smaller files are not tracked

# --- Hashing & Performance ---
HASH_CHUNK_SIZE = 1024 * 1024  # 1 MB chunks for streaming digests
COMPARE_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for binary comparison
# Files at or above this size use the stronger digest
HASH_SIZE_THRESHOLD = 2 * 1024 * 1024 * 1024  # 2 GiB

SUPPORTED_DIGESTS = ("xxh128", "md5", "sha256", "sha512")


def default_db_path() -> Path:
    """~/.config/dupefiles/dupefiles.db, or the bare filename if home is unknown."""
    try:
        home = Path.home()
    except RuntimeError:
        return Path(DEFAULT_INDEX_FILENAME)
    return home / ".config" / "dupefiles" / DEFAULT_INDEX_FILENAME


class DupeConfig(BaseModel):
    min_file_size: int = Field(default=DEFAULT_MIN_FILE_SIZE, ge=0)
    db_path: Path = Field(default_factory=default_db_path)
    # 0 = compare whole files; > 0 = sampled comparison of this many bytes
    sample_size: int = Field(default=0, ge=0)
    sample_mode: Literal["window", "offsets"] = "window"
    debug: bool = False
    max_workers: Optional[int] = Field(default=None, ge=1)
    hash_size_threshold: int = Field(default=HASH_SIZE_THRESHOLD, ge=0)
    small_digest: str = "xxh128"
    large_digest: str = "sha256"

    model_config = {"frozen": True}

    @field_validator("small_digest", "large_digest")
    @classmethod
    def _known_digest(cls, value: str) -> str:
        value = value.lower()
        if value not in SUPPORTED_DIGESTS:
            raise ValueError(f"unsupported digest '{value}' (choose from {', '.join(SUPPORTED_DIGESTS)})")
        return value

    @property
    def parallelism(self) -> int:
        """Worker count used by the scanner's pools."""
        return self.max_workers or os.cpu_count() or 1


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(environ: Optional[Mapping[str, str]] = None, **overrides) -> DupeConfig:
    """
    Builds a DupeConfig from DF_* environment variables.

    Explicit keyword overrides win over the environment.
    """
    env = os.environ if environ is None else environ
    data = {}

    if "DF_DEBUG" in env:
        data["debug"] = _env_bool(env["DF_DEBUG"])
    if env.get("DF_MINSIZE"):
        data["min_file_size"] = env["DF_MINSIZE"]
    if env.get("DF_DBFILE"):
        data["db_path"] = env["DF_DBFILE"]
    if env.get("DF_BINARY_COMPARE_SIZE"):
        data["sample_size"] = env["DF_BINARY_COMPARE_SIZE"]
    if env.get("DF_SAMPLE_MODE"):
        data["sample_mode"] = env["DF_SAMPLE_MODE"]
    if env.get("DF_WORKERS"):
        data["max_workers"] = env["DF_WORKERS"]

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return DupeConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
