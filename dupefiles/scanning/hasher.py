import hashlib
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import xxhash

from .. import config
from ..config import DupeConfig
from ..exceptions import FileHashError

DIGEST_FACTORIES: Dict[str, Callable] = {
    "xxh128": xxhash.xxh3_128,
    "md5": hashlib.md5,
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}

def select_digest(size: int,
                  threshold: int = config.HASH_SIZE_THRESHOLD,
                  small_digest: str = "xxh128",
                  large_digest: str = "sha256") -> str:
    """
    Picks the digest name for a file of `size` bytes.
    """
    return large_digest if size >= threshold else small_digest

def compute_content_hash(path: Union[str, Path],
                         size: int,
                         threshold: int = config.HASH_SIZE_THRESHOLD,
                         small_digest: str = "xxh128",
                         large_digest: str = "sha256",
                         chunk_size: int = config.HASH_CHUNK_SIZE) -> str:
    """
    Streams the whole file through the digest chosen for `size`.
    Raises OSError if the file cannot be read.
    """
    h = DIGEST_FACTORIES[select_digest(size, threshold, small_digest, large_digest)]()
    with open(path, 'rb') as f:
        while chunk := f.read(chunk_size):
            h.update(chunk)
    return h.hexdigest()

class FileHasher:
    """Applies the configured digest policy to catalog files."""

    def __init__(self, cfg: Optional[DupeConfig] = None):
        cfg = cfg or DupeConfig()
        self.threshold = cfg.hash_size_threshold
        self.small_digest = cfg.small_digest
        self.large_digest = cfg.large_digest

    def compute_hash(self, path: Union[str, Path], size: int) -> str:
        """Returns the hex digest; wraps read failures in FileHashError."""
        try:
            return compute_content_hash(path, size, self.threshold, self.small_digest, self.large_digest)
        except OSError as e:
            raise FileHashError(path, e) from e
