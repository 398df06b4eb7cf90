from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass(frozen=True)
class Absent:
    """No content hash computed yet (or invalidated)."""


@dataclass(frozen=True)
class Present:
    value: str


ContentHash = Union[Absent, Present]
ABSENT = Absent()


def content_hash_from(value: Optional[str]) -> ContentHash:
    return Present(value) if value else ABSENT


def humanize_bytes(num_bytes: int) -> str:
    """1536 -> '1.5 KB'"""
    unit = 1024
    if num_bytes < unit:
        return f"{num_bytes} B"
    div, exp = unit, 0
    n = num_bytes // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{num_bytes / div:.1f} {'KMGTPE'[exp]}B"


@dataclass
class FileRecord:
    """
    Represents one tracked file in the catalog.
    """
    identity: str           # canonical absolute path, primary key
    path: str
    extension: str          # lower-case, no leading dot
    size: int
    mod_time: int           # seconds since epoch

    content_hash: ContentHash = ABSENT
    human_size: str = ""

    def __post_init__(self):
        if not self.human_size:
            self.human_size = humanize_bytes(self.size)

    @property
    def needs_hash(self) -> bool:
        return isinstance(self.content_hash, Absent)

    @property
    def hash_value(self) -> Optional[str]:
        """The hash as stored in the database column (None when absent)."""
        if isinstance(self.content_hash, Present):
            return self.content_hash.value
        return None


@dataclass
class ResultGroup:
    """
    One confirmed set of duplicates from a scan. The anchor is identities[0].
    """
    content_hash: str
    size: int
    identities: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.identities)
