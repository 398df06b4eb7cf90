import sqlite3
import os
from typing import Iterable, List, Optional, Tuple

from ..models import FileRecord, content_hash_from

FILE_COLUMNS = "identity, path, extension, size, mod_time, hash, humanized_size"

def record_from_row(row: Tuple) -> FileRecord:
    identity, path, extension, size, mod_time, hash_value, human_size = row
    return FileRecord(
        identity=identity,
        path=path,
        extension=extension,
        size=size,
        mod_time=mod_time,
        content_hash=content_hash_from(hash_value),
        human_size=human_size or "",
    )

def _record_params(rec: FileRecord) -> Tuple:
    return (rec.identity, rec.path, rec.extension, rec.size, rec.mod_time, rec.hash_value, rec.human_size)

class DBOperations:
    """
    SQL statements for the catalog. Methods never commit; callers wrap
    mutations in DBManager.transaction().
    """
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Writes ---

    def upsert_files(self, records: Iterable[FileRecord]) -> int:
        """
        Inserts or replaces file rows by identity. Duplicate membership rows
        survive (ON CONFLICT DO UPDATE keeps the parent row).
        """
        cur = self.conn.executemany(f"""
            INSERT INTO files ({FILE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(identity) DO UPDATE SET
                path = excluded.path,
                extension = excluded.extension,
                size = excluded.size,
                mod_time = excluded.mod_time,
                hash = excluded.hash,
                humanized_size = excluded.humanized_size
        """, [_record_params(r) for r in records])
        return cur.rowcount

    def delete_files(self, identities: Iterable[str]) -> int:
        cur = self.conn.executemany("DELETE FROM files WHERE identity = ?", [(i,) for i in identities])
        return cur.rowcount

    def update_stats(self, records: Iterable[FileRecord]) -> int:
        """Refreshes size, mod_time and hash after change detection."""
        cur = self.conn.executemany(
            "UPDATE files SET size = ?, mod_time = ?, hash = ?, humanized_size = ? WHERE identity = ?",
            [(r.size, r.mod_time, r.hash_value, r.human_size, r.identity) for r in records],
        )
        return cur.rowcount

    def update_hashes(self, hashes: Iterable[Tuple[str, str]]) -> int:
        """hashes: (identity, hash) pairs."""
        cur = self.conn.executemany(
            "UPDATE files SET hash = ? WHERE identity = ?",
            [(h, identity) for identity, h in hashes],
        )
        return cur.rowcount

    def delete_under_path(self, path: str) -> int:
        """Deletes rows whose path equals `path` or lies beneath it."""
        prefix = path.rstrip(os.sep) + os.sep
        cur = self.conn.execute(
            "DELETE FROM files WHERE path = ? OR substr(path, 1, ?) = ?",
            (path, len(prefix), prefix),
        )
        return cur.rowcount

    def delete_all(self) -> int:
        self.conn.execute("DELETE FROM duplicates")
        cur = self.conn.execute("DELETE FROM files")
        return cur.rowcount

    def move_file(self, old_identity: str, new_identity: str, new_path: str) -> int:
        cur = self.conn.execute(
            "UPDATE files SET identity = ?, path = ? WHERE identity = ?",
            (new_identity, new_path, old_identity),
        )
        return cur.rowcount

    def record_duplicates(self, identities: Iterable[str], scanned_at: int):
        self.conn.executemany("""
            INSERT INTO duplicates (identity, scanned)
            VALUES (?, ?)
            ON CONFLICT(identity) DO UPDATE SET scanned = excluded.scanned
        """, [(i, scanned_at) for i in identities])

    def delete_duplicates(self, identities: Iterable[str]) -> int:
        cur = self.conn.executemany("DELETE FROM duplicates WHERE identity = ?", [(i,) for i in identities])
        return cur.rowcount

    def delete_duplicate_files(self) -> List[str]:
        """Deletes every file row that holds a duplicate membership; returns their identities."""
        cur = self.conn.cursor()
        cur.execute("SELECT identity FROM duplicates")
        identities = [row[0] for row in cur.fetchall()]
        cur.execute("DELETE FROM files WHERE identity IN (SELECT identity FROM duplicates)")
        return identities

    def clear_hashes(self) -> int:
        cur = self.conn.execute("UPDATE files SET hash = NULL WHERE hash IS NOT NULL")
        return cur.rowcount

    # --- Reads ---

    def fetch_all_files(self) -> List[FileRecord]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {FILE_COLUMNS} FROM files")
        return [record_from_row(r) for r in cur.fetchall()]

    def fetch_file(self, identity: str) -> Optional[FileRecord]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {FILE_COLUMNS} FROM files WHERE identity = ?", (identity,))
        row = cur.fetchone()
        return record_from_row(row) if row else None

    def fetch_duplicate_identities(self) -> List[str]:
        cur = self.conn.cursor()
        cur.execute("SELECT identity FROM duplicates")
        return [row[0] for row in cur.fetchall()]

    def fetch_duplicates(self) -> List[FileRecord]:
        """All files with a duplicate membership, grouped by (size, hash)."""
        cur = self.conn.cursor()
        cur.execute("""
            SELECT f.identity, f.path, f.extension, f.size, f.mod_time, f.hash, f.humanized_size
            FROM files f
            INNER JOIN duplicates d ON f.identity = d.identity
            ORDER BY f.size DESC, f.hash, f.identity
        """)
        return [record_from_row(r) for r in cur.fetchall()]

    def fetch_rest_of_duplicates(self) -> List[FileRecord]:
        """Like fetch_duplicates, minus the first (lowest identity) member of each group."""
        cur = self.conn.cursor()
        cur.execute("""
            SELECT f.identity, f.path, f.extension, f.size, f.mod_time, f.hash, f.humanized_size
            FROM files f
            INNER JOIN duplicates d ON f.identity = d.identity
            WHERE f.identity NOT IN (
                SELECT MIN(f2.identity)
                FROM files f2
                INNER JOIN duplicates d2 ON f2.identity = d2.identity
                GROUP BY f2.size, f2.hash
            )
            ORDER BY f.size DESC, f.hash, f.identity
        """)
        return [record_from_row(r) for r in cur.fetchall()]

    def fetch_hashed_files(self) -> List[FileRecord]:
        cur = self.conn.cursor()
        cur.execute(f"""
            SELECT {FILE_COLUMNS}
            FROM files
            WHERE hash IS NOT NULL
            ORDER BY size DESC, hash, identity
        """)
        return [record_from_row(r) for r in cur.fetchall()]
