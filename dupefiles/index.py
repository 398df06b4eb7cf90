"""
The persistent file index.

FileIndex owns an in-memory map of identity -> FileRecord mirrored from the
SQLite catalog. Every mutation is committed to the database first and only
then applied to the map, so a failed transaction leaves both sides at the
pre-transaction state.
"""
import os
import logging
import stat
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from tqdm import tqdm

from .config import DupeConfig
from .database.db import DBManager
from .database.ops import DBOperations
from .exceptions import ConfigurationError, FileHashError, StoreUnavailable
from .models import ABSENT, FileRecord, Present, humanize_bytes
from .scanning.filesystem import build_record, iter_files, make_identity, matches_filter
from .scanning.hasher import FileHasher


class FileIndex:
    def __init__(self, cfg: DupeConfig, show_progress: bool = False):
        self.config = cfg
        self.show_progress = show_progress
        self.db_manager = DBManager(cfg.db_path)
        self.hasher = FileHasher(cfg)
        self._files: Dict[str, FileRecord] = {}
        self._db_ops: Optional[DBOperations] = None

    # --- Lifecycle ---

    def open(self) -> "FileIndex":
        """Opens (creating if needed) the catalog and loads every row into memory."""
        conn = self.db_manager.connect()
        self._db_ops = DBOperations(conn)
        self._files = {rec.identity: rec for rec in self._db_ops.fetch_all_files()}
        logging.debug(f"Loaded {len(self._files)} files from catalog.")
        return self

    def close(self):
        self.db_manager.close()
        self._db_ops = None
        self._files = {}

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def db(self) -> DBOperations:
        if self._db_ops is None:
            raise StoreUnavailable("The file index is not open.")
        return self._db_ops

    @property
    def index_path(self) -> str:
        return os.path.abspath(self.config.db_path)

    # --- Read access ---

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, identity: str) -> bool:
        return identity in self._files

    def all_records(self) -> List[FileRecord]:
        return list(self._files.values())

    def record_by_identity(self, identity: str) -> Optional[FileRecord]:
        return self._files.get(identity)

    def all_duplicates(self) -> List[FileRecord]:
        return self.db.fetch_duplicates()

    def rest_of_duplicates(self) -> List[FileRecord]:
        """Duplicates except the first file of each size+hash group."""
        return self.db.fetch_rest_of_duplicates()

    def all_hashed_records(self) -> List[FileRecord]:
        return self.db.fetch_hashed_files()

    # --- Adding ---

    def add_path(self, path: str, recursive: bool = True, filter: Optional[str] = None) -> int:
        """
        Adds a file, or every eligible file below a directory, in one transaction.
        Returns the number of records inserted or changed.
        """
        if not path:
            raise ConfigurationError("No path specified.")
        try:
            st = os.stat(path)
        except OSError as e:
            raise ConfigurationError(f"Cannot access {path}: {e}") from e

        if stat.S_ISREG(st.st_mode):
            candidates = self._single_file_candidates(path, st, filter)
        elif stat.S_ISDIR(st.st_mode):
            candidates = self._directory_candidates(path, recursive, filter)
        else:
            raise ConfigurationError(f"{path} is neither a file nor a directory.")

        if not candidates:
            logging.info(f"No new or changed files under {path}.")
            return 0

        with self.db_manager.transaction():
            self.db.upsert_files(candidates)

        for rec in candidates:
            self._files[rec.identity] = rec

        logging.info(f"Indexed {len(candidates)} new or changed files from {path}.")
        return len(candidates)

    def _single_file_candidates(self, path: str, st: os.stat_result, pattern: Optional[str]) -> List[FileRecord]:
        if not matches_filter(os.path.basename(path), pattern):
            return []
        rec = self._eligible_record(path, st)
        return [rec] if rec else []

    def _directory_candidates(self, root: str, recursive: bool, pattern: Optional[str]) -> List[FileRecord]:
        candidates: Dict[str, FileRecord] = {}
        for entry in tqdm(iter_files(root, recursive), desc="Indexing", unit="file", disable=not self.show_progress):
            if not matches_filter(entry.name, pattern):
                continue
            try:
                st = entry.stat(follow_symlinks=False)
            except OSError as e:
                logging.warning(f"Skipping unreadable file {entry.path}: {e}")
                continue
            rec = self._eligible_record(entry.path, st)
            if rec:
                candidates[rec.identity] = rec
        return list(candidates.values())

    def _eligible_record(self, path: str, st: os.stat_result) -> Optional[FileRecord]:
        """Applies the minimum-size filter and the unchanged-file fast path."""
        min_size = self.config.min_file_size
        if min_size > 0 and st.st_size < min_size:
            logging.debug(f"Skipping {path} (size: {st.st_size})")
            return None

        rec = build_record(path, st)
        existing = self._files.get(rec.identity)
        if existing and existing.size == rec.size and existing.mod_time == rec.mod_time:
            return None
        return rec

    # --- Synchronization ---

    def update(self) -> int:
        """
        Re-stats every record. Vanished files are deleted; files whose size or
        mtime drifted get a fresh hash. Returns deleted + changed.
        """
        to_delete: List[str] = []
        to_update: List[FileRecord] = []

        records = list(self._files.values())
        for rec in tqdm(records, desc="Updating", unit="file", disable=not self.show_progress):
            try:
                st = os.stat(rec.path)
            except FileNotFoundError:
                to_delete.append(rec.identity)
                continue
            except OSError as e:
                logging.warning(f"Error accessing {rec.path} during update: {e}")
                continue

            new_mtime = int(st.st_mtime)
            if st.st_size == rec.size and new_mtime == rec.mod_time:
                continue

            changed = replace(rec, size=st.st_size, mod_time=new_mtime,
                              content_hash=ABSENT, human_size=humanize_bytes(st.st_size))
            try:
                changed.content_hash = Present(self.hasher.compute_hash(changed.path, changed.size))
            except FileHashError as e:
                logging.warning(str(e))
            to_update.append(changed)
            logging.debug(f"Marked for update: {rec.path} (new size: {changed.size}, new mod_time: {changed.mod_time})")

        if to_delete:
            with self.db_manager.transaction():
                self.db.delete_files(to_delete)
            for identity in to_delete:
                del self._files[identity]

        if to_update:
            with self.db_manager.transaction():
                self.db.update_stats(to_update)
            for rec in to_update:
                self._files[rec.identity] = rec

        count = len(to_delete) + len(to_update)
        logging.info(f"Update: {len(to_delete)} removed, {len(to_update)} changed.")
        return count

    def purge(self) -> int:
        """Deletes records whose file no longer exists. Returns the number removed."""
        gone: List[str] = []
        for identity, rec in self._files.items():
            try:
                os.stat(rec.path)
            except FileNotFoundError:
                gone.append(identity)
            except OSError as e:
                logging.warning(f"Error accessing {rec.path} during purge: {e}")
        if not gone:
            return 0

        with self.db_manager.transaction():
            self.db.delete_files(gone)
        for identity in gone:
            del self._files[identity]

        logging.info(f"Purged {len(gone)} files from the catalog.")
        return len(gone)

    def remove(self, path: str) -> int:
        """Deletes records at or below `path`. Returns rows affected."""
        if not path:
            raise ConfigurationError("No path specified.")
        normalized = make_identity(path)
        prefix = normalized.rstrip(os.sep) + os.sep

        with self.db_manager.transaction():
            removed = self.db.delete_under_path(normalized)

        for identity in [i for i, rec in self._files.items()
                         if rec.path == normalized or rec.path.startswith(prefix)]:
            del self._files[identity]

        logging.info(f"Removed {removed} files from the catalog.")
        return removed

    def clear(self) -> int:
        """Deletes every record and every duplicate membership."""
        with self.db_manager.transaction():
            removed = self.db.delete_all()
        self._files.clear()
        logging.info(f"Removed {removed} files from the catalog.")
        return removed

    def move(self, identity: str, new_path: str) -> FileRecord:
        """
        Rewrites a record's path and identity after the file was moved on disk.
        Duplicate membership follows the record.
        """
        rec = self._files.get(identity)
        if rec is None:
            raise ConfigurationError(f"Unknown file: {identity}")
        if not new_path:
            raise ConfigurationError("No destination path specified.")
        new_identity = make_identity(new_path)
        if new_identity != identity and new_identity in self._files:
            raise ConfigurationError(f"{new_identity} is already in the catalog.")

        with self.db_manager.transaction():
            self.db.move_file(identity, new_identity, new_identity)

        moved = replace(rec, identity=new_identity, path=new_identity)
        del self._files[identity]
        self._files[new_identity] = moved
        return moved

    # --- Hash & duplicate bookkeeping ---

    def forget_duplicates(self) -> int:
        """Removes every file with a duplicate membership from the catalog (not from disk)."""
        with self.db_manager.transaction():
            forgotten = self.db.delete_duplicate_files()
        for identity in forgotten:
            self._files.pop(identity, None)
        logging.info(f"Removed {len(forgotten)} duplicate files from the catalog.")
        return len(forgotten)

    def forget_hashes(self) -> int:
        """Clears every stored hash so the next scan rehashes everything."""
        with self.db_manager.transaction():
            cleared = self.db.clear_hashes()
        for rec in self._files.values():
            rec.content_hash = ABSENT
        logging.info(f"Cleared hashes for {cleared} files.")
        return cleared

    def store_hashes(self, hashes: Dict[str, str]) -> int:
        """
        Persists identity -> hash results in one transaction, then applies
        them to the in-memory records.
        """
        if not hashes:
            return 0
        with self.db_manager.transaction():
            self.db.update_hashes(hashes.items())
        for identity, value in hashes.items():
            rec = self._files.get(identity)
            if rec is not None:
                rec.content_hash = Present(value)
        return len(hashes)

    def record_duplicates(self, identities: Iterable[str], scanned_at: int):
        """Marks the given records as members of a confirmed duplicate set."""
        identities = list(identities)
        with self.db_manager.transaction():
            self.db.record_duplicates(identities, scanned_at)

    def prune_duplicates(self, keep: Iterable[str]) -> int:
        """Drops memberships for records not in `keep`. Returns the number dropped."""
        keep = set(keep)
        stale = [i for i in self.db.fetch_duplicate_identities() if i not in keep]
        if not stale:
            return 0
        with self.db_manager.transaction():
            self.db.delete_duplicates(stale)
        return len(stale)
