import logging
from typing import List, Optional

from .config import DupeConfig
from .index import FileIndex
from .models import ResultGroup, humanize_bytes
from .scanning.duplicates import DuplicateScanner


class DupeFilesApp:
    """
    Facade used by the command line: owns the index for one run and turns
    results into log output and listings.
    """

    def __init__(self, cfg: DupeConfig, show_progress: bool = True):
        self.config = cfg
        self.index = FileIndex(cfg, show_progress=show_progress)
        self.show_progress = show_progress

    def __enter__(self):
        self.index.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.index.close()

    # --- Listings ---

    def show_config(self) -> List[str]:
        lines = [
            "*** Configuration: ***",
            f"- Debug: {self.config.debug}",
            f"- Database file: {self.index.index_path}",
            f"- Minimum file size: {self.config.min_file_size} bytes",
            f"- Sample size for binary comparison: {self.config.sample_size} bytes ({self.config.sample_mode})",
            f"- Digests: {self.config.small_digest} below {humanize_bytes(self.config.hash_size_threshold)}, "
            f"{self.config.large_digest} at or above",
            f"- Workers: {self.config.parallelism}",
        ]
        self._emit(lines)
        return lines

    def show_files(self) -> List[str]:
        paths = sorted(rec.path for rec in self.index.all_records())
        return self._emit_listing(paths, "Files in database")

    def show_dupes(self) -> List[str]:
        paths = [rec.path for rec in self.index.all_duplicates()]
        return self._emit_listing(paths, "Duplicate files in database")

    def show_hashes(self) -> List[str]:
        lines = [f"{rec.hash_value}  {rec.path}" for rec in self.index.all_hashed_records()]
        return self._emit_listing(lines, "Hashed files in database")

    # --- Catalog maintenance ---

    def add_path(self, path: str, recursive: bool = True, filter: Optional[str] = None) -> int:
        return self.index.add_path(path, recursive=recursive, filter=filter)

    def update(self) -> int:
        count = self.index.update()
        logging.info(f"Updated {count} files in the database")
        return count

    def purge(self) -> int:
        count = self.index.purge()
        logging.info(f"Purged {count} files from the database")
        return count

    def remove(self, path: str) -> int:
        return self.index.remove(path)

    def clear(self) -> int:
        return self.index.clear()

    def forget_duplicates(self) -> int:
        return self.index.forget_duplicates()

    def forget_hashes(self) -> int:
        return self.index.forget_hashes()

    # --- Scanning ---

    def scan(self) -> List[ResultGroup]:
        scanner = DuplicateScanner(self.index, self.config, show_progress=self.show_progress)
        results = scanner.scan_for_duplicates()
        self.report(results)
        return results

    def quick_scan(self, path: str, filter: Optional[str] = None) -> List[ResultGroup]:
        self.add_path(path, recursive=True, filter=filter)
        return self.scan()

    def report(self, results: List[ResultGroup]):
        if not results:
            print("No duplicate files found!")
            return

        # Largest groups first
        ordered = sorted(results, key=lambda g: (len(g), g.size), reverse=True)
        print(f"Found {len(ordered)} group(s) of duplicate files:")

        total_size = 0
        total_files = 0
        for i, group in enumerate(ordered, start=1):
            print(f"\nGroup {i} (Hash: {group.content_hash}):")
            for identity in group.identities:
                rec = self.index.record_by_identity(identity)
                if rec is not None:
                    print(f"  {rec.path} ({rec.human_size})")
            # Everything except the anchor is reclaimable
            total_files += len(group) - 1
            total_size += group.size * (len(group) - 1)

        print(f"\nSummary: {total_files} duplicate file(s) in {len(ordered)} group(s), "
              f"{humanize_bytes(total_size)} used space")

    def _emit(self, lines: List[str]):
        for line in lines:
            print(line)

    def _emit_listing(self, lines: List[str], label: str) -> List[str]:
        if not lines:
            print(f"No {label[0].lower() + label[1:]}")
            return lines
        self._emit(lines)
        print(f"{label}: {len(lines)} total.")
        return lines
