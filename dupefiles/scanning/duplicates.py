import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional, Tuple

from tqdm import tqdm

from ..config import DupeConfig
from ..exceptions import FileHashError
from ..index import FileIndex
from ..models import FileRecord, Present, ResultGroup
from .compare import compare_full, compare_sampled
from .hasher import FileHasher

HashKey = Tuple[int, str]  # (size, content hash)

class DuplicateScanner:
    """
    Finds confirmed duplicates among the records of a FileIndex.

    Stage 1 groups by size, stage 2 hashes what is not hashed yet (in a
    worker pool) and groups by (size, hash), stage 3 binary-compares every
    hash group against its first member. Results are written back through
    the index.
    """

    def __init__(self, index: FileIndex, cfg: Optional[DupeConfig] = None, show_progress: bool = False):
        self.index = index
        self.config = cfg or index.config
        self.hasher = FileHasher(self.config)
        self.show_progress = show_progress

    def scan_for_duplicates(self) -> List[ResultGroup]:
        records = self.index.all_records()
        if not records:
            logging.info("No files in catalog. Nothing to scan.")
            return []

        t0 = time.perf_counter()

        size_groups = self.scan_by_size(records)
        logging.info(f"{len(size_groups)} size groups with possible duplicates.")

        hash_groups = self.scan_by_hash(size_groups)
        logging.info("Verifying potential duplicates...")

        results = self.verify(hash_groups)

        stale = self.index.prune_duplicates(i for group in results for i in group.identities)
        if stale:
            logging.debug(f"Dropped {stale} stale duplicate memberships.")

        logging.debug(f"Scan finished in {time.perf_counter() - t0:.2f}s")
        logging.info(f"Found {len(results)} group(s) of duplicate files.")
        return results

    # --- Stage 1 ---

    def scan_by_size(self, records: Iterable[FileRecord]) -> Dict[int, List[FileRecord]]:
        """Groups records by exact size, dropping sizes seen only once."""
        groups: Dict[int, List[FileRecord]] = defaultdict(list)
        for rec in records:
            groups[rec.size].append(rec)
        return {size: members for size, members in groups.items() if len(members) > 1}

    # --- Stage 2 ---

    def scan_by_hash(self, size_groups: Dict[int, List[FileRecord]]) -> Dict[HashKey, List[FileRecord]]:
        """
        Buckets every record of the size groups by (size, hash). Records
        without a hash are hashed in parallel and the new hashes stored in one
        transaction. Files that cannot be read are left out of the result.
        """
        buckets: Dict[HashKey, List[FileRecord]] = defaultdict(list)
        pending: List[FileRecord] = []

        for members in size_groups.values():
            if len(members) < 2:
                continue
            for rec in members:
                if rec.needs_hash:
                    pending.append(rec)
                else:
                    buckets[(rec.size, rec.hash_value)].append(rec)

        if pending:
            computed = self._hash_pending(pending)
            self.index.store_hashes({rec.identity: value for rec, value in computed})
            for rec, value in computed:
                rec.content_hash = Present(value)
                buckets[(rec.size, value)].append(rec)

        # Lowest identity anchors each group
        for members in buckets.values():
            members.sort(key=lambda r: r.identity)
        return dict(buckets)

    def _hash_pending(self, pending: List[FileRecord]) -> List[Tuple[FileRecord, str]]:
        workers = max(1, min(self.config.parallelism, len(pending)))
        logging.info(f"Hashing {len(pending)} files with {workers} workers...")

        computed: List[Tuple[FileRecord, str]] = []
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_rec = {
                executor.submit(self.hasher.compute_hash, rec.path, rec.size): rec
                for rec in pending
            }
            for future in tqdm(as_completed(future_to_rec), total=len(future_to_rec),
                               desc="Hashing", unit="file", disable=not self.show_progress):
                rec = future_to_rec[future]
                try:
                    computed.append((rec, future.result()))
                except FileHashError as e:
                    logging.warning(f"{e} (excluded from this scan)")
        return computed

    # --- Stage 3 ---

    def verify(self, hash_groups: Dict[HashKey, List[FileRecord]]) -> List[ResultGroup]:
        """
        Binary-verifies each hash group. At most `parallelism` groups are in
        flight; each group compares its members against the anchor in parallel.
        """
        candidates = [(key, members) for key, members in hash_groups.items() if len(members) >= 2]
        if not candidates:
            return []

        scanned_at = int(time.time())
        parallelism = self.config.parallelism
        slots = threading.BoundedSemaphore(parallelism)
        results: List[ResultGroup] = []

        with ThreadPoolExecutor(max_workers=parallelism) as executor:
            futures = []
            for key, members in candidates:
                slots.acquire()
                future = executor.submit(self._verify_group, key, members, scanned_at)
                future.add_done_callback(lambda _: slots.release())
                futures.append(future)

            for future in tqdm(as_completed(futures), total=len(futures),
                               desc="Verifying", unit="group", disable=not self.show_progress):
                group = future.result()
                if group is not None:
                    results.append(group)

        return results

    def _verify_group(self, key: HashKey, members: List[FileRecord], scanned_at: int) -> Optional[ResultGroup]:
        size, content_hash = key
        members = self._drop_unreadable_anchors(members)
        if len(members) < 2:
            return None
        anchor, others = members[0], members[1:]
        confirmed = [anchor]

        with ThreadPoolExecutor(max_workers=min(len(others), self.config.parallelism)) as pairs:
            future_to_rec = {pairs.submit(self._compare, anchor.path, rec.path): rec for rec in others}
            for future in as_completed(future_to_rec):
                rec = future_to_rec[future]
                try:
                    identical = future.result()
                except OSError as e:
                    logging.warning(f"Failed to compare {anchor.path} and {rec.path}: {e}")
                    continue
                if identical:
                    confirmed.append(rec)

        if len(confirmed) < 2:
            return None

        identities = [anchor.identity] + sorted(r.identity for r in confirmed[1:])
        self.index.record_duplicates(identities, scanned_at)
        return ResultGroup(content_hash=content_hash, size=size, identities=identities)

    def _drop_unreadable_anchors(self, members: List[FileRecord]) -> List[FileRecord]:
        """Drops leading members that cannot be opened, so the anchor is readable."""
        while len(members) >= 2:
            try:
                with open(members[0].path, "rb"):
                    break
            except OSError as e:
                logging.warning(f"Cannot read {members[0].path}: {e} (excluded from this scan)")
                members = members[1:]
        return members

    def _compare(self, path_a: str, path_b: str) -> bool:
        if self.config.sample_size > 0:
            return compare_sampled(path_a, path_b, self.config.sample_size, self.config.sample_mode)
        return compare_full(path_a, path_b)
