import os
import sqlite3
import pytest
import xxhash
from dupefiles.exceptions import ConfigurationError, StoreUnavailable, TransactionFailure
from dupefiles.index import FileIndex
from dupefiles.models import ABSENT, Present

def _write(path, data: bytes, mtime=None):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path

def test_add_directory_and_reload(cfg, root):
    _write(root / "1.txt", b"abcd")
    _write(root / "2.TXT", b"abcd")
    _write(root / "sub" / "3.bin", b"abcde")

    with FileIndex(cfg) as idx:
        assert idx.add_path(str(root)) == 3
        assert len(idx) == 3

    # A fresh index loads the same records from disk
    with FileIndex(cfg) as idx:
        rec = idx.record_by_identity(str(root / "2.TXT"))
        assert rec is not None
        assert rec.extension == "txt"
        assert rec.size == 4
        assert rec.human_size == "4 B"
        assert rec.content_hash == ABSENT
        assert {r.identity for r in idx.all_records()} == {
            str(root / "1.txt"), str(root / "2.TXT"), str(root / "sub" / "3.bin"),
        }

def test_add_is_noop_for_unchanged_files(index, root):
    _write(root / "1.txt", b"abcd", mtime=1_600_000_000)
    assert index.add_path(str(root)) == 1
    assert index.add_path(str(root)) == 0
    assert index.add_path(str(root / "1.txt")) == 0

    # Same path, new content: the record is replaced and its hash cleared
    index.store_hashes({str(root / "1.txt"): "old"})
    _write(root / "1.txt", b"abcdefgh", mtime=1_600_000_100)
    assert index.add_path(str(root)) == 1
    rec = index.record_by_identity(str(root / "1.txt"))
    assert rec.size == 8
    assert rec.needs_hash
    assert len(index) == 1

def test_add_single_file_applies_filter_and_min_size(make_config, root):
    _write(root / "small.jpg", b"ab")
    _write(root / "big.jpg", b"abcdef")
    _write(root / "big.txt", b"abcdef")

    with FileIndex(make_config(min_file_size=4)) as idx:
        assert idx.add_path(str(root / "small.jpg")) == 0
        assert idx.add_path(str(root / "big.txt"), filter="*.jpg") == 0
        assert idx.add_path(str(root / "big.jpg"), filter="*.jpg") == 1
        assert [r.path for r in idx.all_records()] == [str(root / "big.jpg")]

def test_add_directory_filter_and_recursion(index, root):
    _write(root / "a.jpg", b"1")
    _write(root / "b.png", b"2")
    _write(root / "sub" / "c.jpg", b"3")

    assert index.add_path(str(root), recursive=False, filter="*.jpg") == 1
    assert index.record_by_identity(str(root / "a.jpg")) is not None
    assert index.record_by_identity(str(root / "sub" / "c.jpg")) is None

    assert index.add_path(str(root), recursive=True, filter="*.jpg") == 1
    assert index.record_by_identity(str(root / "sub" / "c.jpg")) is not None
    assert index.record_by_identity(str(root / "b.png")) is None

@pytest.mark.parametrize("bad_path", ["", "does/not/exist"])
def test_add_rejects_bad_paths(index, bad_path):
    with pytest.raises(ConfigurationError):
        index.add_path(bad_path)
    assert len(index) == 0

@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs os.mkfifo")
def test_add_rejects_special_files(index, root):
    _write(root / "1.txt", b"abcd")
    index.add_path(str(root))
    fifo = root / "pipe"
    os.mkfifo(fifo)

    with pytest.raises(ConfigurationError):
        index.add_path(str(fifo))
    assert [r.identity for r in index.all_records()] == [str(root / "1.txt")]
    assert len(index.db.fetch_all_files()) == 1

def test_open_fails_when_store_unusable(make_config, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.mkdir()
    idx = FileIndex(make_config(db_path=blocker))
    with pytest.raises(StoreUnavailable):
        idx.open()

def test_operations_require_open_index(cfg):
    with pytest.raises(StoreUnavailable):
        FileIndex(cfg).all_duplicates()

def test_purge_removes_deleted_files(index, root):
    # Scenario D
    _write(root / "1.txt", b"abcd")
    _write(root / "2.txt", b"abcd")
    index.add_path(str(root))

    (root / "1.txt").unlink()

    assert index.purge() == 1
    assert index.record_by_identity(str(root / "1.txt")) is None
    assert index.db.fetch_file(str(root / "1.txt")) is None
    assert index.db.fetch_file(str(root / "2.txt")) is not None
    assert index.purge() == 0

def test_update_rehashes_changed_file(cfg, root):
    # Scenario E
    path = _write(root / "1.txt", b"abcd", mtime=1_600_000_000)
    _write(root / "2.txt", b"wxyz", mtime=1_600_000_000)

    with FileIndex(cfg) as idx:
        idx.add_path(str(root))
        _write(path, b"abcdabcd", mtime=1_600_000_500)

        assert idx.update() == 1

        rec = idx.record_by_identity(str(path))
        assert rec.size == 8
        assert rec.mod_time == 1_600_000_500
        assert rec.content_hash == Present(xxhash.xxh3_128(b"abcdabcd").hexdigest())
        assert idx.record_by_identity(str(root / "2.txt")).needs_hash

    with FileIndex(cfg) as idx:
        stored = idx.record_by_identity(str(path))
        assert stored.size == 8
        assert stored.mod_time == 1_600_000_500
        assert stored.hash_value == xxhash.xxh3_128(b"abcdabcd").hexdigest()
        assert stored.human_size == "8 B"

def test_update_detects_mtime_only_change_and_deletions(index, root):
    kept = _write(root / "1.txt", b"abcd", mtime=1_600_000_000)
    gone = _write(root / "2.txt", b"abcd", mtime=1_600_000_000)
    index.add_path(str(root))
    index.store_hashes({str(kept): "stale", str(gone): "stale"})

    os.utime(kept, (1_700_000_000, 1_700_000_000))
    gone.unlink()

    assert index.update() == 2
    assert index.record_by_identity(str(gone)) is None
    assert index.record_by_identity(str(kept)).hash_value == xxhash.xxh3_128(b"abcd").hexdigest()
    assert index.update() == 0

def test_remove_path_prefix(index, root):
    _write(root / "keep" / "1.txt", b"1")
    _write(root / "drop" / "2.txt", b"2")
    _write(root / "drop" / "deep" / "3.txt", b"3")
    _write(root / "dropped.txt", b"4")
    index.add_path(str(root))

    assert index.remove(str(root / "drop")) == 2
    assert {r.path for r in index.all_records()} == {str(root / "keep" / "1.txt"), str(root / "dropped.txt")}
    assert len(index.db.fetch_all_files()) == 2

    assert index.remove(str(root / "dropped.txt")) == 1

    with pytest.raises(ConfigurationError):
        index.remove("")

def test_clear_removes_everything(index, root):
    _write(root / "1.txt", b"abcd")
    _write(root / "2.txt", b"abcd")
    index.add_path(str(root))
    index.record_duplicates([str(root / "1.txt"), str(root / "2.txt")], 100)

    assert index.clear() == 2
    assert len(index) == 0
    assert index.db.fetch_all_files() == []
    assert index.db.fetch_duplicate_identities() == []

def test_move_rewrites_identity(index, root):
    a = _write(root / "1.txt", b"abcd")
    b = _write(root / "2.txt", b"abcd")
    index.add_path(str(root))
    index.store_hashes({str(a): "h", str(b): "h"})
    index.record_duplicates([str(a), str(b)], 100)

    target = root / "moved" / "1.txt"
    moved = index.move(str(a), str(target))

    assert moved.identity == str(target)
    assert moved.hash_value == "h"
    assert str(a) not in index
    assert index.record_by_identity(str(target)) is moved
    assert sorted(index.db.fetch_duplicate_identities()) == sorted([str(b), str(target)])

    with pytest.raises(ConfigurationError):
        index.move(str(target), str(b))
    with pytest.raises(ConfigurationError):
        index.move("/not/tracked", str(root / "x"))

def test_identity_stays_unique(index, root):
    _write(root / "1.txt", b"abcd", mtime=1_600_000_000)
    index.add_path(str(root))
    index.add_path(str(root / "." / "1.txt"))
    _write(root / "1.txt", b"abcdef", mtime=1_600_000_100)
    index.update()
    index.add_path(str(root))
    index.purge()

    identities = [r.identity for r in index.all_records()]
    assert len(identities) == len(set(identities)) == 1
    assert len(index.db.fetch_all_files()) == 1

def test_forget_hashes_and_duplicates(index, root):
    a = _write(root / "1.txt", b"abcd")
    b = _write(root / "2.txt", b"abcd")
    c = _write(root / "3.txt", b"zzzz")
    index.add_path(str(root))
    index.store_hashes({str(a): "h", str(b): "h", str(c): "z"})
    index.record_duplicates([str(a), str(b)], 100)

    assert len(index.all_hashed_records()) == 3
    assert [r.identity for r in index.rest_of_duplicates()] == [str(b)]

    assert index.forget_duplicates() == 2
    assert [r.identity for r in index.all_records()] == [str(c)]
    assert c.exists() and a.exists()

    assert index.forget_hashes() == 1
    assert index.record_by_identity(str(c)).needs_hash
    assert index.all_hashed_records() == []

def test_failed_transaction_leaves_memory_intact(index, root, monkeypatch):
    _write(root / "1.txt", b"abcd")
    index.add_path(str(root))
    (root / "1.txt").unlink()

    def broken_delete(identities):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(index.db, "delete_files", broken_delete)

    with pytest.raises(TransactionFailure):
        index.purge()
    assert index.record_by_identity(str(root / "1.txt")) is not None
    assert index.db.fetch_file(str(root / "1.txt")) is not None

def test_purge_keeps_files_it_cannot_stat(index, root, monkeypatch, caplog):
    locked = _write(root / "locked" / "f.bin", b"abcd")
    gone = _write(root / "2.txt", b"abcd")
    index.add_path(str(root))
    gone.unlink()

    real_stat = os.stat

    def denied_stat(path, *args, **kwargs):
        if str(path) == str(locked):
            raise PermissionError(13, "Permission denied", str(path))
        return real_stat(path, *args, **kwargs)

    monkeypatch.setattr(os, "stat", denied_stat)

    assert index.purge() == 1
    assert index.record_by_identity(str(locked)) is not None
    assert index.record_by_identity(str(gone)) is None
    assert index.db.fetch_file(str(locked)) is not None
    assert "Permission denied" in caplog.text
