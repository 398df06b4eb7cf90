import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import load_config
from .core import DupeFilesApp
from .exceptions import DupeFilesError, StoreUnavailable

def setup_logging(verbose: bool, log_file: Optional[Path] = None):
    """Sets up logging to the console and, optionally, a file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dupefiles", description="DupeFiles: find duplicate files with a persistent catalog")

    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--db", type=Path, default=None, help="Custom path for the SQLite catalog (default: $DF_DBFILE or ~/.config/dupefiles/dupefiles.db)")
    p.add_argument("--min-size", type=int, default=None, help="Minimum file size in bytes to track")
    p.add_argument("--sample-size", type=int, default=None, help="Bytes to compare per pair (0 = whole file)")
    p.add_argument("--log-file", type=Path, default=None, help="Also write the log to this file")
    p.add_argument("--no-progress", action="store_true", help="Hide progress bars")

    sub = p.add_subparsers(dest="command", metavar="COMMAND")

    add = sub.add_parser("add", help="Add a file or directory to the catalog")
    add.add_argument("path")
    add.add_argument("filter", nargs="?", default=None, help="Shell pattern for file names, e.g. '*.jpg'")
    add.add_argument("--no-recursive", action="store_true", help="Do not descend into subdirectories")

    qs = sub.add_parser("quickscan", help="Add a directory and scan for duplicates")
    qs.add_argument("path")
    qs.add_argument("filter", nargs="?", default=None)

    rm = sub.add_parser("remove", help="Remove a file or directory tree from the catalog")
    rm.add_argument("path")

    sub.add_parser("scan", help="Scan the catalog for duplicates (default)")
    sub.add_parser("update", help="Re-check cataloged files and rehash changed ones")
    sub.add_parser("purge", help="Remove files that no longer exist from the catalog")
    sub.add_parser("clear", help="Remove all files from the catalog")
    sub.add_parser("files", help="Show all files in the catalog")
    sub.add_parser("dupes", help="Show all duplicate files in the catalog")
    sub.add_parser("hashes", help="Show hashed files in the catalog")
    sub.add_parser("forget", help="Remove duplicate files from the catalog")
    sub.add_parser("headshot", help="Remove all hashes from the catalog")
    sub.add_parser("config", help="Show configuration")

    return p

def run(app: DupeFilesApp, args: argparse.Namespace):
    command = args.command or "scan"
    if command == "add":
        app.add_path(args.path, recursive=not args.no_recursive, filter=args.filter)
    elif command == "quickscan":
        app.quick_scan(args.path, filter=args.filter)
    elif command == "remove":
        app.remove(args.path)
    elif command == "scan":
        app.scan()
    elif command == "update":
        app.update()
    elif command == "purge":
        app.purge()
    elif command == "clear":
        app.clear()
    elif command == "files":
        app.show_files()
    elif command == "dupes":
        app.show_dupes()
    elif command == "hashes":
        app.show_hashes()
    elif command == "forget":
        app.forget_duplicates()
    elif command == "headshot":
        app.forget_hashes()
    elif command == "config":
        app.show_config()

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(db_path=args.db, min_file_size=args.min_size, sample_size=args.sample_size)
    except DupeFilesError as e:
        setup_logging(args.verbose, args.log_file)
        logging.error(str(e))
        return 1

    setup_logging(args.verbose or cfg.debug, args.log_file)

    try:
        with DupeFilesApp(cfg, show_progress=not args.no_progress) as app:
            run(app, args)
    except StoreUnavailable as e:
        logging.error(f"Catalog unavailable: {e}")
        return 1
    except DupeFilesError as e:
        logging.error(str(e))
        return 1
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())
