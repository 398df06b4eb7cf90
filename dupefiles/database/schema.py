"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the catalog schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Tracked files, keyed by canonical path
        conn.execute("""
        CREATE TABLE IF NOT EXISTS files (
            identity        TEXT PRIMARY KEY,
            path            TEXT NOT NULL,
            extension       TEXT NOT NULL,
            size            INTEGER NOT NULL,
            mod_time        INTEGER NOT NULL,
            hash            TEXT,                 -- NULL until computed
            humanized_size  TEXT
        );
        """)

        # 3. Membership in the latest confirmed duplicate sets
        conn.execute("""
        CREATE TABLE IF NOT EXISTS duplicates (
            identity        TEXT PRIMARY KEY,
            scanned         INTEGER NOT NULL,
            FOREIGN KEY(identity) REFERENCES files(identity)
                ON DELETE CASCADE ON UPDATE CASCADE
        );
        """)

        # 4. Indices for the size/hash grouping queries
        conn.execute("CREATE INDEX IF NOT EXISTS idx_files_path ON files(path);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_files_size ON files(size);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_files_hash ON files(hash);")

    logging.debug("Database schema initialized.")
