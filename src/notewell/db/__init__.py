"""notewell database layer."""

from notewell.db.connection import Database
from notewell.db.migrations import MIGRATIONS, run_migrations
from notewell.db.paths import normalize_path
from notewell.db.schema import initialize, repair_fts
from notewell.db.vectors import decode_vector, encode_vector

__all__ = [
    "Database",
    "initialize",
    "repair_fts",
    "run_migrations",
    "MIGRATIONS",
    "normalize_path",
    "encode_vector",
    "decode_vector",
]
