"""Low-level SQLite operations mixed into ``SQLiteDatabaseHandler``."""
