"""Persistent book library: SQLite records, copied documents, reading progress."""
