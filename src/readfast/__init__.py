"""EPUB/PDF ingestion into chapter-indexed word sequences for speed reading."""
