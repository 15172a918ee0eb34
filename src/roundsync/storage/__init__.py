"""DuckDB persistence replica and key/value store."""
