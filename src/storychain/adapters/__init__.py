"""SQLite adapters, logging setup, and workspace wiring."""
