"""Core package: configuration, database, logging and errors."""
