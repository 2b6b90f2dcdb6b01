"""Core infrastructure: configuration, logging, database, events, locking."""
