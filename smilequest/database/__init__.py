"""Persistence layer: ORM models grouped by domain."""
