"""Persistence layer: ORM tables, repositories and engine helpers."""
