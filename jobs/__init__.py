"""Scheduled jobs (not attached to a domain)."""

from .relationship_maintenance import register_relationship_jobs

__all__ = [
    "register_relationship_jobs",
]
