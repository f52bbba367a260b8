"""Background tasks."""

from .maintenance import MaintenanceScheduler

__all__ = ["MaintenanceScheduler"]
