"""Background workers for the seat hold service."""

from .hold_sweep_worker import HoldSweepWorker

__all__ = ["HoldSweepWorker"]
