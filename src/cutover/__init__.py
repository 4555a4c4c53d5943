"""Phased deployment orchestration with compensation and disaster-recovery rollback."""

__version__ = "0.1.0"
