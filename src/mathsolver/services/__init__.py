"""Use cases behind the function routes."""

from .audio import AudioService
from .solver import SolverService

__all__ = ["AudioService", "SolverService"]
