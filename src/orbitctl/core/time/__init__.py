from orbitctl.core.time.abc import Time
from orbitctl.core.time.real import RealTime

__all__ = ["RealTime", "Time"]
