"""Console dashboard primitives for vmsetup."""

from .dashboard import BaseDashboard, ConsoleDashboard, JsonDashboard
from .events import SetupEvent, SetupEventType

__all__ = [
    "BaseDashboard",
    "ConsoleDashboard",
    "JsonDashboard",
    "SetupEvent",
    "SetupEventType",
]
