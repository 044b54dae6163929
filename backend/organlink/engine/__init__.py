from .allocation import AllocationEngine
from .events import EngineEvent
from .quality import OrganQualityService

__all__ = ["AllocationEngine", "EngineEvent", "OrganQualityService"]
