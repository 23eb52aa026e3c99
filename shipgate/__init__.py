"""shipgate: staged, dependency-aware quality gates for release decisions."""

from shipgate.manager import QualityGateManager
from shipgate.quality_gates.models import GateLevel, GateStatus

__version__ = "0.1.0"

__all__ = [
    "GateLevel",
    "GateStatus",
    "QualityGateManager",
    "__version__",
]
