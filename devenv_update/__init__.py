"""Windows development-environment update orchestrator."""

__version__ = "6.0.0"

from .models import PackageRecord, PackageStatus, StepResult, StepStatus  # noqa: E402

__all__ = [
    "PackageRecord",
    "PackageStatus",
    "StepResult",
    "StepStatus",
    "__version__",
]
