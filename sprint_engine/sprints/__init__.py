"""Sprint lifecycle, overlap validation and metrics."""

from .burndown import calculate_metrics, generate_burndown
from .overlap import check_overlap, intervals_overlap
from .service import SprintService

__all__ = [
    "SprintService",
    "calculate_metrics",
    "generate_burndown",
    "check_overlap",
    "intervals_overlap",
]
