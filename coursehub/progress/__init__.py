"""Student progress tracking module.

Provides:
- Lecture completion (idempotent)
- Completion percentage recomputed from the live course structure
- Progress reset and the student dashboard
"""

from .models import PROGRESS_TABLES_CQL, CourseProgress, compute_completion_percentage
from .router import router
from .service import ProgressService


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CourseProgress",
    "ProgressService",
    "compute_completion_percentage",
    "router",
]
