"""Progress ledger module.

Provides:
- Course enrollment management
- Lesson unit completion with progress derivation
- The assessment unlock gate
"""

from .models import PROGRESS_TABLES_CQL, Enrollment
from .policy import calculate_progress, is_assessment_enabled


__all__ = [
    "PROGRESS_TABLES_CQL",
    "Enrollment",
    "calculate_progress",
    "is_assessment_enabled",
]
