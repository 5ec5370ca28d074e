"""SQLModel tables. Importing this package registers every table on the metadata."""

from mindforge.models.event import UserEvent
from mindforge.models.project import PRD, DecisionPath, FeatureCode, FeaturePRD, Mindmap, Project
from mindforge.models.usage import MonthlyUsage, UsageCounter
from mindforge.models.user import User

__all__ = [
    "DecisionPath",
    "FeatureCode",
    "FeaturePRD",
    "Mindmap",
    "MonthlyUsage",
    "PRD",
    "Project",
    "UsageCounter",
    "User",
    "UserEvent",
]
