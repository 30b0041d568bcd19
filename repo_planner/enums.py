"""Enumerations for intents, plan categories and task identifiers."""

from enum import Enum


class Intent(str, Enum):
    """Normalized category of a user's command."""

    APPROVAL = "approval"
    CANCELLATION = "cancellation"
    REFINEMENT = "refinement"
    PLANNING = "planning"
    EXECUTION = "execution"
    MULTI_PLAN = "multi_plan"
    DEV = "dev"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class TaskType(str, Enum):
    """Identifiers of the pipeline variants an intent can be routed to."""

    PLAN = "plan-task"
    PLAN_APPROVAL = "plan-approval-task"
    PLAN_REFINEMENT = "plan-refinement-task"
    PLAN_CANCELLATION = "plan-cancellation-task"
    PLAN_EXECUTION = "plan-execution-task"
    MULTI_PLAN = "multi-plan-task"
    CODEX = "codex-task"

    def __str__(self) -> str:
        return self.value


class AnalysisCategory(str, Enum):
    """Category lists of a plan analysis, in serialization order."""

    CRITICAL = "critical"
    MISSING = "missing"
    IMPROVEMENT = "improvement"
    INNOVATION = "innovation"

    def __str__(self) -> str:
        return self.value


class IssuePriority(str, Enum):
    """Priority of a generated work item.

    Declaration order is sort order: critical items are listed first.
    """

    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    FEATURE = "feature"

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        """Sort key, lower is more urgent."""
        return list(IssuePriority).index(self)


class ProjectType(str, Enum):
    """Project type detected by the analysis model."""

    FRONTEND = "frontend"
    BACKEND = "backend"
    FULLSTACK = "fullstack"
    SOLANA = "solana"
    RUST = "rust"
    LIBRARY = "library"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: object) -> "ProjectType | None":
        """Parse a model-provided value, returning None when unrecognized."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None
