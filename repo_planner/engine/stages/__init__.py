"""Pipeline stage implementations.

Each stage handles one task of the plan lifecycle.

Available Stages:
    - PlanningStage: Analyze a repository and create a plan milestone
    - ApprovalStage: Create the plan's issues and attach them to the milestone
    - RefinementStage: Revise a plan with user feedback
    - CancellationStage: Close a plan milestone
    - MultiPlanStage: Create one plan across several repositories

Each stage inherits from PipelineStage and implements the stage-specific logic.

Example:
    >>> from repo_planner.engine.stages import PlanningStage
    >>> stage = PlanningStage(git, completion, settings)
    >>> outcome = await stage.run(request)
"""

from repo_planner.engine.stages.approval import ApprovalStage
from repo_planner.engine.stages.base import PipelineStage, StageRequest
from repo_planner.engine.stages.cancellation import CancellationStage
from repo_planner.engine.stages.multi_plan import MultiPlanStage
from repo_planner.engine.stages.planning import PlanningStage
from repo_planner.engine.stages.refinement import RefinementStage

__all__ = [
    "ApprovalStage",
    "CancellationStage",
    "MultiPlanStage",
    "PipelineStage",
    "PlanningStage",
    "RefinementStage",
    "StageRequest",
]
