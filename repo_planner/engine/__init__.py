"""Planning engine: intent resolution, analysis and the plan lifecycle.

Key Components:
    - PlanningPipeline: Routes comment triggers to stages
    - IntentResolver: Deterministic patterns first, AI classification second
    - RateLimiter: Sliding-window limits for plan creation
    - RepositoryIngestor: Bounded textual repository summaries
    - AnalysisOrchestrator: AI analysis with retry, refinement and fallback
    - MilestoneManager: Plan milestones (create, find, close)
    - IssueCreator / AttachmentVerifier: Issue creation with link repair

Example:
    >>> from repo_planner.engine.pipeline import PlanningPipeline
    >>> pipeline = PlanningPipeline(settings, git, completion)
    >>> outcome = await pipeline.handle(payload)
"""
