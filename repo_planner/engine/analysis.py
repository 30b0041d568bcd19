"""
Analysis orchestration: drives the AI service from repository summary to plan.

Flow:
    1. Initial analysis call with the evaluation-framework system prompt.
    2. ``refinement_passes`` follow-up calls by a security and reliability
       reviewer; new entries are appended to the matching category.
    3. Any category still empty is backfilled so downstream stages never see
       an empty list.

Every AI call carries a timeout and is retried on HTTP 429/5xx, timeouts and
malformed responses with exponential backoff. When the initial call fails for
good, a deterministic fallback analysis is returned instead of an error.
"""

import asyncio
from collections.abc import Callable
from typing import TypeVar

import structlog

from repo_planner.config.settings import AIConfig, LimitsConfig
from repo_planner.engine.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    CROSS_REPO_SYSTEM_PROMPT,
    FEEDBACK_SYSTEM_PROMPT,
    REFINEMENT_SYSTEM_PROMPT,
    build_analysis_prompt,
    build_feedback_prompt,
    build_refinement_prompt,
)
from repo_planner.enums import AnalysisCategory, ProjectType
from repo_planner.exceptions import AIResponseError, ExternalServiceError, RepoPlannerError, WorkflowError
from repo_planner.models.domain import PlanAnalysis, RepositoryRef, RepositorySummary
from repo_planner.providers.base import CompletionProvider
from repo_planner.utils.retry import is_transient, retry_async
from repo_planner.utils.text import collapse_whitespace, extract_json_object

log = structlog.get_logger(__name__)

T = TypeVar("T")

RESPONSE_KEYS: dict[AnalysisCategory, str] = {
    AnalysisCategory.CRITICAL: "criticalFixes",
    AnalysisCategory.MISSING: "missingComponents",
    AnalysisCategory.IMPROVEMENT: "requiredImprovements",
    AnalysisCategory.INNOVATION: "innovationIdeas",
}

REFINEMENT_KEYS: dict[AnalysisCategory, str] = {
    AnalysisCategory.CRITICAL: "newCriticalIssues",
    AnalysisCategory.MISSING: "newMissingComponents",
    AnalysisCategory.IMPROVEMENT: "newImprovements",
    AnalysisCategory.INNOVATION: "newInnovationIdeas",
}

FALLBACK_OVERVIEW = (
    "Analysis temporarily unavailable due to AI service issues. This is a fallback assessment "
    "focused on reliability, security, and maintainability; run the plan command again later "
    "for a repository-specific analysis."
)

FALLBACK_ENTRIES: dict[AnalysisCategory, tuple[str, ...]] = {
    AnalysisCategory.CRITICAL: (
        "Review and update dependencies for known security vulnerabilities [Size: S, Priority: Must, Risk: High]",
        "Add input validation and sanitization for all external inputs [Size: M, Priority: Must, Risk: High]",
        "Implement consistent error handling and logging on critical paths [Size: M, Priority: Must, Risk: High]",
        "Audit authentication, authorization and secret handling [Size: M, Priority: Must, Risk: High]",
        "Establish backup and recovery procedures for critical data [Size: M, Priority: Must, Risk: High]",
    ),
    AnalysisCategory.MISSING: (
        "Automated test suite with a CI pipeline running on every pull request [Size: M, Priority: Must, Risk: Medium]",
        "Setup, configuration and contribution documentation [Size: S, Priority: Should, Risk: Low]",
        "Security scanning and dependency update automation [Size: S, Priority: Should, Risk: Medium]",
        "Linting and formatting configuration enforced in CI [Size: S, Priority: Should, Risk: Low]",
        "Health checks and basic monitoring for deployed components [Size: M, Priority: Should, Risk: Medium]",
    ),
    AnalysisCategory.IMPROVEMENT: (
        "Modularize large files and separate concerns for maintainability [Size: L, Priority: Should, Risk: Medium]",
        "Profile hot paths and fix measurable performance bottlenecks [Size: M, Priority: Should, Risk: Low]",
        "Document public interfaces and non-obvious logic [Size: M, Priority: Should, Risk: Low]",
        "Adopt consistent coding standards across the codebase [Size: S, Priority: Could, Risk: Low]",
        "Add timeouts and retries around external service calls [Size: S, Priority: Should, Risk: Medium]",
    ),
    AnalysisCategory.INNOVATION: (
        "Metrics dashboard covering usage, errors and latency [Size: L, Priority: Could, Risk: Low]",
        "Public API or plugin interface for third-party integrations [Size: L, Priority: Could, Risk: Medium]",
        "Command-line or chat-ops tooling for common maintenance tasks [Size: M, Priority: Could, Risk: Low]",
        "Feature flags for gradual rollout of new functionality [Size: M, Priority: Could, Risk: Low]",
        "Automated changelog and release notes generation [Size: S, Priority: Could, Risk: Low]",
    ),
}

FALLBACK_CROSS_REPO_INSIGHTS = (
    "Evaluate shared component libraries across repositories",
    "Standardize API conventions and documentation formats",
    "Implement unified CI/CD pipelines and development tooling",
    "Add cross-repository monitoring and observability",
)


def fallback_analysis() -> PlanAnalysis:
    """Deterministic analysis used when the AI service is unavailable."""
    return PlanAnalysis(
        repository_overview=FALLBACK_OVERVIEW,
        critical_fixes=list(FALLBACK_ENTRIES[AnalysisCategory.CRITICAL]),
        missing_components=list(FALLBACK_ENTRIES[AnalysisCategory.MISSING]),
        required_improvements=list(FALLBACK_ENTRIES[AnalysisCategory.IMPROVEMENT]),
        innovation_ideas=list(FALLBACK_ENTRIES[AnalysisCategory.INNOVATION]),
        is_fallback=True,
    )


def _clean_entries(value: list) -> list[str]:
    entries = []
    for item in value:
        if isinstance(item, dict):
            # Some models return {"title": ..., "description": ...} objects
            item = " - ".join(str(v) for v in (item.get("title"), item.get("description")) if v)
        if isinstance(item, str | int | float) and str(item).strip():
            entries.append(collapse_whitespace(str(item)))
    return entries


def parse_analysis(content: str) -> PlanAnalysis:
    """Parse and validate the analysis JSON returned by the model.

    Raises:
        AIResponseError: If the JSON is missing, or a category list is
            absent or not an array
    """
    data = extract_json_object(content)

    lists: dict[AnalysisCategory, list[str]] = {}
    missing = [key for key in RESPONSE_KEYS.values() if key not in data]
    if missing:
        raise AIResponseError(f"Invalid analysis structure: missing fields {', '.join(missing)}")
    for category, key in RESPONSE_KEYS.items():
        if not isinstance(data[key], list):
            raise AIResponseError(f"Field {key} must be an array")
        lists[category] = _clean_entries(data[key])

    overview = data.get("repositoryOverview")
    return PlanAnalysis(
        repository_overview=overview.strip() if isinstance(overview, str) else "",
        critical_fixes=lists[AnalysisCategory.CRITICAL],
        missing_components=lists[AnalysisCategory.MISSING],
        required_improvements=lists[AnalysisCategory.IMPROVEMENT],
        innovation_ideas=lists[AnalysisCategory.INNOVATION],
        project_type=ProjectType.parse(data.get("projectType")),
    )


def parse_refinement(content: str) -> dict[AnalysisCategory, list[str]]:
    """Parse the new entries of a refinement pass; absent keys mean no additions."""
    data = extract_json_object(content)
    additions: dict[AnalysisCategory, list[str]] = {}
    for category, key in REFINEMENT_KEYS.items():
        value = data.get(key, [])
        if not isinstance(value, list):
            raise AIResponseError(f"Field {key} must be an array")
        additions[category] = _clean_entries(value)
    return additions


def merge_additions(analysis: PlanAnalysis, additions: dict[AnalysisCategory, list[str]]) -> PlanAnalysis:
    """Append refinement entries to their categories."""
    for category, entries in additions.items():
        analysis.entries(category).extend(collapse_whitespace(entry) for entry in entries if entry.strip())
    return analysis


def ensure_complete(analysis: PlanAnalysis) -> PlanAnalysis:
    """Backfill empty categories and overview from the fallback."""
    for category in AnalysisCategory:
        entries = analysis.entries(category)
        if not entries:
            log.warning("analysis_category_backfilled", category=str(category))
            entries.extend(FALLBACK_ENTRIES[category])
    if not analysis.repository_overview:
        analysis.repository_overview = "No overview was provided by the analysis."
    return analysis


class AnalysisOrchestrator:
    """Runs analysis, refinement and aggregation calls against the AI service.

    Example:
        >>> orchestrator = AnalysisOrchestrator(completion, settings.ai, settings.limits)
        >>> analysis = await orchestrator.analyze(summary, user_query="focus on auth")
        >>> analysis.is_complete()
        True
    """

    def __init__(
        self,
        completion: CompletionProvider,
        ai: AIConfig | None = None,
        limits: LimitsConfig | None = None,
    ) -> None:
        self.completion = completion
        self.ai = ai or AIConfig()
        self.limits = limits or LimitsConfig()

    async def analyze(self, summary: RepositorySummary, user_query: str | None = None) -> PlanAnalysis:
        """Analyze a repository summary.

        Never raises for AI service failures: exhausted retries or
        non-retryable errors produce the fallback analysis.
        """
        log.info(
            "analysis_started",
            repository=str(summary.repository),
            summary_length=len(summary),
            has_user_query=bool(user_query),
        )

        try:
            analysis = await self._request(
                ANALYSIS_SYSTEM_PROMPT,
                build_analysis_prompt(summary.text, user_query),
                parse_analysis,
                operation="analysis",
            )
        except RepoPlannerError as e:
            log.error("analysis_failed_using_fallback", repository=str(summary.repository), error=e.message)
            return fallback_analysis()

        for round_number in range(1, self.limits.refinement_passes + 1):
            analysis = await self._refinement_pass(analysis, summary, round_number)

        analysis = ensure_complete(analysis)
        log.info(
            "analysis_completed",
            repository=str(summary.repository),
            project_type=str(analysis.project_type) if analysis.project_type else None,
            critical=len(analysis.critical_fixes),
            missing=len(analysis.missing_components),
            improvements=len(analysis.required_improvements),
            ideas=len(analysis.innovation_ideas),
        )
        return analysis

    async def refine(self, previous: PlanAnalysis, feedback: str) -> PlanAnalysis:
        """Revise a plan according to the owner's feedback.

        Raises:
            WorkflowError: If the AI service cannot produce a revised plan;
                the previous plan stays authoritative in that case
        """
        try:
            revised = await self._request(
                FEEDBACK_SYSTEM_PROMPT,
                build_feedback_prompt(previous, feedback),
                parse_analysis,
                operation="plan_revision",
            )
        except RepoPlannerError as e:
            log.error("plan_revision_failed", error=e.message)
            raise WorkflowError(f"Could not revise the plan: {e.message}") from e

        if revised.project_type is None:
            revised.project_type = previous.project_type
        return ensure_complete(revised)

    async def aggregate(self, analyses: list[tuple[RepositoryRef, PlanAnalysis]], failed: list[str]) -> PlanAnalysis:
        """Merge per-repository analyses into one cross-repository plan.

        Entries are prefixed with ``[owner/repo]`` and de-duplicated. Cross
        repository insights from the AI service are added as innovation ideas.
        """
        merged = PlanAnalysis(repository_overview="")
        for ref, analysis in analyses:
            for category in AnalysisCategory:
                for entry in analysis.entries(category):
                    item = f"[{ref.full_name}] {entry}"
                    if item not in merged.entries(category):
                        merged.entries(category).append(item)

        total = len(analyses) + len(failed)
        overview = f"Multi-repository analysis covering {total} repositories"
        if failed:
            overview += f" ({len(analyses)} accessible, {len(failed)} failed: {', '.join(failed)})"
        overview += ". " + " ".join(f"{ref.full_name}: {a.repository_overview}" for ref, a in analyses)
        merged.repository_overview = overview

        insights = await self._cross_repository_insights(analyses)
        merged.innovation_ideas.extend(f"[cross-repo] {insight}" for insight in insights)
        return ensure_complete(merged)

    async def _cross_repository_insights(self, analyses: list[tuple[RepositoryRef, PlanAnalysis]]) -> list[str]:
        prompt = "Analyze these repositories for cross-repository opportunities:\n\n" + "\n\n".join(
            f"### {ref.full_name}\n**Overview:** {analysis.repository_overview}" for ref, analysis in analyses
        )

        def parse(content: str) -> list[str]:
            value = extract_json_object(content).get("crossRepoOpportunities")
            if not isinstance(value, list):
                raise AIResponseError("Field crossRepoOpportunities must be an array")
            return _clean_entries(value)

        try:
            insights = await self._request(CROSS_REPO_SYSTEM_PROMPT, prompt, parse, operation="cross_repo_insights")
        except RepoPlannerError as e:
            log.warning("cross_repo_insights_failed", error=e.message)
            return list(FALLBACK_CROSS_REPO_INSIGHTS)
        return insights or list(FALLBACK_CROSS_REPO_INSIGHTS)

    async def _refinement_pass(
        self, analysis: PlanAnalysis, summary: RepositorySummary, round_number: int
    ) -> PlanAnalysis:
        try:
            additions = await self._request(
                REFINEMENT_SYSTEM_PROMPT,
                build_refinement_prompt(analysis, summary.text),
                parse_refinement,
                operation=f"refinement_{round_number}",
            )
        except RepoPlannerError as e:
            log.warning("analysis_refinement_failed", round=round_number, error=e.message)
            return analysis

        log.info(
            "analysis_refinement_merged",
            round=round_number,
            added={str(category): len(entries) for category, entries in additions.items()},
        )
        return merge_additions(analysis, additions)

    async def _request(
        self,
        system_prompt: str,
        user_prompt: str,
        parser: Callable[[str], T],
        operation: str,
    ) -> T:
        """One AI call with timeout, retry on transient failures and parsing."""
        timeout = self.limits.ai_timeout

        async def attempt() -> T:
            try:
                content = await asyncio.wait_for(
                    self.completion.complete(
                        system_prompt,
                        user_prompt,
                        model=self.ai.analysis_model,
                        temperature=self.ai.analysis_temperature,
                        max_tokens=self.ai.analysis_max_tokens,
                        timeout=timeout,
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as e:
                raise ExternalServiceError(f"AI call {operation} timed out after {timeout:g}s") from e
            return parser(content)

        return await retry_async(
            attempt,
            max_attempts=self.limits.retry_attempts,
            base_delay=self.limits.retry_base_delay,
            exceptions=(ExternalServiceError,),
            retry_if=is_transient,
            operation=operation,
        )
