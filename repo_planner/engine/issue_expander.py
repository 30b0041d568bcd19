"""
Issue expansion: turns an approved plan into work-item templates.

Every analysis entry becomes one issue. Titles carry a category prefix and a
shortened summary, bodies come from per-category templates that always end
with a reference to the plan milestone. Enrichment optionally rewrites each
body with the AI service; a failed rewrite keeps the templated body.
"""

import asyncio
import json
import re
from dataclasses import dataclass, replace

import structlog

from repo_planner.config.settings import AIConfig, LimitsConfig
from repo_planner.engine.prompts import ENRICHMENT_SYSTEM_PROMPT, build_enrichment_prompt
from repo_planner.enums import AnalysisCategory, IssuePriority
from repo_planner.exceptions import AIResponseError, ExternalServiceError, RepoPlannerError
from repo_planner.models.domain import IssueTemplate, PlanAnalysis
from repo_planner.providers.base import CompletionProvider, GitProvider
from repo_planner.rendering import TemplateRenderer, get_renderer
from repo_planner.utils.batching import BatchProcessor
from repo_planner.utils.text import shorten

log = structlog.get_logger(__name__)

TITLE_SUMMARY_LENGTH = 60
MAX_TITLE_LENGTH = 256
README_LINES = 10
README_CHARS = 500
CONTEXT_COMMITS = 5
CONTEXT_DEPENDENCIES = 5

_ANNOTATION_RE = re.compile(r"\s*\[(?:Size|Priority|Risk)\s*:[^\]]*\]\s*$", re.IGNORECASE)
_FOOTER_RE = re.compile(r"## Related\s*\nPart of AI Development Plan Milestone #\d+\s*$")
_MARKDOWN_FENCE_RE = re.compile(r"^```(?:markdown|md)?\s*\n(.*)\n```\s*$", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class CategorySpec:
    """How entries of one analysis category become issues."""

    prefix: str
    labels: tuple[str, ...]
    priority: IssuePriority
    template: str


CATEGORY_TABLE: dict[AnalysisCategory, CategorySpec] = {
    AnalysisCategory.CRITICAL: CategorySpec(
        prefix="[CRITICAL]",
        labels=("critical", "bug", "security"),
        priority=IssuePriority.CRITICAL,
        template="issues/critical.md.j2",
    ),
    AnalysisCategory.MISSING: CategorySpec(
        prefix="[MISSING]",
        labels=("enhancement", "missing-feature"),
        priority=IssuePriority.HIGH,
        template="issues/missing.md.j2",
    ),
    AnalysisCategory.IMPROVEMENT: CategorySpec(
        prefix="[IMPROVEMENT]",
        labels=("improvement", "technical-debt"),
        priority=IssuePriority.NORMAL,
        template="issues/improvement.md.j2",
    ),
    AnalysisCategory.INNOVATION: CategorySpec(
        prefix="[FEATURE]",
        labels=("feature", "innovation", "enhancement"),
        priority=IssuePriority.FEATURE,
        template="issues/feature.md.j2",
    ),
}


def build_title(prefix: str, entry: str) -> str:
    """``[PREFIX] summary`` with the summary cut to 60 characters.

    Trailing size/priority/risk annotations are left out of the title.
    """
    summary = _ANNOTATION_RE.sub("", entry).strip() or entry.strip()
    if len(summary) > TITLE_SUMMARY_LENGTH:
        summary = summary[:TITLE_SUMMARY_LENGTH] + "..."
    return shorten(f"{prefix} {summary}", MAX_TITLE_LENGTH)


def expand(
    analysis: PlanAnalysis,
    milestone_number: int,
    max_issues: int,
    renderer: TemplateRenderer | None = None,
) -> list[IssueTemplate]:
    """Expand a plan into at most ``max_issues`` issue templates, critical first."""
    renderer = renderer or get_renderer()
    templates: list[IssueTemplate] = []

    for category, spec in CATEGORY_TABLE.items():
        for entry in analysis.entries(category):
            if len(templates) >= max_issues:
                log.info("issue_expansion_capped", max_issues=max_issues, total_entries=analysis.total_items())
                return templates
            templates.append(
                IssueTemplate(
                    title=build_title(spec.prefix, entry),
                    body=renderer.render(spec.template, description=entry, milestone_number=milestone_number),
                    labels=list(spec.labels),
                    priority=spec.priority,
                    category=category,
                    source_entry=entry,
                )
            )

    return templates


def _clean_markdown(content: str) -> str:
    content = content.strip()
    fenced = _MARKDOWN_FENCE_RE.match(content)
    return fenced.group(1).strip() if fenced else content


async def extract_repository_context(
    git: GitProvider,
    owner: str,
    repo: str,
    renderer: TemplateRenderer | None = None,
) -> str:
    """Short repository description used to ground issue enrichment.

    Every part is optional; a repository that cannot be read at all yields
    an empty context.
    """
    renderer = renderer or get_renderer()
    try:
        info = await git.get_repository(owner, repo)
    except RepoPlannerError as e:
        log.warning("repository_context_unavailable", owner=owner, repo=repo, error=e.message)
        return ""

    dependencies: list[str] = []
    dev_dependencies: list[str] = []
    scripts: list[str] = []
    readme = ""
    commits: list[str] = []

    try:
        manifest = json.loads(await git.get_file(owner, repo, "package.json"))
        if isinstance(manifest, dict):
            dependencies = list(manifest.get("dependencies") or {})[:CONTEXT_DEPENDENCIES]
            dev_dependencies = list(manifest.get("devDependencies") or {})[:3]
            scripts = list(manifest.get("scripts") or {})
    except (RepoPlannerError, json.JSONDecodeError) as e:
        log.debug("repository_context_no_manifest", error=str(e))

    try:
        text = "\n".join((await git.get_file(owner, repo, "README.md")).splitlines()[:README_LINES])
        readme = text[:README_CHARS] + ("..." if len(text) > README_CHARS else "")
    except RepoPlannerError as e:
        log.debug("repository_context_no_readme", error=e.message)

    try:
        commits = await git.get_recent_commits(owner, repo, CONTEXT_COMMITS)
    except RepoPlannerError as e:
        log.debug("repository_context_no_commits", error=e.message)

    return renderer.render(
        "repository_context.md.j2",
        info=info,
        dependencies=dependencies,
        dev_dependencies=dev_dependencies,
        scripts=scripts,
        readme=readme,
        commits=commits,
    )


class IssueEnricher:
    """Rewrites templated issue bodies into implementation-ready issues."""

    def __init__(
        self,
        completion: CompletionProvider,
        ai: AIConfig | None = None,
        limits: LimitsConfig | None = None,
    ) -> None:
        self.completion = completion
        self.ai = ai or AIConfig()
        self.limits = limits or LimitsConfig()

    async def enrich(self, templates: list[IssueTemplate], repo_context: str) -> list[IssueTemplate]:
        """Enrich every template; order and count are preserved."""
        processor = BatchProcessor(
            batch_size=self.limits.enrichment_batch_size,
            delay_between_batches=self.limits.enrichment_batch_delay,
        )
        outcomes = await processor.process(
            templates,
            lambda template: self._enrich_one(template, repo_context),
            name="issue_enrichment",
        )

        enriched = []
        for outcome in outcomes:
            if outcome.ok and outcome.result is not None:
                enriched.append(outcome.result)
            else:
                log.warning("issue_enrichment_skipped", title=outcome.item.title, error=str(outcome.error))
                enriched.append(outcome.item)

        log.info(
            "issue_enrichment_completed",
            total=len(templates),
            enriched=sum(1 for before, after in zip(templates, enriched, strict=True) if before is not after),
        )
        return enriched

    async def _enrich_one(self, template: IssueTemplate, repo_context: str) -> IssueTemplate:
        timeout = self.limits.enrichment_timeout
        try:
            content = await asyncio.wait_for(
                self.completion.complete(
                    ENRICHMENT_SYSTEM_PROMPT,
                    build_enrichment_prompt(template.title, template.body, repo_context),
                    model=self.ai.enrichment_model,
                    temperature=0.7,
                    max_tokens=2000,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(f"Issue enrichment timed out after {timeout:g}s") from e

        body = _clean_markdown(content)
        if not body:
            raise AIResponseError("Empty enrichment response")

        footer = _FOOTER_RE.search(template.body)
        if footer and footer.group(0).strip() not in body:
            body = f"{body}\n\n{footer.group(0).strip()}"
        return replace(template, body=body)
