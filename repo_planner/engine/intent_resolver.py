"""
Intent resolution: deterministic patterns first, AI classification second.

Resolution Flow:
    1. ``parse_command`` extracts the command after the bot mention.
    2. ``classify_deterministic`` matches the fixed pattern sets. A match
       always wins, keeping routing stable for common commands.
    3. Only when no pattern matches (typos, other languages, paraphrases)
       is the AI classifier consulted. Its answer is accepted above a
       confidence threshold; errors and unparseable answers resolve to
       ``Intent.UNKNOWN`` rather than a guess.
    4. The intent is mapped to a task identifier through ``INTENT_TASKS``.
"""

from collections import OrderedDict
from dataclasses import dataclass

import structlog

from repo_planner.engine.command_parser import classify_deterministic, parse_command
from repo_planner.enums import Intent, TaskType
from repo_planner.exceptions import RepoPlannerError
from repo_planner.models.domain import IntentClassification, ParsedCommand, Resolution
from repo_planner.providers.base import CompletionProvider
from repo_planner.utils.text import extract_json_object

log = structlog.get_logger(__name__)

CLASSIFICATION_CACHE_SIZE = 256

INTENT_TASKS: dict[Intent, TaskType | None] = {
    Intent.APPROVAL: TaskType.PLAN_APPROVAL,
    Intent.PLANNING: TaskType.PLAN,
    Intent.REFINEMENT: TaskType.PLAN_REFINEMENT,
    Intent.CANCELLATION: TaskType.PLAN_CANCELLATION,
    Intent.EXECUTION: TaskType.PLAN_EXECUTION,
    Intent.MULTI_PLAN: TaskType.MULTI_PLAN,
    Intent.DEV: TaskType.CODEX,
    Intent.UNKNOWN: None,
}

# Labels the classifier is asked to use, mapped back to intents
_AI_LABELS: dict[str, Intent] = {
    "approval": Intent.APPROVAL,
    "plan": Intent.PLANNING,
    "planning": Intent.PLANNING,
    "refine": Intent.REFINEMENT,
    "refinement": Intent.REFINEMENT,
    "cancel": Intent.CANCELLATION,
    "cancellation": Intent.CANCELLATION,
    "execute": Intent.EXECUTION,
    "execution": Intent.EXECUTION,
    "unknown": Intent.UNKNOWN,
}

CLASSIFIER_SYSTEM_PROMPT = """You are a command intent classifier for a GitHub bot. Your job is to understand what the user wants to do, regardless of typos, language, or phrasing.

AVAILABLE INTENTS:
1. "approval" - User approves a plan/milestone (yes, ok, approve, go ahead, looks good, lgtm, ship it)
2. "plan" - User wants a development plan for the repository
3. "refine" - User wants to modify/update an existing plan
4. "cancel" - User wants to cancel/reject a plan
5. "execute" - User wants execution of an approved plan to start
6. "unknown" - Anything else, or when truly unclear

MULTI-LANGUAGE SUPPORT:
Recognize intents in any language (sí, oui, ja, sim, да, 是的, はい are approvals).

TYPO TOLERANCE:
- "aprove" → "approval"
- "ys" → "approval"
- "refien" → "refine"
- "cancle" → "cancel"
{context}
OUTPUT FORMAT (JSON only):
{{
  "intent": "approval|plan|refine|cancel|execute|unknown",
  "confidence": 0.0-1.0,
  "normalizedCommand": "the intent in standard english",
  "language": "detected language code (en, es, fr, etc.)"
}}"""

MILESTONE_CONTEXT = (
    "\nCONTEXT AWARENESS:\n"
    "- A milestone was recently created in this thread, so approval-related commands are more likely\n"
)


class AIIntentClassifier:
    """Classifies free-form commands with a small chat model."""

    def __init__(
        self,
        completion: CompletionProvider,
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        max_tokens: int = 150,
        timeout: float = 30.0,
    ) -> None:
        self.completion = completion
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def classify(self, command: str, milestone_just_created: bool = False) -> IntentClassification:
        """Classify a command.

        Raises:
            ExternalServiceError: If the completion call fails
            AIResponseError: If the answer is not a usable classification
        """
        system_prompt = CLASSIFIER_SYSTEM_PROMPT.format(
            context=MILESTONE_CONTEXT if milestone_just_created else ""
        )
        user_prompt = (
            f'Classify this command: "{command}"\n\n'
            "Be generous with typo correction, recognize intent in any language, "
            'and answer "unknown" only if truly unclear.'
        )
        content = await self.completion.complete(
            system_prompt,
            user_prompt,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
        )
        return self.parse_classification(content, command)

    @staticmethod
    def parse_classification(content: str, command: str) -> IntentClassification:
        """Parse the classifier's JSON answer, tolerating malformed fields."""
        data = extract_json_object(content)

        label = str(data.get("intent", "")).strip().lower()
        intent = _AI_LABELS.get(label, Intent.UNKNOWN)

        try:
            confidence = float(data.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = min(max(confidence, 0.0), 1.0)

        return IntentClassification(
            intent=intent,
            confidence=confidence,
            normalized_command=str(data.get("normalizedCommand") or command),
            language=str(data.get("language") or "en"),
        )


@dataclass
class ResolutionContext:
    """Thread context that may sway classification."""

    milestone_just_created: bool = False


class IntentResolver:
    """Two-stage resolver from comment text to a task.

    Example:
        >>> resolver = IntentResolver(classifier=AIIntentClassifier(completion))
        >>> resolution = await resolver.resolve("@l ship it")
        >>> resolution.task
        <TaskType.PLAN_APPROVAL: 'plan-approval-task'>
    """

    def __init__(
        self,
        classifier: AIIntentClassifier | None = None,
        min_confidence: float = 0.5,
        mention_names: tuple[str, ...] = ("uwularpy", "l"),
        cache_size: int = CLASSIFICATION_CACHE_SIZE,
    ) -> None:
        self.classifier = classifier
        self.min_confidence = min_confidence
        self.mention_names = mention_names
        self.cache_size = cache_size
        # Repeated identical commands must route identically; least recently used entries are evicted
        self._classifications: OrderedDict[tuple[str, bool], IntentClassification] = OrderedDict()

    def needs_classification(self, text: str) -> bool:
        """Whether resolving ``text`` would consult the AI classifier."""
        parsed = parse_command(text, self.mention_names)
        return (
            self.classifier is not None
            and parsed.is_mention
            and bool(parsed.command)
            and classify_deterministic(parsed) is None
        )

    async def resolve(self, text: str, context: ResolutionContext | None = None) -> Resolution:
        """Resolve comment text into an intent and task."""
        parsed = parse_command(text, self.mention_names)
        if not parsed.is_mention:
            return Resolution(intent=Intent.UNKNOWN, task=None, parsed=parsed, source="none", confidence=0.0)

        intent = classify_deterministic(parsed)
        if intent is not None:
            log.info("intent_resolved", intent=str(intent), source="pattern", command=parsed.command)
            return Resolution(intent=intent, task=INTENT_TASKS[intent], parsed=parsed, source="pattern")

        if self.classifier is None or not parsed.command:
            return self._unknown(parsed)

        return await self._resolve_with_ai(parsed, context or ResolutionContext())

    async def _resolve_with_ai(self, parsed: ParsedCommand, context: ResolutionContext) -> Resolution:
        cache_key = (parsed.command, context.milestone_just_created)
        classification = self._classifications.get(cache_key)
        if classification is not None:
            self._classifications.move_to_end(cache_key)
        else:
            try:
                classification = await self.classifier.classify(parsed.command, context.milestone_just_created)
            except RepoPlannerError as e:
                log.warning("intent_classification_failed", error=e.message, command=parsed.command)
                return self._unknown(parsed)
            self._classifications[cache_key] = classification
            if len(self._classifications) > self.cache_size:
                self._classifications.popitem(last=False)

        if classification.confidence < self.min_confidence:
            log.info(
                "intent_classification_low_confidence",
                intent=str(classification.intent),
                confidence=classification.confidence,
            )
            return self._unknown(parsed, confidence=classification.confidence)

        intent = classification.intent
        log.info(
            "intent_resolved",
            intent=str(intent),
            source="ai",
            confidence=classification.confidence,
            language=classification.language,
        )
        return Resolution(
            intent=intent,
            task=INTENT_TASKS[intent],
            parsed=parsed,
            source="ai",
            confidence=classification.confidence,
        )

    @staticmethod
    def _unknown(parsed: ParsedCommand, confidence: float = 0.0) -> Resolution:
        log.info("intent_unrecognized", command=parsed.command)
        return Resolution(intent=Intent.UNKNOWN, task=None, parsed=parsed, source="none", confidence=confidence)
