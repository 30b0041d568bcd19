"""Tests for repo_planner/engine/intent_resolver.py."""

from unittest.mock import AsyncMock

import pytest

from repo_planner.engine.intent_resolver import (
    INTENT_TASKS,
    AIIntentClassifier,
    IntentResolver,
    ResolutionContext,
)
from repo_planner.enums import Intent, TaskType
from repo_planner.exceptions import AIResponseError, ExternalServiceError
from repo_planner.models.domain import IntentClassification


def classification(intent: Intent, confidence: float = 0.9) -> IntentClassification:
    return IntentClassification(intent=intent, confidence=confidence, normalized_command=str(intent))


@pytest.fixture
def classifier():
    mock = AsyncMock(spec=AIIntentClassifier)
    mock.classify.return_value = classification(Intent.APPROVAL)
    return mock


class TestIntentTasks:
    def test_every_intent_is_mapped(self):
        assert set(INTENT_TASKS) == set(Intent)

    def test_unknown_has_no_task(self):
        assert INTENT_TASKS[Intent.UNKNOWN] is None

    def test_dev_maps_to_codex(self):
        assert INTENT_TASKS[Intent.DEV] == TaskType.CODEX


class TestIntentResolver:
    """Two-stage resolution."""

    @pytest.mark.asyncio
    async def test_pattern_wins_without_ai(self, classifier):
        """A pattern match never consults the classifier."""
        resolver = IntentResolver(classifier=classifier)

        resolution = await resolver.resolve("@l approve")

        assert resolution.intent == Intent.APPROVAL
        assert resolution.task == TaskType.PLAN_APPROVAL
        assert resolution.source == "pattern"
        classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_mention(self, classifier):
        resolver = IntentResolver(classifier=classifier)

        resolution = await resolver.resolve("approve")

        assert resolution.intent == Intent.UNKNOWN
        assert resolution.task is None
        classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_bare_mention_is_unknown(self, classifier):
        resolver = IntentResolver(classifier=classifier)

        resolution = await resolver.resolve("@l")

        assert resolution.intent == Intent.UNKNOWN
        assert resolution.parsed.is_mention is True
        classifier.classify.assert_not_called()

    @pytest.mark.asyncio
    async def test_ai_fallback_for_typo(self, classifier):
        resolver = IntentResolver(classifier=classifier)

        resolution = await resolver.resolve("@l aprove")

        assert resolution.intent == Intent.APPROVAL
        assert resolution.task == TaskType.PLAN_APPROVAL
        assert resolution.source == "ai"
        classifier.classify.assert_awaited_once_with("aprove", False)

    @pytest.mark.asyncio
    async def test_context_is_forwarded(self, classifier):
        resolver = IntentResolver(classifier=classifier)

        await resolver.resolve("@l sí", ResolutionContext(milestone_just_created=True))

        classifier.classify.assert_awaited_once_with("sí", True)

    @pytest.mark.asyncio
    async def test_low_confidence_is_unknown(self, classifier):
        classifier.classify.return_value = classification(Intent.APPROVAL, confidence=0.3)
        resolver = IntentResolver(classifier=classifier, min_confidence=0.5)

        resolution = await resolver.resolve("@l hmm maybe")

        assert resolution.intent == Intent.UNKNOWN
        assert resolution.task is None
        assert resolution.confidence == 0.3

    @pytest.mark.asyncio
    async def test_classifier_error_is_unknown(self, classifier):
        """Classifier failures never guess."""
        classifier.classify.side_effect = ExternalServiceError("boom", status_code=503)
        resolver = IntentResolver(classifier=classifier)

        resolution = await resolver.resolve("@l aprove")

        assert resolution.intent == Intent.UNKNOWN
        assert resolution.task is None

    @pytest.mark.asyncio
    async def test_without_classifier(self):
        resolver = IntentResolver(classifier=None)

        resolution = await resolver.resolve("@l aprove")

        assert resolution.intent == Intent.UNKNOWN

    @pytest.mark.asyncio
    async def test_repeated_command_routes_identically(self, classifier):
        """Identical commands are classified once and routed the same way."""
        resolver = IntentResolver(classifier=classifier)

        first = await resolver.resolve("@l aprove")
        second = await resolver.resolve("@l aprove")

        assert first.task == second.task
        classifier.classify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_evicts_least_recently_used(self, classifier):
        resolver = IntentResolver(classifier=classifier, cache_size=2)

        for command in ("@l aprove", "@l zzz one", "@l aprove", "@l zzz two", "@l aprove"):
            await resolver.resolve(command)
        assert classifier.classify.await_count == 3

        await resolver.resolve("@l zzz one")

        assert classifier.classify.await_count == 4

    def test_needs_classification(self, classifier):
        resolver = IntentResolver(classifier=classifier)

        assert resolver.needs_classification("@l aprove") is True
        assert resolver.needs_classification("@l approve") is False
        assert resolver.needs_classification("@l") is False
        assert resolver.needs_classification("aprove") is False
        assert IntentResolver().needs_classification("@l aprove") is False


class TestAIIntentClassifier:
    """Tests for the AI classifier."""

    @pytest.mark.asyncio
    async def test_classify(self, mock_completion):
        mock_completion.complete.return_value = (
            '{"intent": "approval", "confidence": 0.95, "normalizedCommand": "approve", "language": "es"}'
        )
        classifier = AIIntentClassifier(mock_completion, model="tiny")

        result = await classifier.classify("sí")

        assert result.intent == Intent.APPROVAL
        assert result.confidence == 0.95
        assert result.language == "es"
        kwargs = mock_completion.complete.call_args.kwargs
        assert kwargs["model"] == "tiny"
        assert kwargs["max_tokens"] == 150

    @pytest.mark.asyncio
    async def test_milestone_context_in_prompt(self, mock_completion):
        mock_completion.complete.return_value = '{"intent": "approval", "confidence": 0.9}'
        classifier = AIIntentClassifier(mock_completion)

        await classifier.classify("ok", milestone_just_created=True)

        system_prompt = mock_completion.complete.call_args.args[0]
        assert "milestone was recently created" in system_prompt

    def test_parse_fenced_json(self):
        result = AIIntentClassifier.parse_classification(
            '```json\n{"intent": "cancel", "confidence": 0.8}\n```', "cancle"
        )

        assert result.intent == Intent.CANCELLATION
        assert result.normalized_command == "cancle"

    def test_parse_unknown_label(self):
        result = AIIntentClassifier.parse_classification('{"intent": "dance", "confidence": 0.99}', "x")

        assert result.intent == Intent.UNKNOWN

    def test_parse_clamps_confidence(self):
        result = AIIntentClassifier.parse_classification('{"intent": "plan", "confidence": 7}', "x")

        assert result.confidence == 1.0

    def test_parse_bad_confidence(self):
        result = AIIntentClassifier.parse_classification('{"intent": "plan", "confidence": "high"}', "x")

        assert result.confidence == 0.0

    def test_parse_not_json(self):
        with pytest.raises(AIResponseError):
            AIIntentClassifier.parse_classification("I think they approve", "x")
