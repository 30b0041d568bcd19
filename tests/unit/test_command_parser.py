"""Tests for repo_planner/engine/command_parser.py."""

import pytest

from repo_planner.engine.command_parser import (
    MAX_COMMENT_LENGTH,
    classify_deterministic,
    is_valid_github_name,
    parse_command,
    parse_repository_list,
    sanitize_text,
)
from repo_planner.enums import Intent
from repo_planner.models.domain import RepositoryRef


class TestSanitizeText:
    """Tests for sanitize_text."""

    def test_strips_html(self):
        assert sanitize_text("<b>@l</b> plan") == "@l plan"

    def test_keeps_link_text(self):
        assert sanitize_text("see [the docs](https://example.com)") == "see the docs"

    def test_strips_markdown_formatting(self):
        assert sanitize_text("**@l** _approve_") == "@l approve"

    def test_strips_script_vectors(self):
        cleaned = sanitize_text("javascript:alert(1) onclick=run()")
        assert "javascript:" not in cleaned
        assert "onclick=" not in cleaned


class TestRepositoryNames:
    @pytest.mark.parametrize("name", ["api", "my-repo", "repo.js", "A1_b"])
    def test_valid(self, name):
        assert is_valid_github_name(name)

    @pytest.mark.parametrize("name", ["", "-api", "api-", "a..b", "x" * 40, "has space"])
    def test_invalid(self, name):
        assert not is_valid_github_name(name)

    def test_parse_repository_list(self):
        """Owner-qualified and bare names are accepted; invalid ones dropped."""
        refs = parse_repository_list("acme/api, web  bad..name, other/")

        assert refs == (RepositoryRef("acme", "api"), RepositoryRef("", "web"))


class TestParseCommand:
    """Tests for parse_command."""

    def test_no_mention(self):
        parsed = parse_command("just a regular comment")

        assert parsed.is_mention is False
        assert parsed.command == ""

    def test_empty_input(self):
        for value in (None, ""):
            parsed = parse_command(value)
            assert parsed.is_mention is False
            assert parsed.command == ""

    def test_long_mention(self):
        parsed = parse_command("@uwularpy Plan")

        assert parsed.is_mention is True
        assert parsed.command == "plan"

    def test_short_mention(self):
        parsed = parse_command("hey @l approve please")

        assert parsed.is_mention is True
        assert parsed.command == "approve please"

    def test_short_mention_requires_boundary(self):
        """@lisa is somebody else."""
        parsed = parse_command("@lisa plan")

        assert parsed.is_mention is False

    def test_mention_is_case_insensitive(self):
        assert parse_command("@UWULARPY cancel").command == "cancel"

    def test_second_mention_ends_command(self):
        parsed = parse_command("@l approve @alice please review")

        assert parsed.command == "approve"

    def test_bare_mention(self):
        parsed = parse_command("@l")

        assert parsed.is_mention is True
        assert parsed.command == ""

    def test_user_query_after_plan(self):
        parsed = parse_command("@l plan focus on Authentication")

        assert parsed.user_query == "focus on Authentication"

    def test_user_query_after_refine(self):
        parsed = parse_command("@l refine add more tests")

        assert parsed.user_query == "add more tests"

    def test_dev_command(self):
        parsed = parse_command("@l dev fix the login form")

        assert parsed.is_dev_command is True
        assert parsed.user_query == "fix the login form"

    def test_multi_repo_command(self):
        parsed = parse_command("@l multi-plan acme/api, acme/web")

        assert parsed.is_multi_repo_command is True
        assert parsed.repositories == (RepositoryRef("acme", "api"), RepositoryRef("acme", "web"))

    def test_long_comment_is_truncated(self):
        parsed = parse_command("@l plan " + "x" * (MAX_COMMENT_LENGTH * 2))

        assert len(parsed.full_text) < MAX_COMMENT_LENGTH

    def test_custom_mention_names(self):
        parsed = parse_command("@planner approve", mention_names=("planner",))

        assert parsed.command == "approve"


class TestClassifyDeterministic:
    """Tests for classify_deterministic."""

    @pytest.mark.parametrize(
        "text,intent",
        [
            ("@l y", Intent.APPROVAL),
            ("@l yes", Intent.APPROVAL),
            ("@l approve", Intent.APPROVAL),
            ("@l LGTM!", Intent.APPROVAL),
            ("@l ship it", Intent.APPROVAL),
            ("@l looks good to me", Intent.APPROVAL),
            ("@l plan", Intent.PLANNING),
            ("@l analyze", Intent.PLANNING),
            ("@l plan add auth", Intent.PLANNING),
            ("@l refine more security", Intent.REFINEMENT),
            ("@l update the plan", Intent.REFINEMENT),
            ("@l cancel", Intent.CANCELLATION),
            ("@l no", Intent.CANCELLATION),
            ("@l execute", Intent.EXECUTION),
            ("@l let's go", Intent.EXECUTION),
            ("@l multi-plan acme/api", Intent.MULTI_PLAN),
            ("@l aggregate acme/api acme/web", Intent.MULTI_PLAN),
            ("@l dev write a parser", Intent.DEV),
        ],
    )
    def test_patterns(self, text, intent):
        assert classify_deterministic(parse_command(text)) == intent

    def test_no_pattern(self):
        assert classify_deterministic(parse_command("@l aprove")) is None

    def test_bare_mention_has_no_intent(self):
        assert classify_deterministic(parse_command("@l")) is None

    def test_no_mention_has_no_intent(self):
        assert classify_deterministic(parse_command("approve")) is None

    def test_prefix_needs_word_boundary(self):
        """'planet' is not 'plan'."""
        assert classify_deterministic(parse_command("@l planet")) is None

    def test_deterministic(self):
        """The same text always yields the same intent."""
        results = {classify_deterministic(parse_command("@l go ahead")) for _ in range(5)}

        assert results == {Intent.APPROVAL}
