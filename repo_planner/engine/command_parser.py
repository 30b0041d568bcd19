"""
Deterministic command parsing for bot mentions.

Turns raw comment text into a ``ParsedCommand`` and, where one of the fixed
pattern sets matches, into an ``Intent``. This is the first resolution stage;
``intent_resolver`` consults the AI classifier only when nothing here matches.

Parsing is pure: the same text always yields the same result.
"""

import re

import structlog

from repo_planner.enums import Intent
from repo_planner.models.domain import ParsedCommand, RepositoryRef

log = structlog.get_logger(__name__)

MAX_COMMENT_LENGTH = 10000

APPROVAL_PHRASES = (
    "y",
    "yes",
    "ok",
    "okay",
    "approve",
    "approved",
    "i approve",
    "go",
    "proceed",
    "continue",
    "lfg",
    "lgtm",
    "ship it",
    "looks good",
    "go ahead",
)
APPROVAL_PREFIXES = ("approve", "i approve", "lgtm", "ship it", "looks good", "go ahead", "yes")
CANCELLATION_WORDS = ("cancel", "reject", "no", "abort", "stop")
REFINEMENT_WORDS = ("refine", "revise", "modify", "update", "change", "edit")
PLANNING_WORDS = ("plan", "planning", "analyze")
EXECUTION_PHRASES = ("execute", "start", "begin", "let's go", "lets go", "do it")
MULTI_REPO_WORDS = ("multi-plan", "multi plan", "multi-repo", "aggregate")

_HTML_TAG = re.compile(r"<[^>]*>")
_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKDOWN_FORMATTING = re.compile(r"[*_`~]")
_SCRIPT_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)
_GITHUB_NAME = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9._-]*[a-zA-Z0-9])?$")


def sanitize_text(text: str) -> str:
    """Strip HTML tags and markdown syntax, keeping link text."""
    sanitized = _HTML_TAG.sub("", text)
    sanitized = _MARKDOWN_LINK.sub(r"\1", sanitized)
    sanitized = _MARKDOWN_FORMATTING.sub("", sanitized)
    sanitized = _SCRIPT_SCHEME.sub("", sanitized)
    sanitized = _EVENT_HANDLER.sub("", sanitized)
    return sanitized.strip()


def is_valid_github_name(name: str) -> bool:
    """Check an owner or repository name against GitHub's naming rules."""
    return 1 <= len(name) <= 39 and ".." not in name and bool(_GITHUB_NAME.match(name))


def parse_repository_list(spec: str) -> tuple[RepositoryRef, ...]:
    """Parse ``owner/repo, repo2`` into references.

    Bare repository names get an empty owner, filled in later with the
    triggering repository's owner. Invalid names are dropped.
    """
    repositories: list[RepositoryRef] = []
    for part in re.split(r"[,\s]+", spec):
        part = part.strip()
        if not part:
            continue
        if "/" in part:
            owner, _, repo = part.partition("/")
            owner, repo = owner.strip(), repo.strip()
            if owner and repo and is_valid_github_name(owner) and is_valid_github_name(repo):
                repositories.append(RepositoryRef(owner=owner, repo=repo))
                continue
        elif is_valid_github_name(part):
            repositories.append(RepositoryRef(owner="", repo=part))
            continue
        log.debug("repository_spec_rejected", spec=part)
    return tuple(repositories)


def _mention_pattern(mention_names: tuple[str, ...]) -> re.Pattern[str]:
    # single-letter handles must be followed by whitespace so "@lisa" is not a mention
    alternatives = [
        rf"{re.escape(name)}\b" if len(name) > 1 else rf"{re.escape(name)}(?=\s|$)"
        for name in sorted(mention_names, key=len, reverse=True)
    ]
    return re.compile(rf"@(?:{'|'.join(alternatives)})", re.IGNORECASE)


def parse_command(comment: str | None, mention_names: tuple[str, ...] = ("uwularpy", "l")) -> ParsedCommand:
    """Parse a comment into a command.

    Args:
        comment: Raw comment body
        mention_names: Handles the bot answers to, without ``@``

    Returns:
        ParsedCommand; ``command`` is empty when the bot is not mentioned
    """
    if not comment or not isinstance(comment, str):
        return ParsedCommand(command="", full_text="", is_mention=False)

    sanitized = sanitize_text(comment)
    if len(sanitized) > MAX_COMMENT_LENGTH:
        log.warning("comment_truncated", length=len(sanitized))
        sanitized = sanitized[:MAX_COMMENT_LENGTH]

    match = _mention_pattern(mention_names).search(sanitized)
    if match is None:
        return ParsedCommand(command="", full_text=sanitized, is_mention=False)

    remainder = sanitized[match.end() :]
    # A second mention of anyone ends this command
    next_mention = re.search(r"@\w+", remainder)
    if next_mention:
        remainder = remainder[: next_mention.start()]
    text_after = re.sub(r"\s+", " ", remainder).strip().lstrip(",:;").strip()
    command = text_after.lower()

    user_query: str | None = None
    query_match = re.match(rf"^(?:{'|'.join(PLANNING_WORDS + REFINEMENT_WORDS)})\s+(.+)$", text_after, re.IGNORECASE)
    if query_match:
        user_query = query_match.group(1).strip()

    is_dev = command.startswith("dev ")
    if is_dev:
        user_query = text_after[4:].strip()

    repositories: tuple[RepositoryRef, ...] = ()
    multi_match = re.match(rf"^(?:{'|'.join(MULTI_REPO_WORDS)})\s+(.+)$", text_after, re.IGNORECASE)
    if multi_match:
        repositories = parse_repository_list(multi_match.group(1))

    return ParsedCommand(
        command=command,
        full_text=text_after,
        is_mention=True,
        user_query=user_query,
        is_dev_command=is_dev,
        is_multi_repo_command=multi_match is not None,
        repositories=repositories,
    )


def _word_match(command: str, words: tuple[str, ...]) -> bool:
    """True if ``command`` equals one of ``words`` or starts with it followed by a space."""
    return any(command == word or command.startswith(word + " ") for word in words)


def classify_deterministic(parsed: ParsedCommand) -> Intent | None:
    """Map a parsed command onto an intent using fixed patterns.

    Returns:
        The matched intent, or None when no pattern applies (including a
        mention with no command text)
    """
    if not parsed.is_mention or not parsed.command:
        return None

    command = parsed.command.rstrip(".!?")

    if parsed.is_multi_repo_command or _word_match(command, MULTI_REPO_WORDS):
        return Intent.MULTI_PLAN
    if _word_match(command, PLANNING_WORDS):
        return Intent.PLANNING
    if command in APPROVAL_PHRASES or _word_match(command, APPROVAL_PREFIXES):
        return Intent.APPROVAL
    if _word_match(command, REFINEMENT_WORDS):
        return Intent.REFINEMENT
    if _word_match(command, CANCELLATION_WORDS):
        return Intent.CANCELLATION
    if _word_match(command, EXECUTION_PHRASES):
        return Intent.EXECUTION
    if parsed.is_dev_command:
        return Intent.DEV
    return None
