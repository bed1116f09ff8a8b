"""Backward-compatible question lookup.

Questions carry two identifier schemes: the semantic ``questionKey``
(e.g. ``bridge_required``) and the legacy sequential ``id`` (e.g. ``q46``).
Every lookup that accepts "either scheme" goes through ``find_question`` so
the precedence rule lives in one place: ``questionKey`` first, ``id`` second.

None of these functions raise on a miss; an absent question is a normal
state for optional and conditional questions.

Usage:
    from tcm_checklist.sync.question_resolver import find_question, get_question_value

    bridge = find_question(migration["questions"], "bridge_required")
    completed = get_question_value(migration["questions"], "q46", "completed")
"""

from __future__ import annotations

import re
from typing import Iterable

_STOP_WORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can", "of", "in", "on", "at", "to", "for",
    "with", "by", "from", "as", "and", "or", "but", "if", "then", "than",
    "this", "that", "these", "those", "what", "which", "who", "when", "where",
    "why", "how", "all", "each", "every", "both", "few", "more", "most",
    "other", "some", "such", "no", "nor", "not", "only", "own", "same",
    "so", "too", "very", "you", "your",
})

_KEY_WORD_LIMIT = 4


def find_question(questions: list[dict] | None, identifier: str | None) -> dict | None:
    """Return the question whose questionKey, else id, equals ``identifier``."""
    if not questions or not identifier:
        return None

    for question in questions:
        if question.get("questionKey") == identifier:
            return question

    for question in questions:
        if question.get("id") == identifier:
            return question
    return None


def get_question_value(
    questions: list[dict] | None,
    identifier: str | None,
    field: str = "answer",
):
    """Return ``field`` of the resolved question, or None when either is absent."""
    question = find_question(questions, identifier)
    if question is None:
        return None
    return question.get(field)


def has_question(questions: list[dict] | None, identifier: str | None) -> bool:
    return find_question(questions, identifier) is not None


def find_questions(questions: list[dict] | None, identifiers: Iterable[str] | None) -> list[dict]:
    """Resolve many identifiers; unresolved ones are dropped, order is kept."""
    if not questions or not identifiers or isinstance(identifiers, str):
        return []

    found = []
    for identifier in identifiers:
        question = find_question(questions, identifier)
        if question is not None:
            found.append(question)
    return found


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9\s]", "", text.lower().strip())


def generate_question_key(
    section: str,
    question_text: str,
    existing_questions: list[dict] | None = None,
) -> str:
    """Build a unique semantic key ``{section}_{meaningful_words}``.

    The section becomes a snake_case prefix; the first four words of the
    question text longer than two characters and not in the stop list form
    the suffix. A numeric counter is appended until the key is unused.

    Raises:
        ValueError: if section or question_text is empty.

    Example:
        >>> generate_question_key("Security", "Is MFA enabled for all admins?")
        'security_mfa_enabled_admins'
    """
    if not section or not question_text:
        raise ValueError("Section and questionText are required to generate questionKey")

    prefix = re.sub(r"\s+", "_", _slug(section))
    words = [
        word for word in _slug(question_text).split()
        if len(word) > 2 and word not in _STOP_WORDS
    ][:_KEY_WORD_LIMIT]

    base_key = f"{prefix}_{'_'.join(words)}"
    taken = {q.get("questionKey") for q in (existing_questions or [])}

    key = base_key
    counter = 1
    while key in taken:
        key = f"{base_key}_{counter}"
        counter += 1
    return key
