"""Pure helpers over question snapshots: answer state, progress, grouping.

Nothing here touches the network or a session; every function takes plain
question dicts so presentation code and the service can share them.
"""

from __future__ import annotations

from collections import OrderedDict

from tcm_checklist.sync.dates import parse_timestamp

QUESTION_TYPES = (
    "checkbox",
    "textInput",
    "dateInput",
    "dropdown",
    "numberInput",
    "yesNo",
    "multiSelect",
    "deltaParent",
)

UNCATEGORIZED = "Uncategorized"
STATUS_FILTERS = ("all", "completed", "pending")


def is_empty_answer(answer) -> bool:
    """None, blank strings and empty collections count as no answer. False and 0 do not."""
    if answer is None:
        return True
    if isinstance(answer, str):
        return not answer.strip()
    if isinstance(answer, (list, tuple, dict, set)):
        return len(answer) == 0
    return False


def is_previously_answered(question: dict | None) -> bool:
    """True when the question holds an answer that the server has recorded.

    Two conditions must hold together:
      - an answer: a non-empty ``answer``, or ``completed is True`` for checkboxes
      - provenance: ``updatedAt`` or ``completedAt`` set, or ``completed is True``
    """
    if not question:
        return False

    if question.get("questionType") == "checkbox":
        has_answer = question.get("completed") is True
    else:
        has_answer = not is_empty_answer(question.get("answer"))

    has_provenance = bool(
        question.get("updatedAt")
        or question.get("completedAt")
        or question.get("completed") is True
    )
    return has_answer and has_provenance


def requires_change_confirmation(question: dict | None, updates: dict) -> bool:
    """True when ``updates`` would overwrite the answer of a previously answered question."""
    if not is_previously_answered(question):
        return False
    return any(
        field in updates and updates[field] != question.get(field)
        for field in ("answer", "completed")
    )


def change_warning(question: dict) -> str:
    """Confirmation text shown before overwriting a previously answered question."""
    updated_at = parse_timestamp(question["updatedAt"]) if question.get("updatedAt") else None
    when = updated_at.strftime("%b %d, %Y at %I:%M %p") if updated_at else "an earlier time"
    by = f" by {question['updatedBy']}" if question.get("updatedBy") else ""
    return (
        f"This question was previously answered on {when}{by}. "
        "Changing the answer will update the timestamp."
    )


def calculate_progress(questions: list[dict] | None) -> dict:
    """Completed/total tally; percentage rounded half-up to an int."""
    questions = questions or []
    total = len(questions)
    completed = sum(1 for q in questions if q.get("completed"))
    percentage = (completed * 200 + total) // (2 * total) if total else 0
    return {"total": total, "completed": completed, "percentage": percentage}


def group_by_section(questions: list[dict] | None) -> "OrderedDict[str, list[dict]]":
    """Group questions by ``section`` in first-seen order."""
    grouped: OrderedDict[str, list[dict]] = OrderedDict()
    for question in questions or []:
        grouped.setdefault(question.get("section") or UNCATEGORIZED, []).append(question)
    return grouped


def filter_sections(
    grouped: dict[str, list[dict]],
    search: str | None = None,
    section: str = "all",
    status: str = "all",
) -> "OrderedDict[str, list[dict]]":
    """Apply the section, text-search and status filters; empty sections are dropped."""
    if status not in STATUS_FILTERS:
        raise ValueError(f"status must be one of {STATUS_FILTERS}")

    if section != "all":
        grouped = {section: grouped.get(section, [])}

    needle = (search or "").lower()
    filtered: OrderedDict[str, list[dict]] = OrderedDict()
    for name, questions in grouped.items():
        matching = [
            q for q in questions
            if (not needle or needle in (q.get("questionText") or "").lower())
            and (status == "all" or bool(q.get("completed")) == (status == "completed"))
        ]
        if matching or (not needle and status == "all"):
            filtered[name] = matching
    return filtered
