"""Tiny terminal UI helpers (prompt_toolkit-based).

Kept apart from the import session so the prompts can be tested in isolation
with a pipe input and a dummy output.
"""

from __future__ import annotations

from collections.abc import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.validation import ValidationError, Validator

from .models import CityFromDescriptionReview, ReviewItem

_ANSWERS: dict[str, str] = {
    "y": "yes",
    "yes": "yes",
    "n": "no",
    "no": "no",
    "a": "all",
    "all": "all",
    "none": "none",
}


class _AnswerValidator(Validator):
    def validate(self, document) -> None:
        text = document.text.strip().lower()
        if text and text not in _ANSWERS:
            raise ValidationError(message="Answer yes, no, all or none")


def _describe(item: ReviewItem) -> str:
    match item:
        case CityFromDescriptionReview():
            column = f"[{item.column_label}] " if item.column_label else ""
            return (
                f"{column}{item.source_value!r}\n"
                f"  city: {item.extracted_city} ({item.confidence:.0%})"
                f"  description: {item.cleaned_description!r}\n"
            )


def _session(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


def confirm_review_items(
    items: Sequence[ReviewItem],
    *,
    session: PromptSession | None = None,
) -> dict[int, bool]:
    """Ask about each review item; return ``{row_index: accepted}``.

    ``all`` accepts the current and every remaining item, ``none`` rejects
    them. Enter accepts the item. Esc or Ctrl+C rejects everything not yet
    answered.
    """

    if not items:
        return {}

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result="none")

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result="none")

    sess = _session(session, kb)
    completer = WordCompleter(["yes", "no", "all", "none"], ignore_case=True)
    decisions: dict[int, bool] = {}
    bulk: bool | None = None
    for pos, item in enumerate(items, start=1):
        if bulk is not None:
            decisions[item.row_index] = bulk
            continue
        message = f"({pos}/{len(items)}) {_describe(item)}Accept? [Y/n/all/none] "
        raw = sess.prompt(
            message,
            completer=completer,
            validator=_AnswerValidator(),
            validate_while_typing=False,
            key_bindings=kb,
        )
        answer = _ANSWERS.get((raw or "").strip().lower(), "yes")
        if answer in ("all", "none"):
            bulk = answer == "all"
            decisions[item.row_index] = bulk
        else:
            decisions[item.row_index] = answer == "yes"
    return decisions


__all__ = ["confirm_review_items"]
