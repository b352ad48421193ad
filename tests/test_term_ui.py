import contextlib

import pytest
from prompt_toolkit import PromptSession
from prompt_toolkit.document import Document
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput
from prompt_toolkit.validation import ValidationError

from expense_ingest.models import CityFromDescriptionReview
from expense_ingest.term_ui import _AnswerValidator, confirm_review_items


@contextlib.contextmanager
def pipe_session():
    with create_pipe_input() as pipe:
        sess = PromptSession(input=pipe, output=DummyOutput())
        yield pipe, sess


def _item(row_index: int, source: str = "Coffee Minsk") -> CityFromDescriptionReview:
    return CityFromDescriptionReview(
        row_index=row_index,
        temp_id=f"t{row_index}",
        column_label="C",
        source_value=source,
        extracted_city="Minsk",
        cleaned_description="Coffee",
        confidence=0.7,
    )


def test_enter_accepts_the_detected_city():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert confirm_review_items([_item(0)], session=sess) == {0: True}


def test_no_rejects_the_detected_city():
    with pipe_session() as (pipe, sess):
        pipe.send_text("n\r")
        assert confirm_review_items([_item(4)], session=sess) == {4: False}


def test_all_accepts_every_remaining_item():
    items = [_item(0), _item(2), _item(5)]
    with pipe_session() as (pipe, sess):
        pipe.send_text("all\r")
        assert confirm_review_items(items, session=sess) == {0: True, 2: True, 5: True}


def test_none_rejects_every_remaining_item():
    items = [_item(1), _item(3)]
    with pipe_session() as (pipe, sess):
        pipe.send_text("NONE\r")
        assert confirm_review_items(items, session=sess) == {1: False, 3: False}


def test_no_items_means_no_prompt():
    assert confirm_review_items([]) == {}


def test_validator_rejects_unknown_answers():
    validator = _AnswerValidator()
    validator.validate(Document(""))
    validator.validate(Document(" Yes "))
    with pytest.raises(ValidationError):
        validator.validate(Document("maybe"))
