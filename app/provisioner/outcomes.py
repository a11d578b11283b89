"""Outcome variants and the response-body classifier."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from . import config
from .error_codes import ErrorCode


@dataclass(frozen=True)
class Success:
    kind = "success"


@dataclass(frozen=True)
class HandledFailure:
    """Remote validation rejection, duplicate or unknown region: reported, not fatal."""

    message: str
    kind = "handled"


@dataclass(frozen=True)
class UnexpectedFailure:
    """Response shape the classifier did not recognise; kept for inspection."""

    raw_body: str
    error_code: str = ErrorCode.UNEXPECTED
    kind = "unexpected"


Outcome = Union[Success, HandledFailure, UnexpectedFailure]


def outcome_error_code(outcome: Outcome) -> Optional[str]:
    if isinstance(outcome, HandledFailure):
        return ErrorCode.HANDLED
    if isinstance(outcome, UnexpectedFailure):
        return outcome.error_code
    return None


def _between(body: str, start_marker: str, end_marker: str, *, offset: int = 0) -> str:
    start = body.find(start_marker, offset)
    if start < 0:
        return ""
    start += len(start_marker)
    end = body.find(end_marker, start)
    if end < 0:
        end = len(body)
    return body[start:end]


def _first_list_item(body: str) -> str:
    block_start = body.find(config.ERRORS_BLOCK_MARKER)
    return _between(
        body,
        config.LIST_ITEM_OPEN,
        config.LIST_ITEM_CLOSE,
        offset=block_start + len(config.ERRORS_BLOCK_MARKER),
    ).strip()


def _single_error_text(body: str) -> str:
    start = body.find(config.ERROR_SINGLE_MARKER) + len(config.ERROR_SINGLE_MARKER)
    rest = body[start:]
    # The message may sit after closing tags or inside a following element.
    while rest.lstrip().startswith("<"):
        rest = rest.lstrip()
        close = rest.find(">")
        if close < 0:
            break
        rest = rest[close + 1 :]
    end = rest.find("<")
    return (rest if end < 0 else rest[:end]).strip()


def classify(body: str, region_code: str = "") -> Outcome:
    """Classify a submission response body; the first matching rule wins.

    1. an "Errors" block: its first list item is the message;
    2. a single "Error:" heading: the text after it is the message;
    3. the missing-information phrase: the region itself is unknown remotely;
    4. the success redirect marker;
    5. anything else is unexpected and keeps the whole body.
    """

    text = body or ""

    if config.ERRORS_BLOCK_MARKER in text:
        return HandledFailure(_first_list_item(text))

    if config.ERROR_SINGLE_MARKER in text:
        return HandledFailure(_single_error_text(text))

    if config.MISSING_INFO_PHRASE and config.MISSING_INFO_PHRASE in text:
        return HandledFailure(f"{region_code} does not exist")

    if config.SUCCESS_MARKER in text:
        return Success()

    return UnexpectedFailure(text)


__all__ = [
    "HandledFailure",
    "Outcome",
    "Success",
    "UnexpectedFailure",
    "classify",
    "outcome_error_code",
]
