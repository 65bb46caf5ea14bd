"""
Error taxonomy shared by every layer.

Pure components (grader, scheduler, queue builder, phase machine) raise only
InvalidInputError and InvariantViolation. Store-facing repositories translate
I/O failures into TransientStoreError and are the only callers that retry.
"""


class MnemosError(Exception):
    """Base class for all engine errors."""


class InvalidInputError(MnemosError, ValueError):
    """Malformed quality, outcome, or missing identifiers. Never retried."""


class NotFoundError(MnemosError, LookupError):
    """Unknown user, lesson, item, or session."""


class TransientStoreError(MnemosError):
    """An I/O failure against the document store that may succeed on retry."""


class InvariantViolation(MnemosError):
    """
    A session-flow invariant was broken, e.g. building a fresh queue while an
    in-progress snapshot exists. Fatal to the current flow.
    """
