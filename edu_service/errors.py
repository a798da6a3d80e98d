"""
Domain exceptions.

The HTTP layer translates these into status codes; background collaborators
(activity sink, publisher, classifier, feedback) never let them escape into
the exam flow.
"""
from __future__ import annotations


class GenerationError(Exception):
    """The language model was unreachable or returned unusable output."""


class InvalidExamConfig(ValueError):
    """Exam configuration cannot be turned into a session."""


class SessionNotFound(KeyError):
    """No live session with the given id (never existed or expired)."""


class SessionAlreadySubmitted(RuntimeError):
    """The session has been finalized and no longer accepts answers."""


class ClassifierUnavailable(RuntimeError):
    """Camera or pose model cannot be used for this session."""
