"""Exception taxonomy shared by every wm component."""

from __future__ import annotations


class WMError(Exception):
    """Base class for all wm errors."""


class NotInitialized(WMError):
    """The project has no .wm/ directory."""


class NotFound(WMError):
    """A transcript, session, project, dive or knowledge file does not exist."""


class AlreadyExists(WMError):
    """A named object already exists and overwrite was not requested."""


class CannotDeleteCurrent(WMError):
    """Attempt to delete the dive manifest that is currently active."""


class ParseError(WMError):
    """Input could not be parsed."""


class TranscriptParseError(ParseError):
    """A transcript line is not valid JSON or not a JSON object."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        super().__init__(message)
        self.line_number = line_number


class AmbiguousValue(ParseError):
    """A marker line carried a value that is neither yes/true nor no/false."""


class GenerationError(WMError):
    """The text-generation call failed."""


class GenerationUnavailable(GenerationError):
    """The generator could not be reached or returned an error."""


class GenerationTimeout(GenerationError):
    """The generator did not answer in time."""


class NoChange(WMError):
    """An operation produced nothing new; no write happened."""


class LockHeld(WMError):
    """Another process holds the distillation lock for this project."""
