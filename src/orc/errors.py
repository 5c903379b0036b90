"""Error taxonomy for orc operations."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
	from orc.guards import DenialReason


class ErrorKind(str, Enum):
	"""Category of failure, shared by guard denials and raised errors."""

	NOT_FOUND = "not_found"
	PRECONDITION_FAILED = "precondition_failed"
	CONFLICT = "conflict"
	IO_FAILURE = "io_failure"
	PROGRAMMING_ERROR = "programming_error"


class OrcError(Exception):
	"""Base class for every error raised by orc services."""

	kind: ErrorKind = ErrorKind.PROGRAMMING_ERROR

	def __init__(self, message: str, reason: DenialReason | None = None) -> None:
		super().__init__(message)
		self.reason = reason


class NotFoundError(OrcError):
	"""Referenced entity or parent does not exist."""

	kind = ErrorKind.NOT_FOUND


class PreconditionFailedError(OrcError):
	"""Guard denied the transition (status, pin, dependents or actor)."""

	kind = ErrorKind.PRECONDITION_FAILED


class ConflictError(OrcError):
	"""Uniqueness violation: resource taken, 1:1 link populated, duplicate name."""

	kind = ErrorKind.CONFLICT


class EffectExecutionError(OrcError):
	"""An effect failed against the filesystem or session driver.

	``applied`` counts the effects that completed before the failure; they
	are not rolled back.
	"""

	kind = ErrorKind.IO_FAILURE

	def __init__(self, message: str, applied: int = 0, reason: DenialReason | None = None) -> None:
		super().__init__(message, reason=reason)
		self.applied = applied


class ProgrammingError(OrcError):
	"""Unknown effect, entity or operation reached a dispatcher."""

	kind = ErrorKind.PROGRAMMING_ERROR


ERROR_CLASSES: dict[ErrorKind, type[OrcError]] = {
	ErrorKind.NOT_FOUND: NotFoundError,
	ErrorKind.PRECONDITION_FAILED: PreconditionFailedError,
	ErrorKind.CONFLICT: ConflictError,
	ErrorKind.IO_FAILURE: EffectExecutionError,
	ErrorKind.PROGRAMMING_ERROR: ProgrammingError,
}
