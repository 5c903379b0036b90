"""Lifecycle table and the pure status transition engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping

from orc.clock import to_iso
from orc.errors import ProgrammingError
from orc.models import EntityType


class TransitionKind(str, Enum):
	CREATE = "create"
	START = "start"
	PAUSE = "pause"
	RESUME = "resume"
	COMPLETE = "complete"
	ARCHIVE = "archive"
	RESTORE = "restore"
	SUBMIT = "submit"
	APPROVE = "approve"
	ESCALATE = "escalate"
	OPEN = "open"
	MERGE = "merge"
	CLOSE = "close"
	ACTIVATE = "activate"
	CLAIM = "claim"
	RESOLVE = "resolve"
	DISMISS = "dismiss"
	ASSIGN = "assign"
	UPDATE = "update"
	DELETE = "delete"
	PIN = "pin"
	UNPIN = "unpin"


# Kinds that finalize an entity; a pinned entity refuses all of them.
FINALIZING_KINDS = frozenset({
	TransitionKind.COMPLETE,
	TransitionKind.APPROVE,
	TransitionKind.MERGE,
	TransitionKind.CLOSE,
	TransitionKind.ARCHIVE,
})

TERMINAL_STATUSES = frozenset({
	"complete", "archived", "merged", "closed", "resolved", "dismissed", "superseded",
})

TIMESTAMP_FIELDS: dict[TransitionKind, str] = {
	TransitionKind.START: "started_at",
	TransitionKind.CLAIM: "claimed_at",
	TransitionKind.COMPLETE: "completed_at",
	TransitionKind.APPROVE: "approved_at",
	TransitionKind.MERGE: "merged_at",
	TransitionKind.CLOSE: "closed_at",
	TransitionKind.RESOLVE: "resolved_at",
	TransitionKind.DISMISS: "resolved_at",
}


@dataclass(frozen=True)
class Move:
	sources: frozenset[str]
	target: str


def _move(sources: str, target: str) -> Move:
	return Move(frozenset(sources.split("|")), target)


@dataclass(frozen=True)
class Lifecycle:
	"""Statuses and allowed moves for one entity type."""

	statuses: tuple[str, ...]
	initial: str
	active: str | None = None
	pinnable: bool = True
	moves: Mapping[TransitionKind, Move] = field(default_factory=dict)


_K = TransitionKind

_CONTAINER_MOVES = {
	_K.PAUSE: _move("active", "paused"),
	_K.RESUME: _move("paused", "active"),
	_K.COMPLETE: _move("active|paused", "complete"),
}

LIFECYCLES: dict[EntityType, Lifecycle] = {
	EntityType.COMMISSION: Lifecycle(
		statuses=("initial", "active", "paused", "complete", "archived"),
		initial="initial",
		active="active",
		moves={
			_K.START: _move("initial|active", "active"),
			_K.PAUSE: _move("active", "paused"),
			_K.RESUME: _move("paused", "active"),
			_K.COMPLETE: _move("initial|active|paused", "complete"),
			_K.ARCHIVE: _move("initial|active|paused|complete", "archived"),
		},
	),
	EntityType.MISSION: Lifecycle(
		statuses=("created", "active", "paused", "complete", "archived"),
		initial="created",
		active="active",
		moves={
			# Starting an active mission re-provisions its infrastructure.
			_K.START: _move("created|active", "active"),
			_K.PAUSE: _move("active", "paused"),
			_K.RESUME: _move("paused", "active"),
			_K.COMPLETE: _move("created|active|paused", "complete"),
			_K.ARCHIVE: _move("created|active|paused|complete", "archived"),
		},
	),
	EntityType.GROVE: Lifecycle(
		statuses=("active", "archived"),
		initial="active",
		pinnable=False,
		moves={_K.ARCHIVE: _move("active", "archived")},
	),
	EntityType.WORKBENCH: Lifecycle(
		statuses=("active", "archived"),
		initial="active",
		pinnable=False,
		moves={_K.ARCHIVE: _move("active", "archived")},
	),
	EntityType.REPO: Lifecycle(
		statuses=("active", "archived"),
		initial="active",
		pinnable=False,
		moves={
			_K.ARCHIVE: _move("active", "archived"),
			_K.RESTORE: _move("archived", "active"),
		},
	),
	EntityType.SHIPMENT: Lifecycle(
		statuses=("active", "paused", "complete"),
		initial="active",
		active="active",
		moves=_CONTAINER_MOVES,
	),
	EntityType.TASK: Lifecycle(
		statuses=("ready", "in_progress", "paused", "complete"),
		initial="ready",
		active="in_progress",
		moves={
			_K.CLAIM: _move("ready", "in_progress"),
			_K.PAUSE: _move("in_progress", "paused"),
			_K.RESUME: _move("paused", "in_progress"),
			_K.COMPLETE: _move("ready|in_progress|paused", "complete"),
		},
	),
	EntityType.CONCLAVE: Lifecycle(
		statuses=("active", "paused", "complete"),
		initial="active",
		active="active",
		moves=_CONTAINER_MOVES,
	),
	EntityType.INVESTIGATION: Lifecycle(
		statuses=("active", "paused", "complete"),
		initial="active",
		active="active",
		moves=_CONTAINER_MOVES,
	),
	EntityType.TOME: Lifecycle(
		statuses=("open", "closed"),
		initial="open",
		moves={_K.CLOSE: _move("open", "closed")},
	),
	EntityType.PLAN: Lifecycle(
		statuses=("draft", "pending_review", "approved", "escalated", "superseded"),
		initial="draft",
		moves={
			_K.SUBMIT: _move("draft", "pending_review"),
			_K.APPROVE: _move("pending_review", "approved"),
			_K.ESCALATE: _move("draft|pending_review", "escalated"),
		},
	),
	EntityType.PR: Lifecycle(
		statuses=("draft", "open", "approved", "merged", "closed"),
		initial="open",
		moves={
			_K.OPEN: _move("draft", "open"),
			_K.APPROVE: _move("open", "approved"),
			_K.MERGE: _move("open|approved", "merged"),
			_K.CLOSE: _move("draft|open|approved", "closed"),
		},
	),
	EntityType.WORK_ORDER: Lifecycle(
		statuses=("draft", "active", "complete"),
		initial="draft",
		pinnable=False,
		moves={
			_K.ACTIVATE: _move("draft", "active"),
			_K.COMPLETE: _move("active", "complete"),
		},
	),
	EntityType.ESCALATION: Lifecycle(
		statuses=("pending", "resolved", "dismissed"),
		initial="pending",
		pinnable=False,
		moves={
			_K.RESOLVE: _move("pending", "resolved"),
			_K.DISMISS: _move("pending", "dismissed"),
		},
	),
}


@dataclass(frozen=True)
class TransitionResult:
	new_status: str
	timestamps: dict[str, str] = field(default_factory=dict)


def lifecycle(entity_type: EntityType) -> Lifecycle:
	try:
		return LIFECYCLES[entity_type]
	except KeyError:
		raise ProgrammingError(f"No lifecycle registered for {entity_type!r}") from None


def initial_status(entity_type: EntityType) -> str:
	return lifecycle(entity_type).initial


def is_terminal(status: str) -> bool:
	return status in TERMINAL_STATUSES


def apply(entity_type: EntityType, kind: TransitionKind, now: datetime) -> TransitionResult:
	"""Compute the new status and timestamp updates for an allowed transition.

	Only consults the lifecycle table and ``now``; the caller persists the
	result. ``archive`` never touches ``completed_at``.
	"""
	move = lifecycle(entity_type).moves.get(kind)
	if move is None:
		raise ProgrammingError(f"{entity_type.label} has no '{kind.value}' transition")
	stamp = to_iso(now)
	timestamps = {"updated_at": stamp}
	ts_field = TIMESTAMP_FIELDS.get(kind)
	if ts_field is not None:
		timestamps[ts_field] = stamp
	return TransitionResult(new_status=move.target, timestamps=timestamps)
