"""Guard evaluation: decide whether a transition is allowed.

Guards are pure. Callers gather every fact beforehand (existence, status,
pin flag, dependent counts, actor) and pass them in a ``GuardFacts``. Each
entity type has one ``EntityGuard`` strategy; the base class covers the
rules shared by all of them and subclasses add entity specific checks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from orc.errors import ERROR_CLASSES, ErrorKind
from orc.models import EntityType, Identity
from orc.transitions import FINALIZING_KINDS, TransitionKind, is_terminal, lifecycle


class DenialCode(str, Enum):
	NOT_FOUND = "not_found"
	PARENT_NOT_FOUND = "parent_not_found"
	STATUS_MISMATCH = "status_mismatch"
	PINNED = "pinned"
	OPEN_CHILDREN = "open_children"
	HAS_DEPENDENTS = "has_dependents"
	UNAUTHORIZED_ACTOR = "unauthorized_actor"
	ALREADY_LINKED = "already_linked"
	ASSIGNED_TO_OTHER = "assigned_to_other"
	NAME_TAKEN = "name_taken"
	INVALID_NAME = "invalid_name"
	MISSING_CONTENT = "missing_content"
	MISSING_REASON = "missing_reason"
	IMMUTABLE = "immutable"
	UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class DenialReason:
	"""Structured reason for a denied transition."""

	kind: ErrorKind
	code: DenialCode
	entity_type: EntityType
	entity_id: str = ""
	expected: tuple[str, ...] = ()
	found: str = ""
	details: Mapping[str, Any] = field(default_factory=dict)

	@property
	def message(self) -> str:
		subject = f"{self.entity_type.label} {self.entity_id}".strip()
		d = self.details
		code = self.code
		if code is DenialCode.NOT_FOUND:
			return f"{subject} not found"
		if code is DenialCode.PARENT_NOT_FOUND:
			return f"{d.get('parent_type', 'parent')} {d.get('parent_id', '')} not found".replace("  ", " ")
		if code is DenialCode.STATUS_MISMATCH:
			expected = ", ".join(sorted(self.expected))
			msg = f"precondition status mismatch: expected {{{expected}}}, found {self.found}"
			if "transition" in d:
				return f"cannot {d['transition']} {subject}: {msg}"
			return msg
		if code is DenialCode.PINNED:
			return (
				f"{subject} is pinned. "
				f"Unpin first with: orc {self.entity_type.value} unpin {self.entity_id}"
			)
		if code is DenialCode.OPEN_CHILDREN:
			children = d.get("children", "tasks")
			msg = f"{subject} has {d.get('count', 0)} open {children}"
			if d.get("forceable", True):
				msg += ". Use --force to override"
			return msg
		if code is DenialCode.HAS_DEPENDENTS:
			counts = ", ".join(f"{n} {name}" for name, n in d.get("counts", {}).items() if n)
			return f"{subject} has {counts}. Use --force to delete anyway"
		if code is DenialCode.UNAUTHORIZED_ACTOR:
			return (
				f"IMPs cannot {d.get('transition', 'modify')} {self.entity_type.label}s"
				f" - only ORC can (agent: {d.get('actor', 'IMP')})"
			)
		if code is DenialCode.ALREADY_LINKED:
			return f"shipment {d.get('parent_id', '')} already has a {self.entity_type.label}"
		if code is DenialCode.ASSIGNED_TO_OTHER:
			return (
				f"{d.get('resource_type', 'resource')} {d.get('resource_id', '')} "
				f"is already assigned to shipment {d.get('other', '')}"
			)
		if code is DenialCode.NAME_TAKEN:
			return f"{self.entity_type.label} named '{d.get('name', '')}' already exists"
		if code is DenialCode.INVALID_NAME:
			return f"{self.entity_type.label} name must not be blank"
		if code is DenialCode.MISSING_CONTENT:
			return f"{subject} has no content"
		if code is DenialCode.MISSING_REASON:
			return f"{subject} needs a reason to escalate"
		if code is DenialCode.IMMUTABLE:
			return f"{subject} is {self.found} and can no longer be edited"
		return f"{self.entity_type.label} does not support '{d.get('transition', '')}'"


@dataclass(frozen=True)
class GuardFacts:
	"""Pre-gathered facts for one transition decision."""

	entity_id: str = ""
	exists: bool = True
	status: str = ""
	pinned: bool = False
	force: bool = False
	actor: Identity | None = None
	parent_id: str = ""
	parent_exists: bool = True
	parent_status: str = ""
	related_id: str = ""
	related_exists: bool = True
	dependent_counts: Mapping[str, int] = field(default_factory=dict)
	open_child_count: int = 0
	linked_exists: bool = False
	assigned_to: str = ""
	resource_type: str = ""
	resource_id: str = ""
	resource_exists: bool = True
	name: str = ""
	name_taken: bool = False
	has_content: bool = True
	has_reason: bool = True


@dataclass(frozen=True)
class TransitionRequest:
	entity_type: EntityType
	kind: TransitionKind
	facts: GuardFacts = field(default_factory=GuardFacts)


@dataclass(frozen=True)
class Verdict:
	allowed: bool
	reason: DenialReason | None = None

	@property
	def message(self) -> str:
		return self.reason.message if self.reason else ""

	def raise_for_denial(self) -> None:
		if self.allowed or self.reason is None:
			return
		raise ERROR_CLASSES[self.reason.kind](self.reason.message, reason=self.reason)


ALLOWED = Verdict(allowed=True)


class EntityGuard:
	"""Shared guard rules; subclass per entity type."""

	entity_type: EntityType
	# Transitions only ORC may perform.
	orc_only: frozenset[TransitionKind] = frozenset()
	parent_type: str = ""
	parent_required: bool = False
	related_type: str = ""

	def deny(
		self,
		kind: ErrorKind,
		code: DenialCode,
		facts: GuardFacts,
		*,
		expected: tuple[str, ...] = (),
		found: str = "",
		**details: Any,
	) -> Verdict:
		reason = DenialReason(
			kind=kind,
			code=code,
			entity_type=self.entity_type,
			entity_id=facts.entity_id,
			expected=expected,
			found=found,
			details=details,
		)
		return Verdict(allowed=False, reason=reason)

	def evaluate(self, kind: TransitionKind, facts: GuardFacts) -> Verdict:
		if kind in self.orc_only and facts.actor is not None and facts.actor.is_imp:
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.UNAUTHORIZED_ACTOR, facts,
				transition=kind.value, actor=facts.actor.full_id,
			)
		if kind is TransitionKind.CREATE:
			return self.check_create(facts)
		if not facts.exists:
			return self.deny(ErrorKind.NOT_FOUND, DenialCode.NOT_FOUND, facts)
		if kind in (TransitionKind.PIN, TransitionKind.UNPIN):
			return self.check_pin(kind, facts)
		if kind is TransitionKind.DELETE:
			return self.check_delete(facts)
		if kind is TransitionKind.UPDATE:
			return self.check_update(facts)
		if kind is TransitionKind.ASSIGN:
			return self.check_assign(facts)
		return self.check_move(kind, facts)

	def check_create(self, facts: GuardFacts) -> Verdict:
		if (self.parent_required or facts.parent_id) and not facts.parent_exists:
			return self.deny(
				ErrorKind.NOT_FOUND, DenialCode.PARENT_NOT_FOUND, facts,
				parent_type=self.parent_type, parent_id=facts.parent_id,
			)
		if facts.related_id and not facts.related_exists:
			return self.deny(
				ErrorKind.NOT_FOUND, DenialCode.PARENT_NOT_FOUND, facts,
				parent_type=self.related_type, parent_id=facts.related_id,
			)
		return ALLOWED

	def check_pin(self, kind: TransitionKind, facts: GuardFacts) -> Verdict:
		# Pinning a pinned entity (or unpinning an unpinned one) is a no-op success.
		if not lifecycle(self.entity_type).pinnable:
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.UNSUPPORTED, facts, transition=kind.value,
			)
		return ALLOWED

	def check_delete(self, facts: GuardFacts) -> Verdict:
		counts = {name: n for name, n in facts.dependent_counts.items() if n > 0}
		if counts and not facts.force:
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.HAS_DEPENDENTS, facts, counts=counts,
			)
		return ALLOWED

	def check_update(self, facts: GuardFacts) -> Verdict:
		if is_terminal(facts.status):
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.IMMUTABLE, facts, found=facts.status,
			)
		return ALLOWED

	def check_assign(self, facts: GuardFacts) -> Verdict:
		return self.deny(
			ErrorKind.PRECONDITION_FAILED, DenialCode.UNSUPPORTED, facts, transition="assign",
		)

	def check_move(self, kind: TransitionKind, facts: GuardFacts) -> Verdict:
		life = lifecycle(self.entity_type)
		move = life.moves.get(kind)
		if move is None:
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.UNSUPPORTED, facts, transition=kind.value,
			)
		if kind in FINALIZING_KINDS and life.pinnable and facts.pinned:
			return self.deny(ErrorKind.PRECONDITION_FAILED, DenialCode.PINNED, facts)
		if facts.status not in move.sources:
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.STATUS_MISMATCH, facts,
				expected=tuple(sorted(move.sources)), found=facts.status, transition=kind.value,
			)
		return self.check_extra(kind, facts)

	def check_extra(self, kind: TransitionKind, facts: GuardFacts) -> Verdict:
		return ALLOWED


class CommissionGuard(EntityGuard):
	entity_type = EntityType.COMMISSION
	orc_only = frozenset({TransitionKind.CREATE, TransitionKind.START})


class MissionGuard(EntityGuard):
	entity_type = EntityType.MISSION
	orc_only = frozenset({TransitionKind.CREATE, TransitionKind.START})
	parent_type = "commission"


class GroveGuard(EntityGuard):
	entity_type = EntityType.GROVE
	orc_only = frozenset({TransitionKind.CREATE})
	parent_type = "mission"
	parent_required = True


class WorkbenchGuard(EntityGuard):
	entity_type = EntityType.WORKBENCH
	parent_type = "commission"


class RepoGuard(EntityGuard):
	entity_type = EntityType.REPO

	def check_create(self, facts: GuardFacts) -> Verdict:
		if not facts.name.strip():
			return self.deny(ErrorKind.PRECONDITION_FAILED, DenialCode.INVALID_NAME, facts)
		if facts.name_taken:
			return self.deny(ErrorKind.CONFLICT, DenialCode.NAME_TAKEN, facts, name=facts.name)
		return ALLOWED

	def check_delete(self, facts: GuardFacts) -> Verdict:
		if facts.open_child_count > 0:
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.OPEN_CHILDREN, facts,
				count=facts.open_child_count, children="pull requests", forceable=False,
			)
		return ALLOWED


class ShipmentGuard(EntityGuard):
	entity_type = EntityType.SHIPMENT
	parent_type = "commission"
	parent_required = True
	related_type = "mission"

	def check_extra(self, kind: TransitionKind, facts: GuardFacts) -> Verdict:
		if kind is TransitionKind.COMPLETE and facts.open_child_count > 0 and not facts.force:
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.OPEN_CHILDREN, facts,
				count=facts.open_child_count, children="tasks",
			)
		return ALLOWED

	def check_assign(self, facts: GuardFacts) -> Verdict:
		if not facts.resource_exists:
			return self.deny(
				ErrorKind.NOT_FOUND, DenialCode.PARENT_NOT_FOUND, facts,
				parent_type=facts.resource_type, parent_id=facts.resource_id,
			)
		if is_terminal(facts.status):
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.STATUS_MISMATCH, facts,
				expected=("active", "paused"), found=facts.status, transition="assign",
			)
		if facts.assigned_to and facts.assigned_to != facts.entity_id:
			return self.deny(
				ErrorKind.CONFLICT, DenialCode.ASSIGNED_TO_OTHER, facts,
				resource_type=facts.resource_type, resource_id=facts.resource_id,
				other=facts.assigned_to,
			)
		return ALLOWED


class TaskGuard(EntityGuard):
	entity_type = EntityType.TASK
	parent_type = "commission"
	parent_required = True
	related_type = "shipment"


class ConclaveGuard(EntityGuard):
	entity_type = EntityType.CONCLAVE
	parent_type = "commission"
	parent_required = True


class InvestigationGuard(EntityGuard):
	entity_type = EntityType.INVESTIGATION
	parent_type = "commission"
	parent_required = True


class TomeGuard(EntityGuard):
	entity_type = EntityType.TOME
	parent_type = "commission"
	parent_required = True
	related_type = "conclave"


class PlanGuard(EntityGuard):
	entity_type = EntityType.PLAN
	parent_type = "commission"
	parent_required = True
	related_type = "shipment"

	def check_create(self, facts: GuardFacts) -> Verdict:
		verdict = super().check_create(facts)
		if not verdict.allowed:
			return verdict
		if facts.linked_exists:
			return self.deny(
				ErrorKind.CONFLICT, DenialCode.ALREADY_LINKED, facts, parent_id=facts.related_id,
			)
		return ALLOWED

	def check_delete(self, facts: GuardFacts) -> Verdict:
		if facts.pinned:
			return self.deny(ErrorKind.PRECONDITION_FAILED, DenialCode.PINNED, facts)
		return ALLOWED

	def check_extra(self, kind: TransitionKind, facts: GuardFacts) -> Verdict:
		if kind in (TransitionKind.SUBMIT, TransitionKind.ESCALATE) and not facts.has_content:
			return self.deny(ErrorKind.PRECONDITION_FAILED, DenialCode.MISSING_CONTENT, facts)
		if kind is TransitionKind.ESCALATE and not facts.has_reason:
			return self.deny(ErrorKind.PRECONDITION_FAILED, DenialCode.MISSING_REASON, facts)
		return ALLOWED


class PullRequestGuard(EntityGuard):
	entity_type = EntityType.PR
	parent_type = "shipment"
	parent_required = True
	related_type = "repo"

	def check_create(self, facts: GuardFacts) -> Verdict:
		verdict = super().check_create(facts)
		if not verdict.allowed:
			return verdict
		if facts.parent_status != "active":
			return self.deny(
				ErrorKind.PRECONDITION_FAILED, DenialCode.STATUS_MISMATCH, facts,
				expected=("active",), found=facts.parent_status, transition="open a PR for",
			)
		if facts.linked_exists:
			return self.deny(
				ErrorKind.CONFLICT, DenialCode.ALREADY_LINKED, facts, parent_id=facts.parent_id,
			)
		return ALLOWED


class WorkOrderGuard(EntityGuard):
	entity_type = EntityType.WORK_ORDER
	parent_type = "shipment"
	parent_required = True

	def check_create(self, facts: GuardFacts) -> Verdict:
		verdict = super().check_create(facts)
		if not verdict.allowed:
			return verdict
		if facts.linked_exists:
			return self.deny(
				ErrorKind.CONFLICT, DenialCode.ALREADY_LINKED, facts, parent_id=facts.parent_id,
			)
		return ALLOWED


class EscalationGuard(EntityGuard):
	entity_type = EntityType.ESCALATION
	parent_type = "plan"
	parent_required = True


GUARDS: dict[EntityType, EntityGuard] = {
	guard.entity_type: guard
	for guard in (
		CommissionGuard(),
		MissionGuard(),
		GroveGuard(),
		WorkbenchGuard(),
		RepoGuard(),
		ShipmentGuard(),
		TaskGuard(),
		ConclaveGuard(),
		InvestigationGuard(),
		TomeGuard(),
		PlanGuard(),
		PullRequestGuard(),
		WorkOrderGuard(),
		EscalationGuard(),
	)
}


def evaluate(request: TransitionRequest) -> Verdict:
	"""Return the verdict for ``request``. Pure and total."""
	return GUARDS[request.entity_type].evaluate(request.kind, request.facts)


def check(entity_type: EntityType, kind: TransitionKind, facts: GuardFacts) -> None:
	"""Evaluate and raise the matching OrcError when denied."""
	evaluate(TransitionRequest(entity_type, kind, facts)).raise_for_denial()
