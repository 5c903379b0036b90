"""Shared plumbing for the per-entity service façades.

Every mutating call follows the same path: load the entity, gather guard
facts, evaluate the guard, compute the transition, persist it. Cascades,
when an operation has one, run after the primary write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from orc.cascade import CascadeCoordinator
from orc.clock import Clock, IdGenerator, SequentialIdGenerator, to_iso
from orc.config import OrcConfig
from orc.db import Database
from orc.errors import NotFoundError
from orc.executor import SessionDriver
from orc.guards import GuardFacts, TransitionRequest, evaluate
from orc.identity import IdentityProvider
from orc.models import EntityType
from orc.tracing import OrcTracer
from orc.transitions import TransitionKind, apply, initial_status

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"title", "description"})


@dataclass
class ServiceContext:
	"""Collaborators shared by every service."""

	db: Database
	clock: Clock
	identity: IdentityProvider
	sessions: SessionDriver
	cascades: CascadeCoordinator
	ids: IdGenerator = field(default_factory=SequentialIdGenerator)
	tracer: OrcTracer = field(default_factory=OrcTracer.disabled)
	config: OrcConfig = field(default_factory=OrcConfig)


class LifecycleService:
	entity_type: EntityType
	editable_fields: frozenset[str] = EDITABLE_FIELDS

	def __init__(self, ctx: ServiceContext) -> None:
		self.ctx = ctx
		self.db = ctx.db

	def _now(self) -> str:
		return to_iso(self.ctx.clock.now())

	# -- Reads --

	def get(self, entity_id: str) -> Any:
		entity = self.db.get(self.entity_type, entity_id)
		if entity is None:
			self._check(TransitionKind.UPDATE, GuardFacts(entity_id=entity_id, exists=False))
		return entity

	def list(self, **filters: Any) -> list[Any]:
		return self.db.list_entities(self.entity_type, **filters)

	def _require(self, entity_type: EntityType, entity_id: str | None) -> Any:
		"""Fetch a related entity of another type or raise NotFoundError."""
		entity = self.db.get(entity_type, entity_id) if entity_id else None
		if entity is None:
			raise NotFoundError(f"{entity_type.label} {entity_id} not found")
		return entity

	# -- Guard plumbing --

	def _facts(self, entity: Any, **extra: Any) -> GuardFacts:
		return GuardFacts(
			entity_id=entity.id,
			exists=True,
			status=entity.status,
			pinned=getattr(entity, "pinned", False),
			actor=self.ctx.identity.current(),
			**extra,
		)

	def _check(self, kind: TransitionKind, facts: GuardFacts) -> None:
		with self.ctx.tracer.span(
			"guard.evaluate",
			entity_type=self.entity_type.value,
			transition=kind.value,
			entity_id=facts.entity_id,
		) as span:
			verdict = evaluate(TransitionRequest(self.entity_type, kind, facts))
			span.set_attribute("orc.allowed", verdict.allowed)
		if not verdict.allowed:
			logger.info(
				"Denied %s on %s %s: %s",
				kind.value, self.entity_type.label, facts.entity_id, verdict.message,
			)
		verdict.raise_for_denial()

	def _load(self, entity_id: str, kind: TransitionKind) -> Any:
		"""Fetch the entity, raising through the guard when it does not exist."""
		entity = self.db.get(self.entity_type, entity_id)
		if entity is None:
			self._check(kind, GuardFacts(
				entity_id=entity_id, exists=False, actor=self.ctx.identity.current(),
			))
		return entity

	# -- Writes --

	def _apply(self, entity: Any, kind: TransitionKind) -> Any:
		with self.ctx.tracer.span(
			"transition.apply",
			entity_type=self.entity_type.value,
			transition=kind.value,
			entity_id=entity.id,
		):
			result = apply(self.entity_type, kind, self.ctx.clock.now())
			self.db.update_status(self.entity_type, entity.id, result.new_status, result.timestamps)
		logger.info(
			"%s %s: %s -> %s", self.entity_type.label, entity.id, entity.status, result.new_status,
		)
		return self.db.get(self.entity_type, entity.id)

	def _transition(self, entity_id: str, kind: TransitionKind, **facts: Any) -> Any:
		entity = self._load(entity_id, kind)
		self._check(kind, self._facts(entity, **facts))
		return self._apply(entity, kind)

	def _before_insert(self, entity: Any) -> None:
		"""Hook for fields derived from the freshly assigned id."""

	def _create(self, entity: Any, status: str | None = None, **facts: Any) -> Any:
		self._check(TransitionKind.CREATE, GuardFacts(actor=self.ctx.identity.current(), **facts))
		now = self._now()
		entity.id = self.db.get_next_id(self.entity_type, self.ctx.ids)
		entity.status = status or initial_status(self.entity_type)
		entity.created_at = now
		entity.updated_at = now
		self._before_insert(entity)
		self.db.insert(entity)
		return entity

	def _delete(self, entity_id: str, **facts: Any) -> None:
		entity = self._load(entity_id, TransitionKind.DELETE)
		self._check(TransitionKind.DELETE, self._facts(entity, **facts))
		self.db.delete(self.entity_type, entity_id)

	def delete(self, entity_id: str, force: bool = False) -> None:
		self._delete(entity_id, force=force)

	def update(self, entity_id: str, **values: Any) -> Any:
		"""Edit free-text fields while the entity is still mutable."""
		unknown = set(values) - self.editable_fields
		if unknown:
			raise ValueError(f"cannot edit {', '.join(sorted(unknown))} on a {self.entity_type.label}")
		entity = self._load(entity_id, TransitionKind.UPDATE)
		self._check(TransitionKind.UPDATE, self._facts(entity))
		changes = {k: v for k, v in values.items() if v is not None}
		if changes:
			changes["updated_at"] = self._now()
			self.db.update_fields(self.entity_type, entity_id, changes)
		return self.db.get(self.entity_type, entity_id)

	def pin(self, entity_id: str) -> Any:
		return self._set_pinned(entity_id, True)

	def unpin(self, entity_id: str) -> Any:
		return self._set_pinned(entity_id, False)

	def _set_pinned(self, entity_id: str, pinned: bool) -> Any:
		kind = TransitionKind.PIN if pinned else TransitionKind.UNPIN
		entity = self._load(entity_id, kind)
		self._check(kind, self._facts(entity))
		if entity.pinned == pinned:
			logger.debug("%s %s already %s", self.entity_type.label, entity_id, kind.value + "ned")
			return entity
		self.db.set_pinned(self.entity_type, entity_id, pinned, self._now())
		return self.db.get(self.entity_type, entity_id)
