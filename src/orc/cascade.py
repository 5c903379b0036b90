"""Best-effort follow-on transitions with recorded pending markers."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable, Mapping

from orc.clock import Clock, IdGenerator, SequentialIdGenerator, to_iso
from orc.db import Database
from orc.errors import NotFoundError, OrcError, ProgrammingError
from orc.models import CASCADE_ID_PREFIX, CascadeMarker, EntityType

logger = logging.getLogger(__name__)

CascadeHandler = Callable[[str, Mapping[str, str]], object]

COMPLETE_SHIPMENT = "complete_shipment"
ASSIGN_TASKS_TO_WORKBENCH = "assign_tasks_to_workbench"


@dataclass(frozen=True)
class CascadeOutcome:
	action: str
	target_id: str
	applied: bool
	marker_id: str | None = None
	error: str = ""


class CascadeCoordinator:
	"""Runs one dependent transition after a primary transition has been persisted.

	Failures never propagate: they are logged as warnings and recorded in
	the ``cascades`` table so ``pending()``/``reconcile()`` can finish them
	later. The primary transition is never rolled back. A marker whose target
	no longer exists is dropped instead of retried.
	"""

	def __init__(self, db: Database, clock: Clock, ids: IdGenerator | None = None) -> None:
		self._db = db
		self._clock = clock
		self._ids = ids or SequentialIdGenerator()
		self._handlers: dict[str, tuple[EntityType, CascadeHandler]] = {}

	def register(self, action: str, target_type: EntityType, handler: CascadeHandler) -> None:
		self._handlers[action] = (target_type, handler)

	def _handler(self, action: str) -> tuple[EntityType, CascadeHandler]:
		try:
			return self._handlers[action]
		except KeyError:
			raise ProgrammingError(f"No cascade handler registered for {action!r}") from None

	def run(
		self,
		action: str,
		source_type: EntityType,
		source_id: str,
		target_id: str,
		params: Mapping[str, str] | None = None,
	) -> CascadeOutcome:
		target_type, handler = self._handler(action)
		params = dict(params or {})
		try:
			handler(target_id, params)
		except (OrcError, sqlite3.Error) as exc:
			logger.warning(
				"Cascade %s from %s %s to %s %s failed: %s",
				action, source_type.value, source_id, target_type.value, target_id, exc,
			)
			marker = CascadeMarker(
				id=self._ids.next_id(CASCADE_ID_PREFIX, self._db.id_high_water(CASCADE_ID_PREFIX)),
				action=action,
				source_type=source_type.value,
				source_id=source_id,
				target_type=target_type.value,
				target_id=target_id,
				params=params,
				error=str(exc),
				created_at=to_iso(self._clock.now()),
			)
			self._db.insert_cascade(marker)
			return CascadeOutcome(action, target_id, applied=False, marker_id=marker.id, error=str(exc))

		self._db.resolve_cascades(action, target_type.value, target_id, to_iso(self._clock.now()))
		logger.info("Cascade %s applied to %s %s", action, target_type.value, target_id)
		return CascadeOutcome(action, target_id, applied=True)

	def pending(self) -> list[CascadeMarker]:
		return self._db.get_pending_cascades()

	def retry(self, marker_id: str) -> CascadeOutcome:
		marker = self._db.get_cascade(marker_id)
		if marker is None:
			raise NotFoundError(f"cascade {marker_id} not found")
		if marker.status != "pending":
			return CascadeOutcome(marker.action, marker.target_id, applied=True, marker_id=marker.id)

		target_type, handler = self._handler(marker.action)
		if not self._db.exists(target_type, marker.target_id):
			marker.status = "dropped"
			marker.error = f"{target_type.label} {marker.target_id} no longer exists"
			self._db.update_cascade(marker)
			logger.warning("Dropped cascade %s: %s", marker.id, marker.error)
			return CascadeOutcome(marker.action, marker.target_id, applied=False, marker_id=marker.id, error=marker.error)

		try:
			handler(marker.target_id, marker.params)
		except (OrcError, sqlite3.Error) as exc:
			marker.attempts += 1
			marker.error = str(exc)
			self._db.update_cascade(marker)
			logger.warning("Retry %d of cascade %s still failing: %s", marker.attempts, marker.id, exc)
			return CascadeOutcome(marker.action, marker.target_id, applied=False, marker_id=marker.id, error=str(exc))

		self._db.resolve_cascades(marker.action, marker.target_type, marker.target_id, to_iso(self._clock.now()))
		logger.info("Cascade %s resolved on retry", marker.id)
		return CascadeOutcome(marker.action, marker.target_id, applied=True, marker_id=marker.id)

	def reconcile(self) -> list[CascadeOutcome]:
		"""Retry every pending marker once."""
		return [self.retry(marker.id) for marker in self.pending()]
