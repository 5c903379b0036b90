"""Tome façade."""

from __future__ import annotations

from orc.models import EntityType, Tome
from orc.services.base import LifecycleService
from orc.transitions import TransitionKind


class TomeService(LifecycleService):
	entity_type = EntityType.TOME

	def create(
		self,
		commission_id: str,
		title: str,
		description: str = "",
		conclave_id: str | None = None,
	) -> Tome:
		return self._create(
			Tome(commission_id=commission_id, conclave_id=conclave_id, title=title, description=description),
			parent_id=commission_id,
			parent_exists=self.db.exists(EntityType.COMMISSION, commission_id),
			related_id=conclave_id or "",
			related_exists=bool(conclave_id) and self.db.exists(EntityType.CONCLAVE, conclave_id),
		)

	def close(self, tome_id: str) -> Tome:
		return self._transition(tome_id, TransitionKind.CLOSE)

	def assign_to_conclave(self, tome_id: str, conclave_id: str) -> Tome:
		"""Park an open tome under a conclave."""
		tome = self._load(tome_id, TransitionKind.UPDATE)
		self._check(TransitionKind.UPDATE, self._facts(tome))
		self._require(EntityType.CONCLAVE, conclave_id)
		self.db.update_fields(EntityType.TOME, tome_id, {"conclave_id": conclave_id, "updated_at": self._now()})
		return self.get(tome_id)
