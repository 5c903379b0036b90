"""Commission façade."""

from __future__ import annotations

from orc.models import Commission, EntityType
from orc.services.base import LifecycleService
from orc.transitions import TransitionKind

# Rows scoped to a commission. Deleting it while any exist needs force.
_DEPENDENTS = (
	("shipments", EntityType.SHIPMENT),
	("tasks", EntityType.TASK),
	("conclaves", EntityType.CONCLAVE),
	("investigations", EntityType.INVESTIGATION),
	("tomes", EntityType.TOME),
	("plans", EntityType.PLAN),
	("workbenches", EntityType.WORKBENCH),
)


class CommissionService(LifecycleService):
	entity_type = EntityType.COMMISSION

	def create(self, title: str, description: str = "") -> Commission:
		return self._create(Commission(title=title, description=description))

	def start(self, commission_id: str) -> Commission:
		return self._transition(commission_id, TransitionKind.START)

	def pause(self, commission_id: str) -> Commission:
		return self._transition(commission_id, TransitionKind.PAUSE)

	def resume(self, commission_id: str) -> Commission:
		return self._transition(commission_id, TransitionKind.RESUME)

	def complete(self, commission_id: str) -> Commission:
		return self._transition(commission_id, TransitionKind.COMPLETE)

	def archive(self, commission_id: str) -> Commission:
		return self._transition(commission_id, TransitionKind.ARCHIVE)

	def delete(self, commission_id: str, force: bool = False) -> None:
		self._delete(
			commission_id,
			force=force,
			dependent_counts={
				label: self.db.count_children(entity_type, "commission_id", commission_id)
				for label, entity_type in _DEPENDENTS
			},
		)
