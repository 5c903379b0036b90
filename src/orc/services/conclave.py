"""Conclave and investigation façades (pausable ideation containers)."""

from __future__ import annotations

from orc.models import Conclave, EntityType, Investigation
from orc.services.base import LifecycleService
from orc.transitions import TransitionKind


class _ContainerService(LifecycleService):
	def pause(self, entity_id: str):
		return self._transition(entity_id, TransitionKind.PAUSE)

	def resume(self, entity_id: str):
		return self._transition(entity_id, TransitionKind.RESUME)

	def complete(self, entity_id: str):
		return self._transition(entity_id, TransitionKind.COMPLETE)


class ConclaveService(_ContainerService):
	entity_type = EntityType.CONCLAVE

	def create(self, commission_id: str, title: str, description: str = "") -> Conclave:
		return self._create(
			Conclave(commission_id=commission_id, title=title, description=description),
			parent_id=commission_id,
			parent_exists=self.db.exists(EntityType.COMMISSION, commission_id),
		)

	def delete(self, conclave_id: str, force: bool = False) -> None:
		self._delete(
			conclave_id,
			force=force,
			dependent_counts={"tomes": self.db.count_children(EntityType.TOME, "conclave_id", conclave_id)},
		)


class InvestigationService(_ContainerService):
	entity_type = EntityType.INVESTIGATION

	def create(self, commission_id: str, title: str, description: str = "") -> Investigation:
		return self._create(
			Investigation(commission_id=commission_id, title=title, description=description),
			parent_id=commission_id,
			parent_exists=self.db.exists(EntityType.COMMISSION, commission_id),
		)

	def delete(self, investigation_id: str, force: bool = False) -> None:
		self._delete(
			investigation_id,
			force=force,
			dependent_counts={
				"shipments": self.db.count_children(EntityType.SHIPMENT, "container_id", investigation_id),
			},
		)
