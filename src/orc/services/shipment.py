"""Shipment façade: lifecycle, resource assignment, merge follow-up."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from orc.cascade import ASSIGN_TASKS_TO_WORKBENCH, CascadeOutcome
from orc.models import EntityType, Shipment
from orc.services.base import LifecycleService
from orc.transitions import TransitionKind

logger = logging.getLogger(__name__)


@dataclass
class AssignmentResult:
	shipment: Shipment
	cascade: CascadeOutcome | None = None


class ShipmentService(LifecycleService):
	entity_type = EntityType.SHIPMENT

	def create(
		self,
		commission_id: str,
		title: str,
		description: str = "",
		mission_id: str | None = None,
		container_id: str | None = None,
	) -> Shipment:
		shipment = Shipment(
			commission_id=commission_id,
			mission_id=mission_id,
			container_id=container_id,
			title=title,
			description=description,
		)
		return self._create(
			shipment,
			parent_id=commission_id,
			parent_exists=self.db.exists(EntityType.COMMISSION, commission_id),
			related_id=mission_id or "",
			related_exists=bool(mission_id) and self.db.exists(EntityType.MISSION, mission_id),
		)

	def pause(self, shipment_id: str) -> Shipment:
		return self._transition(shipment_id, TransitionKind.PAUSE)

	def resume(self, shipment_id: str) -> Shipment:
		return self._transition(shipment_id, TransitionKind.RESUME)

	def complete(self, shipment_id: str, force: bool = False) -> Shipment:
		"""Complete the shipment; open tasks block completion unless ``force``."""
		return self._transition(
			shipment_id,
			TransitionKind.COMPLETE,
			force=force,
			open_child_count=self.db.count_open_tasks(shipment_id),
		)

	def complete_after_merge(self, shipment_id: str, params: Mapping[str, str]) -> None:
		"""Cascade target for a merged PR. Already complete counts as done."""
		shipment = self._load(shipment_id, TransitionKind.COMPLETE)
		if shipment.status == "complete":
			logger.debug("Shipment %s already complete", shipment_id)
			return
		self.complete(shipment_id, force=False)

	def list_completable(self) -> list[Shipment]:
		"""Shipments whose PR merged but whose completion cascade did not land."""
		return self.db.list_completable_shipments()

	def tasks(self, shipment_id: str) -> list:
		self.get(shipment_id)
		return self.db.list_entities(EntityType.TASK, shipment_id=shipment_id)

	def assign_workbench(self, shipment_id: str, workbench_id: str) -> AssignmentResult:
		"""Link a workbench and hand the shipment's open tasks to it."""
		shipment = self._load(shipment_id, TransitionKind.ASSIGN)
		facts = dict(
			resource_type="workbench",
			resource_id=workbench_id,
			resource_exists=self.db.exists(EntityType.WORKBENCH, workbench_id),
		)
		self._check(TransitionKind.ASSIGN, self._facts(
			shipment, assigned_to=self.db.workbench_assigned_to_other(workbench_id, shipment_id), **facts,
		))
		other = self.db.assign_workbench(shipment_id, workbench_id, self._now())
		if other:
			# Lost a race with a concurrent assignment.
			self._check(TransitionKind.ASSIGN, self._facts(shipment, assigned_to=other, **facts))
		outcome = self.ctx.cascades.run(
			ASSIGN_TASKS_TO_WORKBENCH,
			EntityType.SHIPMENT,
			shipment_id,
			shipment_id,
			{"workbench_id": workbench_id},
		)
		return AssignmentResult(shipment=self.get(shipment_id), cascade=outcome)

	def assign_tasks_to_workbench(self, shipment_id: str, params: Mapping[str, str]) -> int:
		"""Cascade target: make the shipment's open tasks discoverable by its workbench."""
		self.get(shipment_id)
		return self.db.assign_tasks_to_workbench(shipment_id, params["workbench_id"], self._now())

	def assign_grove(self, shipment_id: str, grove_id: str) -> AssignmentResult:
		shipment = self._load(shipment_id, TransitionKind.ASSIGN)
		facts = dict(
			resource_type="grove",
			resource_id=grove_id,
			resource_exists=self.db.exists(EntityType.GROVE, grove_id),
		)
		self._check(TransitionKind.ASSIGN, self._facts(
			shipment, assigned_to=self.db.grove_assigned_to_other(grove_id, shipment_id), **facts,
		))
		other = self.db.assign_grove(shipment_id, grove_id, self._now())
		if other:
			self._check(TransitionKind.ASSIGN, self._facts(shipment, assigned_to=other, **facts))
		return AssignmentResult(shipment=self.get(shipment_id))

	def delete(self, shipment_id: str, force: bool = False) -> None:
		self._delete(
			shipment_id,
			force=force,
			dependent_counts={"tasks": self.db.count_open_tasks(shipment_id)},
		)
