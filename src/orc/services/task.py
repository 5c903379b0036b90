"""Task façade: lifecycle, claiming and discovery by workbench."""

from __future__ import annotations

from orc.models import EntityType, Task
from orc.services.base import LifecycleService
from orc.transitions import TransitionKind


class TaskService(LifecycleService):
	entity_type = EntityType.TASK

	def create(
		self,
		commission_id: str,
		title: str,
		description: str = "",
		shipment_id: str | None = None,
	) -> Task:
		shipment = self.db.get(EntityType.SHIPMENT, shipment_id) if shipment_id else None
		task = Task(
			commission_id=commission_id,
			shipment_id=shipment_id,
			title=title,
			description=description,
			# Tasks created after assignment are discoverable right away.
			workbench_id=shipment.workbench_id if shipment else None,
		)
		return self._create(
			task,
			parent_id=commission_id,
			parent_exists=self.db.exists(EntityType.COMMISSION, commission_id),
			related_id=shipment_id or "",
			related_exists=shipment is not None,
		)

	def claim(self, task_id: str, workbench_id: str | None = None) -> Task:
		"""ready -> in_progress, recording the claiming workbench."""
		if workbench_id:
			self._require(EntityType.WORKBENCH, workbench_id)
		task = self._transition(task_id, TransitionKind.CLAIM)
		if workbench_id and task.workbench_id != workbench_id:
			self.db.update_fields(EntityType.TASK, task_id, {"workbench_id": workbench_id})
			task = self.get(task_id)
		return task

	def pause(self, task_id: str) -> Task:
		return self._transition(task_id, TransitionKind.PAUSE)

	def resume(self, task_id: str) -> Task:
		return self._transition(task_id, TransitionKind.RESUME)

	def complete(self, task_id: str) -> Task:
		return self._transition(task_id, TransitionKind.COMPLETE)

	def discover(self, workbench_id: str) -> list[Task]:
		"""Ready tasks handed to ``workbench_id``."""
		return self.db.list_ready_tasks(workbench_id)

	def move(self, task_id: str, shipment_id: str) -> Task:
		"""Re-parent a still-mutable task onto another shipment."""
		task = self._load(task_id, TransitionKind.UPDATE)
		self._check(TransitionKind.UPDATE, self._facts(task))
		shipment = self._require(EntityType.SHIPMENT, shipment_id)
		self.db.update_fields(EntityType.TASK, task_id, {
			"shipment_id": shipment_id,
			"workbench_id": shipment.workbench_id,
			"updated_at": self._now(),
		})
		return self.get(task_id)
