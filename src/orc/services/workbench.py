"""Workbench façade."""

from __future__ import annotations

from orc.models import EntityType, Workbench
from orc.services.base import LifecycleService
from orc.transitions import TransitionKind


class WorkbenchService(LifecycleService):
	entity_type = EntityType.WORKBENCH
	editable_fields = frozenset({"name", "path"})

	def create(self, name: str, path: str = "", commission_id: str | None = None) -> Workbench:
		return self._create(
			Workbench(name=name, path=path, commission_id=commission_id),
			parent_id=commission_id or "",
			parent_exists=bool(commission_id) and self.db.exists(EntityType.COMMISSION, commission_id),
		)

	def archive(self, workbench_id: str) -> Workbench:
		return self._transition(workbench_id, TransitionKind.ARCHIVE)

	def delete(self, workbench_id: str, force: bool = False) -> None:
		self._delete(
			workbench_id,
			force=force,
			dependent_counts={"active tasks": self.db.count_active_tasks_for_workbench(workbench_id)},
		)
