"""Grove façade: records plus worktree and window provisioning."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from orc.effects import CompositeEffect
from orc.executor import EffectExecutor, ExecutionReport
from orc.models import EntityType, Grove, Mission
from orc.planner import (
	GroveCreatePlanInput,
	GroveOpenPlanInput,
	GrovePlanInput,
	grove_path,
	plan_grove_create,
	plan_grove_open,
	session_name,
)
from orc.services.base import LifecycleService, ServiceContext
from orc.transitions import TransitionKind

logger = logging.getLogger(__name__)


@dataclass
class GroveResult:
	grove: Grove
	plan: CompositeEffect
	report: ExecutionReport


class GroveService(LifecycleService):
	entity_type = EntityType.GROVE
	editable_fields = frozenset({"name"})

	def __init__(self, ctx: ServiceContext) -> None:
		super().__init__(ctx)
		self.executor = EffectExecutor(ctx.db, ctx.sessions, ctx.tracer)

	def create(
		self,
		mission_id: str,
		name: str,
		repos: Sequence[str] = (),
		worktree_path: str = "",
		provision: bool = False,
	) -> Grove:
		"""Record a grove; with ``provision`` also lay out its directory and config."""
		mission = self.db.get(EntityType.MISSION, mission_id)
		if not worktree_path and mission is not None and mission.workspace_path:
			worktree_path = grove_path(mission.workspace_path, name)
		grove = Grove(
			mission_id=mission_id,
			name=name,
			worktree_path=worktree_path,
			repos=list(repos),
		)
		grove = self._create(grove, parent_id=mission_id, parent_exists=mission is not None)
		if provision:
			grove = self.provision(grove.id).grove
		return grove

	def _mission(self, grove: Grove) -> Mission:
		return self._require(EntityType.MISSION, grove.mission_id)

	def plan_create(self, grove_id: str) -> CompositeEffect:
		grove = self.get(grove_id)
		mission = self._mission(grove)
		return plan_grove_create(GroveCreatePlanInput(
			mission_id=mission.id,
			workspace_path=mission.workspace_path,
			grove=GrovePlanInput(
				id=grove.id,
				name=grove.name,
				current_path=grove.worktree_path,
				repos=tuple(grove.repos),
			),
			created_at=self._now(),
		))

	def plan_open(self, grove_id: str, commands: Sequence[str] = ()) -> CompositeEffect:
		grove = self.get(grove_id)
		mission = self._mission(grove)
		prefix = self.ctx.config.workspace.session_prefix
		return plan_grove_open(GroveOpenPlanInput(
			mission_id=mission.id,
			workspace_path=mission.workspace_path,
			grove_name=grove.name,
			grove_path=grove.worktree_path or grove_path(mission.workspace_path, grove.name),
			session_exists=self.ctx.sessions.has_session(session_name(mission.id, prefix)),
			session_prefix=prefix,
			commands=tuple(commands),
		))

	def _execute(self, grove_id: str, plan: CompositeEffect) -> GroveResult:
		report = self.executor.execute(plan)
		return GroveResult(grove=self.db.get(self.entity_type, grove_id), plan=plan, report=report)

	def provision(self, grove_id: str) -> GroveResult:
		"""Create the grove directory and .orc/config.json, then record its path.

		Archived groves are not provisioned.
		"""
		grove = self._load(grove_id, TransitionKind.UPDATE)
		self._check(TransitionKind.UPDATE, self._facts(grove))
		result = self._execute(grove_id, self.plan_create(grove_id))
		logger.info("Provisioned grove %s at %s", grove_id, result.grove.worktree_path)
		return result

	def open(self, grove_id: str, commands: Sequence[str] = ()) -> GroveResult:
		"""Open a window for the grove in its mission session."""
		grove = self._load(grove_id, TransitionKind.UPDATE)
		self._check(TransitionKind.UPDATE, self._facts(grove))
		path = Path(grove.worktree_path) if grove.worktree_path else None
		if path is not None and not path.exists():
			logger.warning("Grove %s path %s does not exist yet", grove_id, path)
		return self._execute(grove_id, self.plan_open(grove_id, commands))

	def archive(self, grove_id: str) -> Grove:
		return self._transition(grove_id, TransitionKind.ARCHIVE)

	def delete(self, grove_id: str, force: bool = False) -> None:
		self._delete(
			grove_id,
			force=force,
			dependent_counts={"active tasks": self.db.count_active_tasks_for_grove(grove_id)},
		)
