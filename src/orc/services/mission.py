"""Mission façade: lifecycle plus workspace and session provisioning."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from orc.effects import CompositeEffect
from orc.executor import EffectExecutor, ExecutionReport
from orc.models import EntityType, Grove, Mission
from orc.planner import (
	GrovePlanInput,
	LaunchPlanInput,
	StartPlanInput,
	grove_path,
	plan_launch,
	plan_start,
	session_name,
)
from orc.services.base import LifecycleService, ServiceContext
from orc.transitions import TransitionKind

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
	mission: Mission
	plan: CompositeEffect
	report: ExecutionReport


class MissionService(LifecycleService):
	entity_type = EntityType.MISSION

	def __init__(self, ctx: ServiceContext) -> None:
		super().__init__(ctx)
		self.executor = EffectExecutor(ctx.db, ctx.sessions, ctx.tracer)

	def create(
		self,
		title: str,
		description: str = "",
		commission_id: str | None = None,
		workspace_path: str = "",
	) -> Mission:
		mission = Mission(
			title=title,
			description=description,
			commission_id=commission_id,
			workspace_path=workspace_path,
		)
		return self._create(
			mission,
			parent_id=commission_id or "",
			parent_exists=bool(commission_id) and self.db.exists(EntityType.COMMISSION, commission_id),
		)

	def _before_insert(self, entity: Mission) -> None:
		if not entity.workspace_path:
			entity.workspace_path = str(self.ctx.config.workspace.mission_path(entity.id))

	def session_name(self, mission_id: str) -> str:
		return session_name(mission_id, self.ctx.config.workspace.session_prefix)

	def _grove_inputs(self, mission: Mission) -> tuple[GrovePlanInput, ...]:
		inputs = []
		for grove in self.db.list_groves(mission.id):
			if grove.status != "active":
				continue
			path = grove.worktree_path or grove_path(mission.workspace_path, grove.name)
			inputs.append(GrovePlanInput(
				id=grove.id,
				name=grove.name,
				current_path=grove.worktree_path,
				repos=tuple(grove.repos),
				path_exists=Path(path).exists(),
			))
		return tuple(inputs)

	def plan_start(self, mission_id: str) -> CompositeEffect:
		"""Resolve filesystem and session facts, then plan (no side effects)."""
		mission = self.get(mission_id)
		name = self.session_name(mission.id)
		return plan_start(StartPlanInput(
			mission_id=mission.id,
			workspace_path=mission.workspace_path,
			groves=self._grove_inputs(mission),
			session_exists=self.ctx.sessions.has_session(name),
			session_prefix=self.ctx.config.workspace.session_prefix,
		))

	def plan_launch(self, mission_id: str, create_session: bool = True) -> CompositeEffect:
		mission = self.get(mission_id)
		name = self.session_name(mission.id)
		return plan_launch(LaunchPlanInput(
			mission_id=mission.id,
			workspace_path=mission.workspace_path,
			groves=self._grove_inputs(mission),
			created_at=self._now(),
			create_session=create_session,
			session_exists=create_session and self.ctx.sessions.has_session(name),
			session_prefix=self.ctx.config.workspace.session_prefix,
		))

	def _provision(self, mission_id: str, planner: Callable[[str], CompositeEffect]) -> ProvisionResult:
		mission = self._load(mission_id, TransitionKind.START)
		self._check(TransitionKind.START, self._facts(mission))
		plan = planner(mission_id)
		report = self.executor.execute(plan)
		if mission.status != "active":
			mission = self._apply(mission, TransitionKind.START)
		return ProvisionResult(mission=mission, plan=plan, report=report)

	def start(self, mission_id: str) -> ProvisionResult:
		"""Create missing grove directories and the mission session, then mark it active.

		Safe to re-run: directories use exist_ok and an existing session is
		reused. A failed execution leaves the mission status untouched.
		"""
		return self._provision(mission_id, self.plan_start)

	def launch(self, mission_id: str, create_session: bool = True) -> ProvisionResult:
		"""Lay out the full workspace (grove configs included) and mark the mission active."""
		return self._provision(
			mission_id, lambda mid: self.plan_launch(mid, create_session=create_session),
		)

	def pause(self, mission_id: str) -> Mission:
		return self._transition(mission_id, TransitionKind.PAUSE)

	def resume(self, mission_id: str) -> Mission:
		return self._transition(mission_id, TransitionKind.RESUME)

	def complete(self, mission_id: str) -> Mission:
		return self._transition(mission_id, TransitionKind.COMPLETE)

	def archive(self, mission_id: str) -> Mission:
		return self._transition(mission_id, TransitionKind.ARCHIVE)

	def groves(self, mission_id: str) -> list[Grove]:
		self.get(mission_id)
		return self.db.list_groves(mission_id)

	def delete(self, mission_id: str, force: bool = False) -> None:
		self._delete(
			mission_id,
			force=force,
			dependent_counts={
				"shipments": self.db.count_children(EntityType.SHIPMENT, "mission_id", mission_id),
				"groves": self.db.count_children(EntityType.GROVE, "mission_id", mission_id),
			},
		)
