"""End-to-end tests for the service façades over an in-memory database."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeSessions, make_mission, make_shipment, make_task

from orc.clock import FixedClock, format_id
from orc.config import OrcConfig
from orc.db import Database
from orc.effects import FileEffect, SessionEffect, flatten
from orc.errors import ConflictError, EffectExecutionError, NotFoundError, PreconditionFailedError
from orc.guards import DenialCode
from orc.identity import StaticIdentityProvider, detect_identity
from orc.models import EntityType, Identity
from orc.services import Services, build_services


class TestMissionScenarios:
	def test_create_mission(self, services: Services, tmp_path: Path) -> None:
		mission = make_mission(services)
		assert mission.id == "MISSION-001"
		assert mission.status == "created"
		assert mission.workspace_path == str(tmp_path / "missions" / "MISSION-001")

	def test_start_with_missing_grove(self, services: Services, sessions: FakeSessions) -> None:
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "api")

		plan = flatten(services.missions.plan_start(mission.id))
		assert [type(e) for e in plan] == [FileEffect, SessionEffect]
		assert plan[0].operation == "mkdir"
		assert plan[0].path == grove.worktree_path
		assert plan[1].operation == "new_session"

		result = services.missions.start(mission.id)
		assert result.mission.status == "active"
		assert result.mission.started_at == "2025-01-01T00:00:00+00:00"
		assert result.report.applied == 2
		assert Path(grove.worktree_path).is_dir()
		assert sessions.created == [("orc-MISSION-001", mission.workspace_path)]

	def test_restart_is_idempotent(self, services: Services, sessions: FakeSessions, clock: FixedClock) -> None:
		mission = make_mission(services)
		services.groves.create(mission.id, "api")
		services.missions.start(mission.id)
		clock.advance(3600)

		plan = flatten(services.missions.plan_start(mission.id))
		assert [e.operation for e in plan] == ["new_window"]
		again = services.missions.start(mission.id)
		assert again.mission.status == "active"
		assert again.mission.started_at == "2025-01-01T00:00:00+00:00"
		assert len(sessions.created) == 1

	def test_failed_start_leaves_status(self, db: Database, config: OrcConfig, clock: FixedClock) -> None:
		services = build_services(
			db, config=config, clock=clock,
			identity=StaticIdentityProvider(), sessions=FakeSessions(fail=True),
		)
		mission = make_mission(services)
		with pytest.raises(EffectExecutionError):
			services.missions.start(mission.id)
		assert services.missions.get(mission.id).status == "created"

	def test_imp_cannot_start_mission(self, db: Database, config, clock: FixedClock, imp_actor: Identity) -> None:
		orc = build_services(db, config=config, clock=clock, identity=StaticIdentityProvider(), sessions=FakeSessions())
		mission = make_mission(orc)
		imp = build_services(
			db, config=config, clock=clock, identity=StaticIdentityProvider(imp_actor), sessions=FakeSessions(),
		)
		with pytest.raises(PreconditionFailedError) as exc_info:
			imp.missions.start(mission.id)
		assert exc_info.value.reason.code is DenialCode.UNAUTHORIZED_ACTOR

	def test_launch_writes_grove_config(self, services: Services) -> None:
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "api", repos=["orc"], worktree_path="/old/api")
		result = services.missions.launch(mission.id, create_session=False)
		config_file = Path(mission.workspace_path) / "groves" / "api" / ".orc" / "config.json"
		assert config_file.is_file()
		assert services.groves.get(grove.id).worktree_path == str(Path(mission.workspace_path) / "groves" / "api")
		assert result.mission.status == "active"

	def test_archived_groves_are_not_provisioned(self, services: Services) -> None:
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "old")
		services.groves.archive(grove.id)
		plan = flatten(services.missions.plan_start(mission.id))
		assert [e.operation for e in plan] == ["new_session"]

	def test_delete_with_groves_needs_force(self, services: Services) -> None:
		mission = make_mission(services)
		services.groves.create(mission.id, "api")
		with pytest.raises(PreconditionFailedError, match="1 groves"):
			services.missions.delete(mission.id)
		services.missions.delete(mission.id, force=True)
		assert services.missions.list() == []


class TestShipmentScenarios:
	def test_complete_with_open_task(self, services: Services) -> None:
		shipment = make_shipment(services)
		task = make_task(services, shipment)
		assert task.status == "ready"

		with pytest.raises(PreconditionFailedError) as exc_info:
			services.shipments.complete(shipment.id)
		assert exc_info.value.reason.code is DenialCode.OPEN_CHILDREN

		completed = services.shipments.complete(shipment.id, force=True)
		assert completed.status == "complete"
		assert completed.completed_at is not None

	def test_pause_only_from_active(self, services: Services) -> None:
		shipment = make_shipment(services)
		services.shipments.pause(shipment.id)
		with pytest.raises(PreconditionFailedError):
			services.shipments.pause(shipment.id)
		assert services.shipments.resume(shipment.id).status == "active"

	def test_missing_commission(self, services: Services) -> None:
		with pytest.raises(NotFoundError, match="commission COMM-404 not found"):
			services.shipments.create("COMM-404", "orphan")

	def test_pinned_shipment_cannot_complete(self, services: Services) -> None:
		shipment = make_shipment(services)
		services.shipments.pin(shipment.id)
		with pytest.raises(PreconditionFailedError, match="is pinned"):
			services.shipments.complete(shipment.id, force=True)
		services.shipments.unpin(shipment.id)
		assert services.shipments.complete(shipment.id).status == "complete"

	def test_pin_is_idempotent(self, services: Services, clock: FixedClock) -> None:
		shipment = make_shipment(services)
		first = services.shipments.pin(shipment.id)
		clock.advance(5)
		second = services.shipments.pin(shipment.id)
		assert second.pinned
		assert second.updated_at == first.updated_at

	def test_assign_workbench_hands_over_tasks(self, services: Services) -> None:
		shipment = make_shipment(services)
		task = make_task(services, shipment)
		bench = services.workbenches.create("bench-1")

		result = services.shipments.assign_workbench(shipment.id, bench.id)
		assert result.shipment.workbench_id == bench.id
		assert result.cascade.applied
		assert [t.id for t in services.tasks.discover(bench.id)] == [task.id]

		later = make_task(services, shipment, title="Added later")
		assert later.workbench_id == bench.id

	def test_workbench_held_by_other_shipment(self, services: Services) -> None:
		first = make_shipment(services)
		second = make_shipment(services, commission_id=first.commission_id)
		bench = services.workbenches.create("bench-1")
		services.shipments.assign_workbench(first.id, bench.id)
		with pytest.raises(ConflictError, match=f"already assigned to shipment {first.id}"):
			services.shipments.assign_workbench(second.id, bench.id)

	def test_assign_missing_workbench(self, services: Services) -> None:
		shipment = make_shipment(services)
		with pytest.raises(NotFoundError):
			services.shipments.assign_workbench(shipment.id, "BENCH-404")

	def test_assign_grove(self, services: Services) -> None:
		shipment = make_shipment(services)
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "api")
		services.shipments.assign_grove(shipment.id, grove.id)
		assert services.groves.get(grove.id).shipment_id == shipment.id


class TestPullRequests:
	def test_merge_closed_pr_fails(self, services: Services) -> None:
		shipment = make_shipment(services)
		pr = services.prs.create(shipment.id, "Add feature", draft=True)
		assert pr.status == "draft"
		services.prs.close(pr.id)
		with pytest.raises(PreconditionFailedError):
			services.prs.merge(pr.id)

	def test_merge_draft_fails(self, services: Services) -> None:
		shipment = make_shipment(services)
		pr = services.prs.create(shipment.id, "Add feature", draft=True)
		with pytest.raises(PreconditionFailedError, match="expected \\{approved, open\\}, found draft"):
			services.prs.merge(pr.id)

	def test_merge_completes_shipment(self, services: Services) -> None:
		shipment = make_shipment(services)
		pr = services.prs.create(shipment.id, "Add feature")
		result = services.prs.merge(pr.id)
		assert result.pr.status == "merged"
		assert result.shipment_completed
		assert services.shipments.get(shipment.id).status == "complete"

	def test_failed_cascade_keeps_merge(self, services: Services) -> None:
		shipment = make_shipment(services)
		make_task(services, shipment)
		pr = services.prs.create(shipment.id, "Add feature")

		result = services.prs.merge(pr.id)
		assert result.pr.status == "merged"
		assert not result.shipment_completed
		assert services.shipments.get(shipment.id).status == "active"
		assert [s.id for s in services.shipments.list_completable()] == [shipment.id]

		[marker] = services.cascades.pending()
		assert marker.source_id == pr.id
		assert marker.target_id == shipment.id

	def test_reconcile_after_tasks_finish(self, services: Services) -> None:
		shipment = make_shipment(services)
		task = make_task(services, shipment)
		pr = services.prs.create(shipment.id, "Add feature")
		services.prs.merge(pr.id)

		services.tasks.complete(task.id)
		[outcome] = services.cascades.reconcile()
		assert outcome.applied
		assert services.shipments.get(shipment.id).status == "complete"
		assert services.shipments.list_completable() == []

	def test_one_pr_per_shipment(self, services: Services) -> None:
		shipment = make_shipment(services)
		services.prs.create(shipment.id, "First")
		with pytest.raises(ConflictError, match="already has a PR"):
			services.prs.create(shipment.id, "Second")

	def test_pr_needs_active_shipment(self, services: Services) -> None:
		shipment = make_shipment(services)
		services.shipments.pause(shipment.id)
		with pytest.raises(PreconditionFailedError):
			services.prs.create(shipment.id, "Paused")

	def test_approve_then_merge(self, services: Services) -> None:
		shipment = make_shipment(services)
		pr = services.prs.create(shipment.id, "Add feature")
		assert services.prs.approve(pr.id).approved_at is not None
		assert services.prs.merge(pr.id).pr.merged_at is not None


class TestConclaves:
	def test_pinned_conclave(self, services: Services) -> None:
		commission = services.commissions.create("c")
		conclave = services.conclaves.create(commission.id, "Ideas")
		services.conclaves.pin(conclave.id)
		with pytest.raises(PreconditionFailedError):
			services.conclaves.complete(conclave.id)
		services.conclaves.unpin(conclave.id)
		assert services.conclaves.complete(conclave.id).status == "complete"

	def test_delete_with_tomes(self, services: Services) -> None:
		commission = services.commissions.create("c")
		conclave = services.conclaves.create(commission.id, "Ideas")
		services.tomes.create(commission.id, "Notes", conclave_id=conclave.id)
		with pytest.raises(PreconditionFailedError, match="1 tomes"):
			services.conclaves.delete(conclave.id)

	def test_investigation_lifecycle(self, services: Services) -> None:
		commission = services.commissions.create("c")
		investigation = services.investigations.create(commission.id, "Why slow")
		assert investigation.id == "INV-001"
		services.investigations.pause(investigation.id)
		assert services.investigations.complete(investigation.id).status == "complete"


class TestTasks:
	def test_claim_records_workbench(self, services: Services) -> None:
		shipment = make_shipment(services)
		task = make_task(services, shipment)
		bench = services.workbenches.create("bench-1")
		claimed = services.tasks.claim(task.id, workbench_id=bench.id)
		assert claimed.status == "in_progress"
		assert claimed.workbench_id == bench.id
		assert claimed.claimed_at is not None

	def test_claim_twice_fails(self, services: Services) -> None:
		shipment = make_shipment(services)
		task = make_task(services, shipment)
		services.tasks.claim(task.id)
		with pytest.raises(PreconditionFailedError):
			services.tasks.claim(task.id)

	def test_move_to_other_shipment(self, services: Services) -> None:
		first = make_shipment(services)
		second = make_shipment(services, commission_id=first.commission_id)
		task = make_task(services, first)
		assert services.tasks.move(task.id, second.id).shipment_id == second.id

	def test_completed_task_is_immutable(self, services: Services) -> None:
		shipment = make_shipment(services)
		task = make_task(services, shipment)
		services.tasks.complete(task.id)
		with pytest.raises(PreconditionFailedError, match="can no longer be edited"):
			services.tasks.update(task.id, title="renamed")

	def test_update_rejects_unknown_field(self, services: Services) -> None:
		shipment = make_shipment(services)
		task = make_task(services, shipment)
		with pytest.raises(ValueError):
			services.tasks.update(task.id, status="complete")


class TestPlansAndEscalations:
	def test_plan_review_flow(self, services: Services) -> None:
		commission = services.commissions.create("c")
		plan = services.plans.create(commission.id, "Approach", content="Do the thing")
		services.plans.submit(plan.id)
		approved = services.plans.approve(plan.id)
		assert approved.status == "approved"
		assert approved.approved_at is not None

	def test_submit_empty_plan(self, services: Services) -> None:
		commission = services.commissions.create("c")
		plan = services.plans.create(commission.id, "Empty")
		with pytest.raises(PreconditionFailedError, match="has no content"):
			services.plans.submit(plan.id)

	def test_one_active_plan_per_shipment(self, services: Services) -> None:
		shipment = make_shipment(services)
		services.plans.create(shipment.commission_id, "A", content="x", shipment_id=shipment.id)
		with pytest.raises(ConflictError):
			services.plans.create(shipment.commission_id, "B", content="y", shipment_id=shipment.id)

	def test_escalate_and_resolve(self, services: Services) -> None:
		commission = services.commissions.create("c")
		plan = services.plans.create(commission.id, "Risky", content="rewrite everything")
		result = services.plans.escalate(plan.id, "needs sign-off")
		assert result.plan.status == "escalated"
		assert result.escalation.status == "pending"
		assert result.escalation.plan_id == plan.id

		resolved = services.escalations.resolve(result.escalation.id, "approved", resolution="go ahead")
		assert resolved.status == "resolved"
		assert resolved.resolved_by == "ORC"
		assert resolved.resolved_at is not None

	def test_unknown_escalation_outcome(self, services: Services) -> None:
		commission = services.commissions.create("c")
		plan = services.plans.create(commission.id, "Risky", content="x")
		result = services.plans.escalate(plan.id, "why")
		with pytest.raises(PreconditionFailedError):
			services.escalations.resolve(result.escalation.id, "maybe")


class TestInfrastructure:
	def test_repo_names_unique(self, services: Services) -> None:
		services.repos.create("orc")
		with pytest.raises(ConflictError):
			services.repos.create(" orc ")

	def test_repo_with_open_pr_cannot_be_deleted(self, services: Services) -> None:
		repo = services.repos.create("orc")
		shipment = make_shipment(services)
		services.prs.create(shipment.id, "Feature", repo_id=repo.id)
		with pytest.raises(PreconditionFailedError):
			services.repos.delete(repo.id, force=True)

	def test_repo_lookup_by_name(self, services: Services) -> None:
		repo = services.repos.create("orc", url="git@example.com:orc.git")
		assert services.repos.get_by_name("orc").id == repo.id
		assert services.repos.get_by_name("other") is None

	def test_grove_with_active_tasks_needs_force(self, services: Services) -> None:
		shipment = make_shipment(services)
		make_task(services, shipment)
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "api")
		services.shipments.assign_grove(shipment.id, grove.id)
		assert [g.id for g in services.missions.groves(mission.id)] == [grove.id]
		with pytest.raises(PreconditionFailedError, match="1 active tasks"):
			services.groves.delete(grove.id)
		services.groves.delete(grove.id, force=True)
		assert services.missions.groves(mission.id) == []

	def test_tome_moves_to_conclave(self, services: Services) -> None:
		commission = services.commissions.create("c")
		conclave = services.conclaves.create(commission.id, "Ideas")
		tome = services.tomes.create(commission.id, "Notes")
		assert services.tomes.assign_to_conclave(tome.id, conclave.id).conclave_id == conclave.id
		with pytest.raises(NotFoundError):
			services.tomes.assign_to_conclave(tome.id, "CON-404")

	def test_repo_archive_restore(self, services: Services) -> None:
		repo = services.repos.create("orc")
		services.repos.archive(repo.id)
		assert services.repos.restore(repo.id).status == "active"

	def test_grove_cannot_be_pinned(self, services: Services) -> None:
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "api")
		with pytest.raises(PreconditionFailedError) as exc_info:
			services.groves.pin(grove.id)
		assert exc_info.value.reason.code is DenialCode.UNSUPPORTED

	def test_work_order_flow(self, services: Services) -> None:
		shipment = make_shipment(services)
		order = services.work_orders.create(shipment.id, "Ship it", ["tests pass"])
		assert order.acceptance_criteria == ["tests pass"]
		services.work_orders.activate(order.id)
		assert services.work_orders.complete(order.id).status == "complete"
		with pytest.raises(ConflictError):
			services.work_orders.create(shipment.id, "Again")

	def test_tome_close(self, services: Services) -> None:
		commission = services.commissions.create("c")
		tome = services.tomes.create(commission.id, "Notes")
		closed = services.tomes.close(tome.id)
		assert closed.status == "closed"
		assert closed.closed_at is not None

	def test_get_missing_entity(self, services: Services) -> None:
		with pytest.raises(NotFoundError, match="task TASK-404 not found"):
			services.tasks.get("TASK-404")

	def test_commission_archive_keeps_completed_at(self, services: Services) -> None:
		commission = services.commissions.create("c")
		services.commissions.start(commission.id)
		completed = services.commissions.complete(commission.id)
		archived = services.commissions.archive(commission.id)
		assert archived.status == "archived"
		assert archived.completed_at == completed.completed_at

	def test_ids_are_sequential_per_type(self, services: Services) -> None:
		first = services.commissions.create("a")
		second = services.commissions.create("b")
		assert (first.id, second.id) == ("COMM-001", "COMM-002")
		assert services.ctx.db.get(EntityType.COMMISSION, "COMM-002").title == "b"


class SteppingIds:
	"""Leaves a gap of ten between issued numbers."""

	def next_id(self, prefix: str, current_max: int) -> str:
		return format_id(prefix, current_max + 10)


class TestIdsAfterDelete:
	def test_deleted_shipment_is_not_completed_by_old_cascade(self, services: Services) -> None:
		shipment = make_shipment(services)
		make_task(services, shipment)
		pr = services.prs.create(shipment.id, "Add feature")
		marker_id = services.prs.merge(pr.id).cascade.marker_id

		services.shipments.delete(shipment.id, force=True)
		replacement = make_shipment(services, commission_id=shipment.commission_id)
		assert replacement.id == "SHIP-002"

		assert services.cascades.reconcile() == []
		assert services.shipments.get(replacement.id).status == "active"
		assert services.ctx.db.get_cascade(marker_id).status == "dropped"

	def test_cascade_outliving_its_commission_is_dropped(self, services: Services) -> None:
		shipment = make_shipment(services)
		make_task(services, shipment)
		pr = services.prs.create(shipment.id, "Add feature")
		services.prs.merge(pr.id)

		services.commissions.delete(shipment.commission_id, force=True)
		assert services.commissions.create("Next").id == "COMM-002"

		[outcome] = services.cascades.reconcile()
		assert not outcome.applied
		assert outcome.error == f"shipment {shipment.id} no longer exists"
		assert services.cascades.pending() == []

	def test_injected_id_generator(
		self, db: Database, config, clock: FixedClock, identity: StaticIdentityProvider, sessions: FakeSessions,
	) -> None:
		services = build_services(db, config=config, clock=clock, identity=identity, sessions=sessions, ids=SteppingIds())
		shipment = make_shipment(services)
		assert shipment.commission_id == "COMM-010"
		assert shipment.id == "SHIP-010"
		assert services.commissions.create("b").id == "COMM-020"

		make_task(services, shipment)
		pr = services.prs.create(shipment.id, "Feature")
		assert services.prs.merge(pr.id).cascade.marker_id == "CASC-010"


class TestCommissionDelete:
	def test_scoped_rows_need_force(self, services: Services) -> None:
		commission = services.commissions.create("c")
		services.conclaves.create(commission.id, "Ideas")
		services.tasks.create(commission.id, "Loose task")
		with pytest.raises(PreconditionFailedError, match="has 1 tasks, 1 conclaves. Use --force") as exc_info:
			services.commissions.delete(commission.id)
		assert exc_info.value.reason.code is DenialCode.HAS_DEPENDENTS
		assert services.ctx.db.count_children(EntityType.CONCLAVE, "commission_id", commission.id) == 1

	def test_force_removes_scoped_rows(self, services: Services) -> None:
		commission = services.commissions.create("c")
		services.tomes.create(commission.id, "Notes")
		services.commissions.delete(commission.id, force=True)
		assert services.ctx.db.get(EntityType.COMMISSION, commission.id) is None
		assert services.tomes.list() == []

	def test_empty_commission_deletes_without_force(self, services: Services) -> None:
		commission = services.commissions.create("c")
		services.commissions.delete(commission.id)
		assert services.commissions.list() == []


class TestGroveProvisioning:
	def test_create_with_provision_lays_out_grove(self, services: Services) -> None:
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "api", repos=["orc"], provision=True)
		path = Path(mission.workspace_path) / "groves" / "api"
		assert grove.worktree_path == str(path)
		assert path.is_dir()
		assert (path / ".orc" / "config.json").is_file()
		identity = detect_identity(path)
		assert identity.full_id == f"IMP-{grove.id}"
		assert identity.mission_id == mission.id

	def test_provision_records_new_path(self, services: Services) -> None:
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "api", worktree_path="/elsewhere/api")
		result = services.groves.provision(grove.id)
		assert result.report.applied == 4
		assert result.grove.worktree_path == str(Path(mission.workspace_path) / "groves" / "api")

	def test_open_creates_session_once(self, services: Services, sessions: FakeSessions) -> None:
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "api")
		first = services.groves.open(grove.id, commands=["make test"])
		assert first.report.applied == 3
		assert sessions.created == [(f"orc-{mission.id}", mission.workspace_path)]

		second = services.groves.open(grove.id)
		assert [e.operation for e in flatten(second.plan)] == ["new_window"]
		assert len(sessions.created) == 1

	def test_archived_grove_is_not_provisioned(self, services: Services) -> None:
		mission = make_mission(services)
		grove = services.groves.create(mission.id, "api")
		services.groves.archive(grove.id)
		with pytest.raises(PreconditionFailedError) as exc_info:
			services.groves.provision(grove.id)
		assert exc_info.value.reason.code is DenialCode.IMMUTABLE
		assert not Path(grove.worktree_path).exists()
