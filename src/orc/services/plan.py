"""Plan and escalation façades."""

from __future__ import annotations

from dataclasses import dataclass

from orc.errors import PreconditionFailedError
from orc.models import EntityType, Escalation, Plan
from orc.services.base import LifecycleService, ServiceContext
from orc.transitions import TransitionKind

ESCALATION_OUTCOMES = {
	"approved": TransitionKind.RESOLVE,
	"rejected": TransitionKind.DISMISS,
}


@dataclass
class EscalationResult:
	plan: Plan
	escalation: Escalation


class EscalationService(LifecycleService):
	entity_type = EntityType.ESCALATION
	editable_fields = frozenset({"reason", "routed_to"})

	def create(
		self,
		plan_id: str,
		reason: str,
		task_id: str | None = None,
		routed_to: str = "ORC",
	) -> Escalation:
		return self._create(
			Escalation(plan_id=plan_id, task_id=task_id, reason=reason, routed_to=routed_to),
			parent_id=plan_id,
			parent_exists=self.db.exists(EntityType.PLAN, plan_id),
		)

	def resolve(self, escalation_id: str, outcome: str, resolution: str = "", resolved_by: str = "") -> Escalation:
		"""``approved`` resolves the escalation, ``rejected`` dismisses it."""
		kind = ESCALATION_OUTCOMES.get(outcome)
		if kind is None:
			raise PreconditionFailedError(
				f"unknown escalation outcome '{outcome}' (expected approved or rejected)",
			)
		escalation = self._transition(escalation_id, kind)
		self.db.update_fields(EntityType.ESCALATION, escalation_id, {
			"resolution": resolution,
			"resolved_by": resolved_by or self.ctx.identity.current().full_id,
		})
		return self.get(escalation.id)


class PlanService(LifecycleService):
	entity_type = EntityType.PLAN
	editable_fields = frozenset({"title", "content"})

	def __init__(self, ctx: ServiceContext, escalations: EscalationService) -> None:
		super().__init__(ctx)
		self.escalations = escalations

	def create(
		self,
		commission_id: str,
		title: str,
		content: str = "",
		shipment_id: str | None = None,
		task_id: str | None = None,
	) -> Plan:
		plan = Plan(
			commission_id=commission_id,
			shipment_id=shipment_id,
			task_id=task_id,
			title=title,
			content=content,
		)
		return self._create(
			plan,
			parent_id=commission_id,
			parent_exists=self.db.exists(EntityType.COMMISSION, commission_id),
			related_id=shipment_id or "",
			related_exists=bool(shipment_id) and self.db.exists(EntityType.SHIPMENT, shipment_id),
			linked_exists=bool(shipment_id) and self.db.shipment_has_active_plan(shipment_id),
		)

	def submit(self, plan_id: str) -> Plan:
		plan = self._load(plan_id, TransitionKind.SUBMIT)
		return self._transition(plan_id, TransitionKind.SUBMIT, has_content=bool(plan.content.strip()))

	def approve(self, plan_id: str) -> Plan:
		return self._transition(plan_id, TransitionKind.APPROVE)

	def escalate(self, plan_id: str, reason: str, routed_to: str = "ORC") -> EscalationResult:
		"""Mark the plan escalated and open a pending escalation for it."""
		plan = self._load(plan_id, TransitionKind.ESCALATE)
		plan = self._transition(
			plan_id,
			TransitionKind.ESCALATE,
			has_content=bool(plan.content.strip()),
			has_reason=bool(reason.strip()),
		)
		escalation = self.escalations.create(plan_id, reason, task_id=plan.task_id, routed_to=routed_to)
		return EscalationResult(plan=plan, escalation=escalation)

	def delete(self, plan_id: str, force: bool = False) -> None:
		# Pinned plans cannot be deleted, forced or not.
		self._delete(plan_id, force=force)
