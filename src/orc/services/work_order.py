"""Work order façade."""

from __future__ import annotations

from typing import Sequence

from orc.models import EntityType, WorkOrder
from orc.services.base import LifecycleService
from orc.transitions import TransitionKind


class WorkOrderService(LifecycleService):
	entity_type = EntityType.WORK_ORDER
	editable_fields = frozenset({"outcome", "acceptance_criteria"})

	def create(self, shipment_id: str, outcome: str, acceptance_criteria: Sequence[str] = ()) -> WorkOrder:
		return self._create(
			WorkOrder(shipment_id=shipment_id, outcome=outcome, acceptance_criteria=list(acceptance_criteria)),
			parent_id=shipment_id,
			parent_exists=self.db.exists(EntityType.SHIPMENT, shipment_id),
			linked_exists=self.db.shipment_has_work_order(shipment_id),
		)

	def get_for_shipment(self, shipment_id: str) -> WorkOrder | None:
		orders = self.db.list_entities(EntityType.WORK_ORDER, shipment_id=shipment_id)
		return orders[0] if orders else None

	def activate(self, work_order_id: str) -> WorkOrder:
		return self._transition(work_order_id, TransitionKind.ACTIVATE)

	def complete(self, work_order_id: str) -> WorkOrder:
		return self._transition(work_order_id, TransitionKind.COMPLETE)
