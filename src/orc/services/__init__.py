"""Per-entity service façades."""

from __future__ import annotations

from orc.services.base import LifecycleService, ServiceContext
from orc.services.commission import CommissionService
from orc.services.conclave import ConclaveService, InvestigationService
from orc.services.grove import GroveResult, GroveService
from orc.services.mission import MissionService, ProvisionResult
from orc.services.plan import EscalationResult, EscalationService, PlanService
from orc.services.pr import MergeResult, PullRequestService
from orc.services.registry import Services, build_services
from orc.services.repo import RepoService
from orc.services.shipment import AssignmentResult, ShipmentService
from orc.services.task import TaskService
from orc.services.tome import TomeService
from orc.services.work_order import WorkOrderService
from orc.services.workbench import WorkbenchService

__all__ = [
	"AssignmentResult",
	"CommissionService",
	"ConclaveService",
	"EscalationResult",
	"EscalationService",
	"GroveResult",
	"GroveService",
	"InvestigationService",
	"LifecycleService",
	"MergeResult",
	"MissionService",
	"PlanService",
	"ProvisionResult",
	"PullRequestService",
	"RepoService",
	"ServiceContext",
	"Services",
	"ShipmentService",
	"TaskService",
	"TomeService",
	"WorkOrderService",
	"WorkbenchService",
	"build_services",
]
