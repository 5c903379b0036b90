"""Wires every façade around one database, clock and identity provider."""

from __future__ import annotations

from dataclasses import dataclass

from orc.cascade import ASSIGN_TASKS_TO_WORKBENCH, COMPLETE_SHIPMENT, CascadeCoordinator
from orc.clock import Clock, IdGenerator, SequentialIdGenerator, SystemClock
from orc.config import OrcConfig
from orc.db import Database
from orc.executor import SessionDriver
from orc.identity import IdentityProvider, WorkingDirectoryIdentityProvider
from orc.models import EntityType
from orc.services.base import ServiceContext
from orc.services.commission import CommissionService
from orc.services.conclave import ConclaveService, InvestigationService
from orc.services.grove import GroveService
from orc.services.mission import MissionService
from orc.services.plan import EscalationService, PlanService
from orc.services.pr import PullRequestService
from orc.services.repo import RepoService
from orc.services.shipment import ShipmentService
from orc.services.task import TaskService
from orc.services.tome import TomeService
from orc.services.work_order import WorkOrderService
from orc.services.workbench import WorkbenchService
from orc.tmux import TmuxDriver
from orc.tracing import OrcTracer


@dataclass
class Services:
	ctx: ServiceContext
	commissions: CommissionService
	missions: MissionService
	groves: GroveService
	workbenches: WorkbenchService
	repos: RepoService
	shipments: ShipmentService
	tasks: TaskService
	conclaves: ConclaveService
	investigations: InvestigationService
	tomes: TomeService
	plans: PlanService
	escalations: EscalationService
	prs: PullRequestService
	work_orders: WorkOrderService

	@property
	def cascades(self) -> CascadeCoordinator:
		return self.ctx.cascades


def build_services(
	db: Database,
	config: OrcConfig | None = None,
	clock: Clock | None = None,
	identity: IdentityProvider | None = None,
	sessions: SessionDriver | None = None,
	tracer: OrcTracer | None = None,
	ids: IdGenerator | None = None,
) -> Services:
	config = config or OrcConfig()
	clock = clock or SystemClock()
	ids = ids or SequentialIdGenerator()
	ctx = ServiceContext(
		db=db,
		clock=clock,
		identity=identity or WorkingDirectoryIdentityProvider(),
		sessions=sessions or TmuxDriver(config.tmux.executable),
		cascades=CascadeCoordinator(db, clock, ids),
		ids=ids,
		tracer=tracer or OrcTracer(config.tracing),
		config=config,
	)
	escalations = EscalationService(ctx)
	services = Services(
		ctx=ctx,
		commissions=CommissionService(ctx),
		missions=MissionService(ctx),
		groves=GroveService(ctx),
		workbenches=WorkbenchService(ctx),
		repos=RepoService(ctx),
		shipments=ShipmentService(ctx),
		tasks=TaskService(ctx),
		conclaves=ConclaveService(ctx),
		investigations=InvestigationService(ctx),
		tomes=TomeService(ctx),
		plans=PlanService(ctx, escalations),
		escalations=escalations,
		prs=PullRequestService(ctx),
		work_orders=WorkOrderService(ctx),
	)
	ctx.cascades.register(COMPLETE_SHIPMENT, EntityType.SHIPMENT, services.shipments.complete_after_merge)
	ctx.cascades.register(
		ASSIGN_TASKS_TO_WORKBENCH, EntityType.SHIPMENT, services.shipments.assign_tasks_to_workbench,
	)
	return services
