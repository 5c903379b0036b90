"""Data models for orc work items."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
	return datetime.now(timezone.utc).isoformat()


class EntityType(str, Enum):
	COMMISSION = "commission"
	MISSION = "mission"
	GROVE = "grove"
	WORKBENCH = "workbench"
	REPO = "repo"
	SHIPMENT = "shipment"
	TASK = "task"
	CONCLAVE = "conclave"
	INVESTIGATION = "investigation"
	TOME = "tome"
	PLAN = "plan"
	PR = "pr"
	WORK_ORDER = "work_order"
	ESCALATION = "escalation"

	@property
	def label(self) -> str:
		"""Human readable name used in messages ("work order", "PR")."""
		if self is EntityType.PR:
			return "PR"
		return self.value.replace("_", " ")


ID_PREFIXES: dict[EntityType, str] = {
	EntityType.COMMISSION: "COMM",
	EntityType.MISSION: "MISSION",
	EntityType.GROVE: "GROVE",
	EntityType.WORKBENCH: "BENCH",
	EntityType.REPO: "REPO",
	EntityType.SHIPMENT: "SHIP",
	EntityType.TASK: "TASK",
	EntityType.CONCLAVE: "CON",
	EntityType.INVESTIGATION: "INV",
	EntityType.TOME: "TOME",
	EntityType.PLAN: "PLAN",
	EntityType.PR: "PR",
	EntityType.WORK_ORDER: "WO",
	EntityType.ESCALATION: "ESC",
}

CASCADE_ID_PREFIX = "CASC"


class ActorType(str, Enum):
	"""ORC orchestrates; IMPs work inside a single grove."""

	ORC = "ORC"
	IMP = "IMP"


@dataclass(frozen=True)
class Identity:
	"""Who is performing an operation."""

	type: ActorType = ActorType.ORC
	full_id: str = "ORC"
	mission_id: str = ""

	@property
	def is_imp(self) -> bool:
		return self.type is ActorType.IMP


# -- Containers --


@dataclass
class Commission:
	"""Top-level container scoping missions, shipments and tasks."""

	id: str = ""
	title: str = ""
	description: str = ""
	status: str = "initial"  # initial/active/paused/complete/archived
	pinned: bool = False
	created_at: str = ""
	updated_at: str = ""
	started_at: str | None = None
	completed_at: str | None = None


@dataclass
class Mission:
	"""A long-lived unit of work with its own workspace and tmux session."""

	id: str = ""
	commission_id: str | None = None
	title: str = ""
	description: str = ""
	status: str = "created"  # created/active/paused/complete/archived
	pinned: bool = False
	workspace_path: str = ""
	created_at: str = ""
	updated_at: str = ""
	started_at: str | None = None
	completed_at: str | None = None


@dataclass
class Grove:
	"""A git worktree belonging to a mission."""

	id: str = ""
	mission_id: str = ""
	name: str = ""
	worktree_path: str = ""
	repos: list[str] = field(default_factory=list)
	status: str = "active"  # active/archived
	shipment_id: str | None = None
	created_at: str = ""
	updated_at: str = ""


@dataclass
class Workbench:
	"""An execution slot (agent) that claims shipments, tasks and tomes."""

	id: str = ""
	commission_id: str | None = None
	name: str = ""
	path: str = ""
	status: str = "active"  # active/archived
	created_at: str = ""
	updated_at: str = ""


@dataclass
class Repo:
	id: str = ""
	name: str = ""
	url: str = ""
	default_branch: str = "main"
	status: str = "active"  # active/archived
	created_at: str = ""
	updated_at: str = ""


# -- Work items --


@dataclass
class Shipment:
	"""A deliverable unit, usually landing as one PR."""

	id: str = ""
	commission_id: str = ""
	mission_id: str | None = None
	container_id: str | None = None  # conclave or investigation it came from
	title: str = ""
	description: str = ""
	status: str = "active"  # active/paused/complete
	pinned: bool = False
	workbench_id: str | None = None
	created_at: str = ""
	updated_at: str = ""
	completed_at: str | None = None


@dataclass
class Task:
	"""An atomic unit of work, optionally inside a shipment."""

	id: str = ""
	commission_id: str = ""
	shipment_id: str | None = None
	title: str = ""
	description: str = ""
	status: str = "ready"  # ready/in_progress/paused/complete
	pinned: bool = False
	workbench_id: str | None = None
	created_at: str = ""
	updated_at: str = ""
	claimed_at: str | None = None
	completed_at: str | None = None


@dataclass
class Conclave:
	"""Collaborative ideation container."""

	id: str = ""
	commission_id: str = ""
	title: str = ""
	description: str = ""
	status: str = "active"  # active/paused/complete
	pinned: bool = False
	created_at: str = ""
	updated_at: str = ""
	completed_at: str | None = None


@dataclass
class Investigation:
	id: str = ""
	commission_id: str = ""
	title: str = ""
	description: str = ""
	status: str = "active"  # active/paused/complete
	pinned: bool = False
	created_at: str = ""
	updated_at: str = ""
	completed_at: str | None = None


@dataclass
class Tome:
	"""Collection of notes, optionally parked under a conclave."""

	id: str = ""
	commission_id: str = ""
	conclave_id: str | None = None
	title: str = ""
	description: str = ""
	status: str = "open"  # open/closed
	pinned: bool = False
	workbench_id: str | None = None
	created_at: str = ""
	updated_at: str = ""
	closed_at: str | None = None


@dataclass
class Plan:
	"""A proposed approach that needs approval before work starts."""

	id: str = ""
	commission_id: str = ""
	shipment_id: str | None = None
	task_id: str | None = None
	title: str = ""
	content: str = ""
	status: str = "draft"  # draft/pending_review/approved/escalated/superseded
	pinned: bool = False
	created_at: str = ""
	updated_at: str = ""
	approved_at: str | None = None


@dataclass
class PullRequest:
	"""A pull request; exactly one per shipment."""

	id: str = ""
	shipment_id: str = ""
	repo_id: str | None = None
	commission_id: str = ""
	number: int | None = None
	title: str = ""
	description: str = ""
	branch: str = ""
	target_branch: str = "main"
	url: str = ""
	status: str = "open"  # draft/open/approved/merged/closed
	pinned: bool = False
	created_at: str = ""
	updated_at: str = ""
	approved_at: str | None = None
	merged_at: str | None = None
	closed_at: str | None = None


@dataclass
class WorkOrder:
	"""Outcome and acceptance criteria for a shipment (1:1)."""

	id: str = ""
	shipment_id: str = ""
	outcome: str = ""
	acceptance_criteria: list[str] = field(default_factory=list)
	status: str = "draft"  # draft/active/complete
	created_at: str = ""
	updated_at: str = ""
	completed_at: str | None = None


@dataclass
class Escalation:
	"""A plan routed to a human or alternate actor for a decision."""

	id: str = ""
	plan_id: str = ""
	task_id: str | None = None
	reason: str = ""
	routed_to: str = "ORC"
	status: str = "pending"  # pending/resolved/dismissed
	resolution: str = ""
	resolved_by: str = ""
	created_at: str = ""
	updated_at: str = ""
	resolved_at: str | None = None


@dataclass
class CascadeMarker:
	"""A dependent transition that did not land after its primary transition."""

	id: str = ""
	action: str = ""
	source_type: str = ""
	source_id: str = ""
	target_type: str = ""
	target_id: str = ""
	params: dict[str, str] = field(default_factory=dict)
	error: str = ""
	status: str = "pending"  # pending/resolved/dropped
	attempts: int = 1
	created_at: str = field(default_factory=_now_iso)
	resolved_at: str | None = None


ENTITY_CLASSES: dict[EntityType, type] = {
	EntityType.COMMISSION: Commission,
	EntityType.MISSION: Mission,
	EntityType.GROVE: Grove,
	EntityType.WORKBENCH: Workbench,
	EntityType.REPO: Repo,
	EntityType.SHIPMENT: Shipment,
	EntityType.TASK: Task,
	EntityType.CONCLAVE: Conclave,
	EntityType.INVESTIGATION: Investigation,
	EntityType.TOME: Tome,
	EntityType.PLAN: Plan,
	EntityType.PR: PullRequest,
	EntityType.WORK_ORDER: WorkOrder,
	EntityType.ESCALATION: Escalation,
}


# -- Grove config file (.orc/config.json) --


class GroveConfigBody(BaseModel, extra="ignore"):
	grove_id: str
	mission_id: str
	name: str
	repos: list[str] = Field(default_factory=list)
	created_at: str = ""


class GroveConfig(BaseModel, extra="ignore"):
	"""Schema of the config file written into each grove's .orc directory."""

	version: str = "1.0"
	type: Literal["grove"] = "grove"
	grove: GroveConfigBody
