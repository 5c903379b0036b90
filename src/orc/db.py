"""SQLite persistence for orc work items."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, fields
from enum import Enum
from pathlib import Path
from typing import Any, Generator, Mapping

from orc.clock import IdGenerator, parse_id_number
from orc.errors import ConflictError, NotFoundError
from orc.models import (
	CASCADE_ID_PREFIX,
	ENTITY_CLASSES,
	ID_PREFIXES,
	CascadeMarker,
	EntityType,
	Grove,
	PullRequest,
	Shipment,
	Task,
)

logger = logging.getLogger(__name__)

TABLES: dict[EntityType, str] = {
	EntityType.COMMISSION: "commissions",
	EntityType.MISSION: "missions",
	EntityType.GROVE: "groves",
	EntityType.WORKBENCH: "workbenches",
	EntityType.REPO: "repos",
	EntityType.SHIPMENT: "shipments",
	EntityType.TASK: "tasks",
	EntityType.CONCLAVE: "conclaves",
	EntityType.INVESTIGATION: "investigations",
	EntityType.TOME: "tomes",
	EntityType.PLAN: "plans",
	EntityType.PR: "prs",
	EntityType.WORK_ORDER: "work_orders",
	EntityType.ESCALATION: "escalations",
}

_TYPES_BY_CLASS = {cls: entity_type for entity_type, cls in ENTITY_CLASSES.items()}

_OPEN_PR_STATUSES = ("draft", "open", "approved")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS commissions (
	id TEXT PRIMARY KEY,
	title TEXT NOT NULL DEFAULT '',
	description TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'initial',
	pinned INTEGER NOT NULL DEFAULT 0,
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	started_at TEXT,
	completed_at TEXT
);

CREATE TABLE IF NOT EXISTS missions (
	id TEXT PRIMARY KEY,
	commission_id TEXT REFERENCES commissions(id) ON DELETE SET NULL,
	title TEXT NOT NULL DEFAULT '',
	description TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'created',
	pinned INTEGER NOT NULL DEFAULT 0,
	workspace_path TEXT NOT NULL DEFAULT '',
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	started_at TEXT,
	completed_at TEXT
);

CREATE TABLE IF NOT EXISTS workbenches (
	id TEXT PRIMARY KEY,
	commission_id TEXT REFERENCES commissions(id) ON DELETE SET NULL,
	name TEXT NOT NULL DEFAULT '',
	path TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'active',
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS repos (
	id TEXT PRIMARY KEY,
	name TEXT NOT NULL UNIQUE,
	url TEXT NOT NULL DEFAULT '',
	default_branch TEXT NOT NULL DEFAULT 'main',
	status TEXT NOT NULL DEFAULT 'active',
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS shipments (
	id TEXT PRIMARY KEY,
	commission_id TEXT NOT NULL REFERENCES commissions(id) ON DELETE CASCADE,
	mission_id TEXT REFERENCES missions(id) ON DELETE SET NULL,
	container_id TEXT,
	title TEXT NOT NULL DEFAULT '',
	description TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'active',
	pinned INTEGER NOT NULL DEFAULT 0,
	workbench_id TEXT REFERENCES workbenches(id) ON DELETE SET NULL,
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	completed_at TEXT
);

CREATE TABLE IF NOT EXISTS groves (
	id TEXT PRIMARY KEY,
	mission_id TEXT NOT NULL REFERENCES missions(id) ON DELETE CASCADE,
	name TEXT NOT NULL DEFAULT '',
	worktree_path TEXT NOT NULL DEFAULT '',
	repos TEXT NOT NULL DEFAULT '[]',
	status TEXT NOT NULL DEFAULT 'active',
	shipment_id TEXT REFERENCES shipments(id) ON DELETE SET NULL,
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
	id TEXT PRIMARY KEY,
	commission_id TEXT NOT NULL REFERENCES commissions(id) ON DELETE CASCADE,
	shipment_id TEXT REFERENCES shipments(id) ON DELETE SET NULL,
	title TEXT NOT NULL DEFAULT '',
	description TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'ready',
	pinned INTEGER NOT NULL DEFAULT 0,
	workbench_id TEXT REFERENCES workbenches(id) ON DELETE SET NULL,
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	claimed_at TEXT,
	completed_at TEXT
);

CREATE TABLE IF NOT EXISTS conclaves (
	id TEXT PRIMARY KEY,
	commission_id TEXT NOT NULL REFERENCES commissions(id) ON DELETE CASCADE,
	title TEXT NOT NULL DEFAULT '',
	description TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'active',
	pinned INTEGER NOT NULL DEFAULT 0,
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	completed_at TEXT
);

CREATE TABLE IF NOT EXISTS investigations (
	id TEXT PRIMARY KEY,
	commission_id TEXT NOT NULL REFERENCES commissions(id) ON DELETE CASCADE,
	title TEXT NOT NULL DEFAULT '',
	description TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'active',
	pinned INTEGER NOT NULL DEFAULT 0,
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	completed_at TEXT
);

CREATE TABLE IF NOT EXISTS tomes (
	id TEXT PRIMARY KEY,
	commission_id TEXT NOT NULL REFERENCES commissions(id) ON DELETE CASCADE,
	conclave_id TEXT REFERENCES conclaves(id) ON DELETE SET NULL,
	title TEXT NOT NULL DEFAULT '',
	description TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'open',
	pinned INTEGER NOT NULL DEFAULT 0,
	workbench_id TEXT REFERENCES workbenches(id) ON DELETE SET NULL,
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	closed_at TEXT
);

CREATE TABLE IF NOT EXISTS plans (
	id TEXT PRIMARY KEY,
	commission_id TEXT NOT NULL REFERENCES commissions(id) ON DELETE CASCADE,
	shipment_id TEXT REFERENCES shipments(id) ON DELETE SET NULL,
	task_id TEXT REFERENCES tasks(id) ON DELETE SET NULL,
	title TEXT NOT NULL DEFAULT '',
	content TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'draft',
	pinned INTEGER NOT NULL DEFAULT 0,
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	approved_at TEXT
);

CREATE TABLE IF NOT EXISTS prs (
	id TEXT PRIMARY KEY,
	shipment_id TEXT NOT NULL UNIQUE REFERENCES shipments(id) ON DELETE CASCADE,
	repo_id TEXT REFERENCES repos(id) ON DELETE SET NULL,
	commission_id TEXT NOT NULL DEFAULT '',
	number INTEGER,
	title TEXT NOT NULL DEFAULT '',
	description TEXT NOT NULL DEFAULT '',
	branch TEXT NOT NULL DEFAULT '',
	target_branch TEXT NOT NULL DEFAULT 'main',
	url TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'open',
	pinned INTEGER NOT NULL DEFAULT 0,
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	approved_at TEXT,
	merged_at TEXT,
	closed_at TEXT
);

CREATE TABLE IF NOT EXISTS work_orders (
	id TEXT PRIMARY KEY,
	shipment_id TEXT NOT NULL UNIQUE REFERENCES shipments(id) ON DELETE CASCADE,
	outcome TEXT NOT NULL DEFAULT '',
	acceptance_criteria TEXT NOT NULL DEFAULT '[]',
	status TEXT NOT NULL DEFAULT 'draft',
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	completed_at TEXT
);

CREATE TABLE IF NOT EXISTS escalations (
	id TEXT PRIMARY KEY,
	plan_id TEXT NOT NULL REFERENCES plans(id) ON DELETE CASCADE,
	task_id TEXT REFERENCES tasks(id) ON DELETE SET NULL,
	reason TEXT NOT NULL DEFAULT '',
	routed_to TEXT NOT NULL DEFAULT 'ORC',
	status TEXT NOT NULL DEFAULT 'pending',
	resolution TEXT NOT NULL DEFAULT '',
	resolved_by TEXT NOT NULL DEFAULT '',
	created_at TEXT NOT NULL,
	updated_at TEXT NOT NULL,
	resolved_at TEXT
);

CREATE TABLE IF NOT EXISTS cascades (
	id TEXT PRIMARY KEY,
	action TEXT NOT NULL,
	source_type TEXT NOT NULL,
	source_id TEXT NOT NULL,
	target_type TEXT NOT NULL,
	target_id TEXT NOT NULL,
	params TEXT NOT NULL DEFAULT '{}',
	error TEXT NOT NULL DEFAULT '',
	status TEXT NOT NULL DEFAULT 'pending',
	attempts INTEGER NOT NULL DEFAULT 1,
	created_at TEXT NOT NULL,
	resolved_at TEXT
);

CREATE TABLE IF NOT EXISTS id_counters (
	prefix TEXT PRIMARY KEY,
	last_number INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_shipments_workbench ON shipments(workbench_id);
CREATE INDEX IF NOT EXISTS idx_tasks_shipment ON tasks(shipment_id);
CREATE INDEX IF NOT EXISTS idx_tasks_workbench ON tasks(workbench_id, status);
CREATE INDEX IF NOT EXISTS idx_groves_mission ON groves(mission_id);
CREATE INDEX IF NOT EXISTS idx_cascades_status ON cascades(status);
"""


def _to_db(value: Any) -> Any:
	if isinstance(value, bool):
		return int(value)
	if isinstance(value, Enum):
		return value.value
	if isinstance(value, (list, dict)):
		return json.dumps(value)
	return value


def _from_db(type_name: str, value: Any) -> Any:
	if type_name == "bool":
		return bool(value)
	if type_name.startswith("list"):
		return json.loads(value) if value else []
	if type_name.startswith("dict"):
		return json.loads(value) if value else {}
	return value


def _row_to(cls: type, row: sqlite3.Row) -> Any:
	return cls(**{f.name: _from_db(str(f.type), row[f.name]) for f in fields(cls)})


class Database:
	"""SQLite database for orc state."""

	def __init__(self, path: str | Path = ":memory:") -> None:
		db_path = str(path)
		if db_path != ":memory:":
			Path(db_path).parent.mkdir(parents=True, exist_ok=True)
			self.conn = sqlite3.connect(db_path)
		self.conn.row_factory = sqlite3.Row
		logger.debug("Opened database connection: %s", db_path)
		if db_path != ":memory:":
			self.conn.execute("PRAGMA journal_mode=WAL")
			self.conn.execute("PRAGMA busy_timeout=5000")
			logger.debug("WAL mode activated for %s", db_path)
		self.conn.execute("PRAGMA foreign_keys=ON")
		self._create_tables()

	@staticmethod
	def _validate_identifier(name: str) -> None:
		"""Validate a SQL identifier used in a dynamic statement."""
		if not name or len(name) > 64 or not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", name):
			raise ValueError(f"Invalid SQL identifier: {name!r}")

	@staticmethod
	def _columns(entity_type: EntityType) -> set[str]:
		return {f.name for f in fields(ENTITY_CLASSES[entity_type])}

	def _check_columns(self, entity_type: EntityType, names: Any) -> None:
		allowed = self._columns(entity_type)
		for name in names:
			self._validate_identifier(name)
			if name not in allowed:
				raise ValueError(f"{TABLES[entity_type]} has no column {name!r}")

	def _create_tables(self) -> None:
		self.conn.executescript(SCHEMA_SQL)

	def close(self) -> None:
		logger.debug("Closing database connection")
		self.conn.close()

	def __enter__(self) -> Database:
		return self

	def __exit__(self, *args: object) -> None:
		self.close()

	@contextmanager
	def transaction(self) -> Generator[sqlite3.Connection, None, None]:
		"""Context manager for explicit transactions.

		Commits on success, rolls back on exception.
		"""
		try:
			yield self.conn
		except Exception:
			self.conn.rollback()
			raise
		else:
			self.conn.commit()

	@contextmanager
	def _immediate(self) -> Generator[sqlite3.Connection, None, None]:
		"""Write transaction that takes the database lock before the first read."""
		if self.conn.in_transaction:
			self.conn.commit()
		self.conn.execute("BEGIN IMMEDIATE")
		try:
			yield self.conn
		except Exception:
			self.conn.rollback()
			raise
		else:
			self.conn.commit()

	# -- Generic entity access --

	def insert(self, entity: Any) -> None:
		entity_type = _TYPES_BY_CLASS[type(entity)]
		values = {k: _to_db(v) for k, v in asdict(entity).items()}
		cols = ", ".join(values)
		marks = ", ".join("?" for _ in values)
		try:
			self.conn.execute(
				f"INSERT INTO {TABLES[entity_type]} ({cols}) VALUES ({marks})",
				tuple(values.values()),
			)
			self._bump_counter(ID_PREFIXES[entity_type], entity.id)
		except sqlite3.IntegrityError as exc:
			self.conn.rollback()
			msg = str(exc)
			if "FOREIGN KEY" in msg:
				raise NotFoundError(f"{entity_type.label} {entity.id} references a missing parent") from exc
			raise ConflictError(f"{entity_type.label} {entity.id} conflicts with an existing record: {msg}") from exc
		self.conn.commit()
		logger.info("Inserted %s %s (status=%s)", entity_type.label, entity.id, entity.status)

	def get(self, entity_type: EntityType, entity_id: str) -> Any | None:
		row = self.conn.execute(
			f"SELECT * FROM {TABLES[entity_type]} WHERE id=?", (entity_id,),
		).fetchone()
		if row is None:
			return None
		return _row_to(ENTITY_CLASSES[entity_type], row)

	def exists(self, entity_type: EntityType, entity_id: str) -> bool:
		if not entity_id:
			return False
		row = self.conn.execute(
			f"SELECT 1 FROM {TABLES[entity_type]} WHERE id=?", (entity_id,),
		).fetchone()
		return row is not None

	def list_entities(self, entity_type: EntityType, **filters: Any) -> list[Any]:
		"""Rows matching every ``column=value`` filter; ``None`` matches NULL."""
		self._check_columns(entity_type, filters)
		clauses: list[str] = []
		params: list[Any] = []
		for column, value in filters.items():
			if value is None:
				clauses.append(f"{column} IS NULL")
			else:
				clauses.append(f"{column}=?")
				params.append(_to_db(value))
		where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
		rows = self.conn.execute(
			f"SELECT * FROM {TABLES[entity_type]}{where} ORDER BY created_at, id", params,
		).fetchall()
		cls = ENTITY_CLASSES[entity_type]
		return [_row_to(cls, r) for r in rows]

	def update_fields(self, entity_type: EntityType, entity_id: str, values: Mapping[str, Any]) -> None:
		if not values:
			return
		self._check_columns(entity_type, values)
		assignments = ", ".join(f"{k}=?" for k in values)
		self.conn.execute(
			f"UPDATE {TABLES[entity_type]} SET {assignments} WHERE id=?",
			(*[_to_db(v) for v in values.values()], entity_id),
		)
		self.conn.commit()
		logger.info("Updated %s %s (%s)", entity_type.label, entity_id, ", ".join(values))

	def update_status(
		self,
		entity_type: EntityType,
		entity_id: str,
		status: str,
		timestamps: Mapping[str, str] | None = None,
	) -> None:
		values: dict[str, Any] = {"status": status}
		values.update(timestamps or {})
		self._check_columns(entity_type, values)
		assignments = ", ".join(f"{k}=?" for k in values)
		cur = self.conn.execute(
			f"UPDATE {TABLES[entity_type]} SET {assignments} WHERE id=?",
			(*values.values(), entity_id),
		)
		self.conn.commit()
		if cur.rowcount == 0:
			raise NotFoundError(f"{entity_type.label} {entity_id} not found")
		logger.info("Updated %s %s status=%s", entity_type.label, entity_id, status)

	def set_pinned(self, entity_type: EntityType, entity_id: str, pinned: bool, updated_at: str) -> None:
		self.conn.execute(
			f"UPDATE {TABLES[entity_type]} SET pinned=?, updated_at=? WHERE id=?",
			(int(pinned), updated_at, entity_id),
		)
		self.conn.commit()
		logger.info("%s %s %s", "Pinned" if pinned else "Unpinned", entity_type.label, entity_id)

	def delete(self, entity_type: EntityType, entity_id: str) -> bool:
		"""Delete a row and drop pending cascades that target it."""
		with self.transaction() as conn:
			cur = conn.execute(f"DELETE FROM {TABLES[entity_type]} WHERE id=?", (entity_id,))
			dropped = conn.execute(
				"""UPDATE cascades SET status='dropped'
				WHERE target_type=? AND target_id=? AND status='pending'""",
				(entity_type.value, entity_id),
			).rowcount
		if cur.rowcount:
			logger.info("Deleted %s %s", entity_type.label, entity_id)
		if dropped:
			logger.warning("Dropped %d pending cascades for deleted %s %s", dropped, entity_type.label, entity_id)
		return cur.rowcount > 0

	# -- Ids --

	def _bump_counter(self, prefix: str, entity_id: str) -> None:
		"""Raise the high-water mark for ``prefix``; it never goes down.

		Runs inside the caller's insert so the row and the counter commit together.
		"""
		number = parse_id_number(entity_id, prefix)
		if number < 0:
			return
		self.conn.execute(
			"""INSERT INTO id_counters (prefix, last_number) VALUES (?, ?)
			ON CONFLICT(prefix) DO UPDATE SET last_number=MAX(last_number, excluded.last_number)""",
			(prefix, number),
		)

	def id_high_water(self, prefix: str) -> int:
		"""Highest number ever issued for ``prefix``, deleted rows included."""
		row = self.conn.execute("SELECT last_number FROM id_counters WHERE prefix=?", (prefix,)).fetchone()
		return int(row["last_number"]) if row else 0

	def get_next_id(self, entity_type: EntityType, ids: IdGenerator) -> str:
		prefix = ID_PREFIXES[entity_type]
		return ids.next_id(prefix, self.id_high_water(prefix))

	def count_children(self, entity_type: EntityType, column: str, parent_id: str) -> int:
		self._check_columns(entity_type, [column])
		row = self.conn.execute(
			f"SELECT COUNT(*) AS n FROM {TABLES[entity_type]} WHERE {column}=?", (parent_id,),
		).fetchone()
		return int(row["n"])

	# -- Tasks --

	def count_open_tasks(self, shipment_id: str) -> int:
		row = self.conn.execute(
			"SELECT COUNT(*) AS n FROM tasks WHERE shipment_id=? AND status != 'complete'",
			(shipment_id,),
		).fetchone()
		return int(row["n"])

	def count_active_tasks_for_workbench(self, workbench_id: str) -> int:
		row = self.conn.execute(
			"SELECT COUNT(*) AS n FROM tasks WHERE workbench_id=? AND status != 'complete'",
			(workbench_id,),
		).fetchone()
		return int(row["n"])

	def count_active_tasks_for_grove(self, grove_id: str) -> int:
		row = self.conn.execute(
			"""SELECT COUNT(*) AS n FROM tasks t
			JOIN groves g ON g.shipment_id = t.shipment_id
			WHERE g.id=? AND t.status != 'complete'""",
			(grove_id,),
		).fetchone()
		return int(row["n"])

	def assign_tasks_to_workbench(self, shipment_id: str, workbench_id: str, updated_at: str) -> int:
		cur = self.conn.execute(
			"""UPDATE tasks SET workbench_id=?, updated_at=?
			WHERE shipment_id=? AND status != 'complete'""",
			(workbench_id, updated_at, shipment_id),
		)
		self.conn.commit()
		logger.info("Assigned %d tasks of shipment %s to workbench %s", cur.rowcount, shipment_id, workbench_id)
		return cur.rowcount

	def list_ready_tasks(self, workbench_id: str) -> list[Task]:
		rows = self.conn.execute(
			"SELECT * FROM tasks WHERE workbench_id=? AND status='ready' ORDER BY created_at, id",
			(workbench_id,),
		).fetchall()
		return [_row_to(Task, r) for r in rows]

	# -- Assignment --

	def workbench_assigned_to_other(self, workbench_id: str, shipment_id: str) -> str:
		"""Id of another non-complete shipment holding the workbench, or ""."""
		row = self.conn.execute(
			"""SELECT id FROM shipments
			WHERE workbench_id=? AND id != ? AND status != 'complete'
			ORDER BY id LIMIT 1""",
			(workbench_id, shipment_id),
		).fetchone()
		return row["id"] if row else ""

	def grove_assigned_to_other(self, grove_id: str, shipment_id: str) -> str:
		row = self.conn.execute(
			"""SELECT s.id FROM groves g JOIN shipments s ON s.id = g.shipment_id
			WHERE g.id=? AND s.id != ? AND s.status != 'complete'""",
			(grove_id, shipment_id),
		).fetchone()
		return row["id"] if row else ""

	def assign_workbench(self, shipment_id: str, workbench_id: str, updated_at: str) -> str:
		"""Link a workbench to a shipment unless another shipment holds it.

		Check and write run in one IMMEDIATE transaction. Returns "" on
		success or the id of the shipment that already holds the workbench.
		"""
		with self._immediate() as conn:
			other = self.workbench_assigned_to_other(workbench_id, shipment_id)
			if other:
				return other
			conn.execute(
				"UPDATE shipments SET workbench_id=?, updated_at=? WHERE id=?",
				(workbench_id, updated_at, shipment_id),
			)
		logger.info("Assigned workbench %s to shipment %s", workbench_id, shipment_id)
		return ""

	def assign_grove(self, shipment_id: str, grove_id: str, updated_at: str) -> str:
		with self._immediate() as conn:
			other = self.grove_assigned_to_other(grove_id, shipment_id)
			if other:
				return other
			conn.execute(
				"UPDATE groves SET shipment_id=?, updated_at=? WHERE id=?",
				(shipment_id, updated_at, grove_id),
			)
		logger.info("Assigned grove %s to shipment %s", grove_id, shipment_id)
		return ""

	def update_grove_path(self, grove_id: str, path: str) -> None:
		cur = self.conn.execute("UPDATE groves SET worktree_path=? WHERE id=?", (path, grove_id))
		self.conn.commit()
		if cur.rowcount == 0:
			raise NotFoundError(f"grove {grove_id} not found")
		logger.info("Updated grove %s path=%s", grove_id, path)

	def list_groves(self, mission_id: str) -> list[Grove]:
		return self.list_entities(EntityType.GROVE, mission_id=mission_id)

	# -- Shipment relations --

	def shipment_has_pr(self, shipment_id: str) -> bool:
		return self.get_pr_for_shipment(shipment_id) is not None

	def get_pr_for_shipment(self, shipment_id: str) -> PullRequest | None:
		row = self.conn.execute("SELECT * FROM prs WHERE shipment_id=?", (shipment_id,)).fetchone()
		return _row_to(PullRequest, row) if row else None

	def shipment_has_work_order(self, shipment_id: str) -> bool:
		row = self.conn.execute("SELECT 1 FROM work_orders WHERE shipment_id=?", (shipment_id,)).fetchone()
		return row is not None

	def shipment_has_active_plan(self, shipment_id: str) -> bool:
		row = self.conn.execute(
			"SELECT 1 FROM plans WHERE shipment_id=? AND status IN ('draft', 'pending_review')",
			(shipment_id,),
		).fetchone()
		return row is not None

	def list_completable_shipments(self) -> list[Shipment]:
		"""Shipments whose PR merged but which never reached complete."""
		rows = self.conn.execute(
			"""SELECT s.* FROM shipments s JOIN prs p ON p.shipment_id = s.id
			WHERE p.status='merged' AND s.status != 'complete'
			ORDER BY s.id""",
		).fetchall()
		return [_row_to(Shipment, r) for r in rows]

	# -- Repos --

	def repo_has_active_prs(self, repo_id: str) -> int:
		marks = ", ".join("?" for _ in _OPEN_PR_STATUSES)
		row = self.conn.execute(
			f"SELECT COUNT(*) AS n FROM prs WHERE repo_id=? AND status IN ({marks})",
			(repo_id, *_OPEN_PR_STATUSES),
		).fetchone()
		return int(row["n"])

	def repo_name_taken(self, name: str, exclude_id: str = "") -> bool:
		row = self.conn.execute(
			"SELECT 1 FROM repos WHERE name=? AND id != ?", (name, exclude_id),
		).fetchone()
		return row is not None

	# -- Cascade markers --

	def insert_cascade(self, marker: CascadeMarker) -> None:
		self.conn.execute(
			"""INSERT INTO cascades
			(id, action, source_type, source_id, target_type, target_id,
			 params, error, status, attempts, created_at, resolved_at)
			VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
			(
				marker.id, marker.action, marker.source_type, marker.source_id,
				marker.target_type, marker.target_id, json.dumps(marker.params),
				marker.error, marker.status, marker.attempts, marker.created_at,
				marker.resolved_at,
			),
		)
		self._bump_counter(CASCADE_ID_PREFIX, marker.id)
		self.conn.commit()
		logger.info(
			"Recorded pending cascade %s: %s (%s %s -> %s %s)",
			marker.id, marker.action, marker.source_type, marker.source_id, marker.target_type, marker.target_id,
		)

	def update_cascade(self, marker: CascadeMarker) -> None:
		self.conn.execute(
			"""UPDATE cascades SET error=?, status=?, attempts=?, resolved_at=?
			WHERE id=?""",
			(marker.error, marker.status, marker.attempts, marker.resolved_at, marker.id),
		)
		self.conn.commit()

	def get_cascade(self, marker_id: str) -> CascadeMarker | None:
		row = self.conn.execute("SELECT * FROM cascades WHERE id=?", (marker_id,)).fetchone()
		return self._row_to_cascade(row) if row else None

	def get_pending_cascades(self) -> list[CascadeMarker]:
		rows = self.conn.execute(
			"SELECT * FROM cascades WHERE status='pending' ORDER BY created_at, id",
		).fetchall()
		return [self._row_to_cascade(r) for r in rows]

	def resolve_cascades(self, action: str, target_type: str, target_id: str, resolved_at: str) -> int:
		cur = self.conn.execute(
			"""UPDATE cascades SET status='resolved', resolved_at=?
			WHERE action=? AND target_type=? AND target_id=? AND status='pending'""",
			(resolved_at, action, target_type, target_id),
		)
		self.conn.commit()
		return cur.rowcount

	@staticmethod
	def _row_to_cascade(row: sqlite3.Row) -> CascadeMarker:
		return CascadeMarker(
			id=row["id"],
			action=row["action"],
			source_type=row["source_type"],
			source_id=row["source_id"],
			target_type=row["target_type"],
			target_id=row["target_id"],
			params=json.loads(row["params"]) if row["params"] else {},
			error=row["error"],
			status=row["status"],
			attempts=row["attempts"],
			created_at=row["created_at"],
			resolved_at=row["resolved_at"],
		)
