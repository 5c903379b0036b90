"""Effect executor: applies planned effects in order, stopping at the first failure."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import singledispatchmethod
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Protocol

from orc.effects import (
	CompositeEffect,
	Effect,
	FileEffect,
	LogEffect,
	NoEffect,
	PersistEffect,
	SessionEffect,
)
from orc.errors import EffectExecutionError, ProgrammingError
from orc.models import EntityType
from orc.tracing import OrcTracer

logger = logging.getLogger(__name__)

_EFFECT_TYPES = (FileEffect, PersistEffect, SessionEffect, LogEffect, NoEffect, CompositeEffect)


class EffectStore(Protocol):
	def update_grove_path(self, grove_id: str, path: str) -> None: ...

	def update_status(
		self, entity_type: EntityType, entity_id: str, status: str,
		timestamps: Mapping[str, str] | None = None,
	) -> None: ...


class SessionDriver(Protocol):
	def new_session(self, name: str, working_dir: str = ".") -> Any: ...

	def has_session(self, name: str) -> bool: ...


@dataclass
class ExecutionReport:
	applied: int = 0


class EffectExecutor:
	"""Runs effects sequentially. Effects already applied are never rolled back."""

	def __init__(self, store: EffectStore, sessions: SessionDriver, tracer: OrcTracer | None = None) -> None:
		self.store = store
		self.sessions = sessions
		self.tracer = tracer or OrcTracer.disabled()
		self._persist_handlers: dict[tuple[str, str], Callable[[Mapping[str, Any]], None]] = {
			("grove", "update"): self._persist_grove_update,
			("mission", "update_status"): self._persist_mission_status,
		}

	def execute(self, effects: Iterable[Effect] | Effect) -> ExecutionReport:
		if isinstance(effects, _EFFECT_TYPES):
			effects = [effects]
		report = ExecutionReport()
		with self.tracer.span("effects.execute") as span:
			for effect in effects:
				self._run(effect, report)
			span.set_attribute("orc.applied", report.applied)
		return report

	def _run(self, effect: Effect, report: ExecutionReport) -> None:
		try:
			self._apply(effect, report)
		except ProgrammingError:
			raise
		except EffectExecutionError as exc:
			exc.applied = report.applied
			raise
		except (OSError, RuntimeError) as exc:
			logger.error("Effect failed after %d applied: %s", report.applied, exc)
			raise EffectExecutionError(str(exc), applied=report.applied) from exc

	@singledispatchmethod
	def _apply(self, effect: object, report: ExecutionReport) -> None:
		raise ProgrammingError(f"Unknown effect type: {type(effect).__name__}")

	@_apply.register
	def _(self, effect: CompositeEffect, report: ExecutionReport) -> None:
		for child in effect.effects:
			self._run(child, report)

	@_apply.register
	def _(self, effect: FileEffect, report: ExecutionReport) -> None:
		path = Path(effect.path)
		if effect.operation == "mkdir":
			path.mkdir(mode=effect.mode, parents=True, exist_ok=True)
			logger.info("Created directory %s", path)
		elif effect.operation == "write":
			path.parent.mkdir(parents=True, exist_ok=True)
			path.write_text(effect.content)
			os.chmod(path, effect.mode)
			logger.info("Wrote %s (%d bytes)", path, len(effect.content))
		elif effect.operation in ("read", "exists"):
			logger.debug("Skipping planning-only file effect: %s %s", effect.operation, path)
		else:
			raise ProgrammingError(f"Unknown file operation: {effect.operation}")
		report.applied += 1

	@_apply.register
	def _(self, effect: PersistEffect, report: ExecutionReport) -> None:
		handler = self._persist_handlers.get((effect.entity, effect.operation))
		if handler is None:
			raise ProgrammingError(f"Unknown persist operation: {effect.entity}.{effect.operation}")
		handler(effect.data)
		report.applied += 1

	@_apply.register
	def _(self, effect: SessionEffect, report: ExecutionReport) -> None:
		if effect.operation == "new_session":
			self.sessions.new_session(effect.session_name, effect.working_dir or ".")
		elif effect.operation in ("new_window", "send_keys"):
			# Not implemented by the driver yet.
			logger.debug("Skipping tmux %s for %s", effect.operation, effect.session_name)
		else:
			raise ProgrammingError(f"Unknown session operation: {effect.operation}")
		report.applied += 1

	@_apply.register
	def _(self, effect: LogEffect, report: ExecutionReport) -> None:
		level = logging.getLevelName(effect.level.upper())
		if not isinstance(level, int):
			level = logging.INFO
		logger.log(level, effect.message, extra={"fields": dict(effect.fields)})
		report.applied += 1

	@_apply.register
	def _(self, effect: NoEffect, report: ExecutionReport) -> None:
		report.applied += 1

	def _persist_grove_update(self, data: Mapping[str, Any]) -> None:
		grove_id, path = data.get("id"), data.get("path")
		if not grove_id or not path:
			raise ProgrammingError(f"grove.update needs id and path, got {dict(data)}")
		self.store.update_grove_path(str(grove_id), str(path))

	def _persist_mission_status(self, data: Mapping[str, Any]) -> None:
		mission_id, status = data.get("id"), data.get("status")
		if not mission_id or not status:
			raise ProgrammingError(f"mission.update_status needs id and status, got {dict(data)}")
		self.store.update_status(EntityType.MISSION, str(mission_id), str(status))
