"""Declarative effect values produced by the planner and consumed by the executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Literal, Mapping, Union

FileOperation = Literal["mkdir", "write", "read", "exists"]
SessionOperation = Literal["new_session", "new_window", "send_keys"]


@dataclass(frozen=True)
class FileEffect:
	operation: FileOperation
	path: str
	content: str = ""
	mode: int = 0o755
	kind: Literal["file"] = field(default="file", init=False)


@dataclass(frozen=True)
class PersistEffect:
	"""A state mutation to apply once the preceding effects have landed."""

	entity: str
	operation: str
	data: Mapping[str, Any] = field(default_factory=dict)
	kind: Literal["persist"] = field(default="persist", init=False)


@dataclass(frozen=True)
class SessionEffect:
	operation: SessionOperation
	session_name: str
	window_name: str = ""
	working_dir: str = ""
	command: str = ""
	kind: Literal["session"] = field(default="session", init=False)


@dataclass(frozen=True)
class LogEffect:
	message: str
	level: str = "info"
	fields: Mapping[str, Any] = field(default_factory=dict)
	kind: Literal["log"] = field(default="log", init=False)


@dataclass(frozen=True)
class NoEffect:
	kind: Literal["none"] = field(default="none", init=False)


@dataclass(frozen=True)
class CompositeEffect:
	effects: tuple[Effect, ...] = ()
	kind: Literal["composite"] = field(default="composite", init=False)

	def __len__(self) -> int:
		return len(self.effects)

	def __iter__(self) -> Iterator[Effect]:
		return iter(self.effects)


Effect = Union[FileEffect, PersistEffect, SessionEffect, LogEffect, NoEffect, CompositeEffect]


def flatten(effects: Iterable[Effect]) -> list[Effect]:
	"""Leaf effects in execution order (composites expanded depth-first)."""
	out: list[Effect] = []
	for effect in effects:
		if isinstance(effect, CompositeEffect):
			out.extend(flatten(effect.effects))
		else:
			out.append(effect)
	return out


def describe(effect: Effect) -> str:
	if isinstance(effect, FileEffect):
		if effect.operation == "mkdir":
			return f"mkdir {effect.path} (mode {effect.mode:o})"
		if effect.operation == "write":
			return f"write {effect.path} ({len(effect.content)} bytes, mode {effect.mode:o})"
		return f"{effect.operation} {effect.path}"
	if isinstance(effect, PersistEffect):
		data = ", ".join(f"{k}={v}" for k, v in effect.data.items())
		return f"persist {effect.entity}.{effect.operation} {data}".rstrip()
	if isinstance(effect, SessionEffect):
		target = effect.session_name
		if effect.window_name:
			target += f":{effect.window_name}"
		line = f"tmux {effect.operation} {target}"
		if effect.working_dir:
			line += f" in {effect.working_dir}"
		if effect.command:
			line += f" -> {effect.command}"
		return line
	if isinstance(effect, LogEffect):
		return f"log[{effect.level}] {effect.message}"
	if isinstance(effect, CompositeEffect):
		return f"composite ({len(effect.effects)} effects)"
	return "no-op"
