"""Actor identity detection: ORC outside a grove, IMP inside one."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from orc.models import ActorType, GroveConfig, Identity

logger = logging.getLogger(__name__)

GROVE_CONFIG_PATH = Path(".orc") / "config.json"

ORC = Identity(type=ActorType.ORC, full_id="ORC")


class IdentityProvider(Protocol):
	def current(self) -> Identity: ...


def find_grove_config(start: Path) -> Path | None:
	"""Nearest .orc/config.json at or above ``start``."""
	start = start.resolve()
	for directory in (start, *start.parents):
		candidate = directory / GROVE_CONFIG_PATH
		if candidate.is_file():
			return candidate
	return None


def load_grove_config(path: Path) -> GroveConfig | None:
	try:
		raw = path.read_text(encoding="utf-8")
	except (OSError, UnicodeDecodeError) as exc:
		logger.warning("Ignoring unreadable grove config %s: %s", path, exc)
		return None
	try:
		return GroveConfig.model_validate_json(raw)
	except ValidationError as exc:
		logger.warning("Ignoring invalid grove config %s: %s", path, exc)
		return None


def detect_identity(cwd: str | Path | None = None) -> Identity:
	"""IMP-<grove id> when ``cwd`` is inside a grove, otherwise ORC."""
	start = Path(cwd) if cwd is not None else Path.cwd()
	config_path = find_grove_config(start)
	if config_path is None:
		return ORC
	config = load_grove_config(config_path)
	if config is None:
		return ORC
	grove = config.grove
	return Identity(type=ActorType.IMP, full_id=f"IMP-{grove.grove_id}", mission_id=grove.mission_id)


def parse_actor_id(actor_id: str) -> Identity:
	"""Parse ``ORC`` or ``IMP-<grove id>``. The mission id is not recoverable."""
	if actor_id == "ORC":
		return ORC
	kind, sep, rest = actor_id.partition("-")
	if not sep or not rest:
		raise ValueError(f"invalid actor id: {actor_id} (expected ORC or IMP-GROVE-ID)")
	if kind != ActorType.IMP.value:
		raise ValueError(f"unknown actor type: {kind} (expected ORC or IMP)")
	return Identity(type=ActorType.IMP, full_id=actor_id)


class WorkingDirectoryIdentityProvider:
	"""Detects the actor from the working directory on every call."""

	def __init__(self, cwd: str | Path | None = None) -> None:
		self._cwd = cwd

	def current(self) -> Identity:
		return detect_identity(self._cwd)


class StaticIdentityProvider:
	def __init__(self, identity: Identity = ORC) -> None:
		self.identity = identity

	def current(self) -> Identity:
		return self.identity
