"""Pure planners that turn pre-resolved facts into ordered effects.

Nothing here touches the filesystem, the database, tmux or a clock. The
caller resolves path existence, session existence and timestamps first,
so the same input always yields the same plan.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from orc.effects import CompositeEffect, Effect, FileEffect, PersistEffect, SessionEffect
from orc.models import GroveConfig, GroveConfigBody

DEFAULT_SESSION_PREFIX = "orc-"
DIR_MODE = 0o755
CONFIG_MODE = 0o644


@dataclass(frozen=True)
class GrovePlanInput:
	id: str
	name: str
	current_path: str = ""
	repos: tuple[str, ...] = ()
	path_exists: bool = False


@dataclass(frozen=True)
class StartPlanInput:
	mission_id: str
	workspace_path: str
	groves: tuple[GrovePlanInput, ...] = ()
	session_exists: bool = False
	session_prefix: str = DEFAULT_SESSION_PREFIX


@dataclass(frozen=True)
class LaunchPlanInput:
	mission_id: str
	workspace_path: str
	groves: tuple[GrovePlanInput, ...] = ()
	created_at: str = ""
	create_session: bool = True
	session_exists: bool = False
	session_prefix: str = DEFAULT_SESSION_PREFIX


@dataclass(frozen=True)
class GroveCreatePlanInput:
	mission_id: str
	workspace_path: str
	grove: GrovePlanInput
	created_at: str = ""


@dataclass(frozen=True)
class GroveOpenPlanInput:
	mission_id: str
	workspace_path: str
	grove_name: str
	grove_path: str
	session_exists: bool = False
	session_prefix: str = DEFAULT_SESSION_PREFIX
	commands: tuple[str, ...] = ()


def session_name(mission_id: str, prefix: str = DEFAULT_SESSION_PREFIX) -> str:
	return f"{prefix}{mission_id}"


def groves_dir(workspace_path: str) -> str:
	return os.path.join(workspace_path, "groves")


def grove_path(workspace_path: str, grove_name: str) -> str:
	return os.path.join(groves_dir(workspace_path), grove_name)


def grove_config_json(grove: GrovePlanInput, mission_id: str, created_at: str) -> str:
	config = GroveConfig(
		grove=GroveConfigBody(
			grove_id=grove.id,
			mission_id=mission_id,
			name=grove.name,
			repos=list(grove.repos),
			created_at=created_at,
		),
	)
	return config.model_dump_json(indent=2)


def _grove_config_effects(
	grove: GrovePlanInput, mission_id: str, path: str, created_at: str,
) -> list[Effect]:
	orc_dir = os.path.join(path, ".orc")
	return [
		FileEffect(operation="mkdir", path=orc_dir, mode=DIR_MODE),
		FileEffect(
			operation="write",
			path=os.path.join(orc_dir, "config.json"),
			content=grove_config_json(grove, mission_id, created_at),
			mode=CONFIG_MODE,
		),
	]


def _grove_path_effects(grove: GrovePlanInput, desired: str) -> list[Effect]:
	if grove.current_path == desired:
		return []
	return [PersistEffect(entity="grove", operation="update", data={"id": grove.id, "path": desired})]


def _session_effects(
	mission_id: str,
	workspace_path: str,
	prefix: str,
	session_exists: bool,
	window_groves: list[tuple[str, str]],
) -> list[Effect]:
	name = session_name(mission_id, prefix)
	effects: list[Effect] = []
	if not session_exists:
		effects.append(SessionEffect(
			operation="new_session",
			session_name=name,
			working_dir=workspace_path,
		))
	for window, path in window_groves:
		effects.append(SessionEffect(
			operation="new_window",
			session_name=name,
			window_name=window,
			working_dir=path,
		))
	return effects


def plan_start(data: StartPlanInput) -> CompositeEffect:
	"""Directories for missing groves, then the mission's tmux session.

	Directory creation always precedes session creation. Groves that already
	existed on disk get a window each.
	"""
	effects: list[Effect] = []
	windows: list[tuple[str, str]] = []
	for grove in data.groves:
		path = grove.current_path or grove_path(data.workspace_path, grove.name)
		if grove.path_exists:
			windows.append((grove.name, path))
		else:
			effects.append(FileEffect(operation="mkdir", path=path, mode=DIR_MODE))
	effects.extend(_session_effects(
		data.mission_id, data.workspace_path, data.session_prefix, data.session_exists, windows,
	))
	return CompositeEffect(tuple(effects))


def plan_launch(data: LaunchPlanInput) -> CompositeEffect:
	"""Full mission workspace: directories, grove configs, path fixes, session."""
	files: list[Effect] = [
		FileEffect(operation="mkdir", path=data.workspace_path, mode=DIR_MODE),
		FileEffect(operation="mkdir", path=groves_dir(data.workspace_path), mode=DIR_MODE),
	]
	persists: list[Effect] = []
	windows: list[tuple[str, str]] = []
	for grove in data.groves:
		desired = grove_path(data.workspace_path, grove.name)
		files.extend(_grove_config_effects(grove, data.mission_id, desired, data.created_at))
		persists.extend(_grove_path_effects(grove, desired))
		if grove.path_exists:
			windows.append((grove.name, desired))

	sessions: list[Effect] = []
	if data.create_session:
		sessions = _session_effects(
			data.mission_id, data.workspace_path, data.session_prefix, data.session_exists, windows,
		)
	return CompositeEffect(tuple(files + persists + sessions))


def plan_grove_create(data: GroveCreatePlanInput) -> CompositeEffect:
	"""Grove directory, its .orc/config.json, then the recorded path."""
	grove = data.grove
	path = grove_path(data.workspace_path, grove.name)
	effects: list[Effect] = [FileEffect(operation="mkdir", path=path, mode=DIR_MODE)]
	effects.extend(_grove_config_effects(grove, data.mission_id, path, data.created_at))
	effects.extend(_grove_path_effects(grove, path))
	return CompositeEffect(tuple(effects))


def plan_grove_open(data: GroveOpenPlanInput) -> CompositeEffect:
	"""A window for the grove in its mission session, created first when missing.

	Each command is sent to the new window in order.
	"""
	name = session_name(data.mission_id, data.session_prefix)
	effects = _session_effects(
		data.mission_id, data.workspace_path, data.session_prefix, data.session_exists,
		[(data.grove_name, data.grove_path)],
	)
	for command in data.commands:
		effects.append(SessionEffect(
			operation="send_keys",
			session_name=name,
			window_name=data.grove_name,
			command=command,
		))
	return CompositeEffect(tuple(effects))
