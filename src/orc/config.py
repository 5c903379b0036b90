"""TOML configuration loader for orc."""

from __future__ import annotations

import logging
import os
import shutil
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = "orc.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class WorkspaceConfig:
	"""Where mission workspaces live and how their sessions are named."""

	root: str = "~/orc/missions"
	session_prefix: str = "orc-"

	@property
	def resolved_root(self) -> Path:
		return Path(os.path.expanduser(self.root))

	def mission_path(self, mission_id: str) -> Path:
		return self.resolved_root / mission_id


@dataclass
class DatabaseConfig:
	path: str = "~/.orc/orc.db"

	@property
	def resolved_path(self) -> str:
		if self.path == ":memory:":
			return self.path
		return os.path.expanduser(self.path)


@dataclass
class TmuxConfig:
	executable: str = "tmux"


@dataclass
class LoggingConfig:
	level: str = "INFO"

	@property
	def numeric_level(self) -> int:
		return getattr(logging, self.level.upper(), logging.INFO)


@dataclass
class TracingConfig:
	"""OpenTelemetry tracing settings."""

	enabled: bool = False
	service_name: str = "orc"
	exporter: str = "console"  # console/none


@dataclass
class OrcConfig:
	"""Top-level orc configuration."""

	workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
	database: DatabaseConfig = field(default_factory=DatabaseConfig)
	tmux: TmuxConfig = field(default_factory=TmuxConfig)
	logging: LoggingConfig = field(default_factory=LoggingConfig)
	tracing: TracingConfig = field(default_factory=TracingConfig)


def _build_workspace(data: dict[str, Any]) -> WorkspaceConfig:
	wc = WorkspaceConfig()
	if "root" in data:
		wc.root = str(data["root"])
	if "session_prefix" in data:
		wc.session_prefix = str(data["session_prefix"])
	return wc


def _build_database(data: dict[str, Any]) -> DatabaseConfig:
	dc = DatabaseConfig()
	if "path" in data:
		dc.path = str(data["path"])
	return dc


def _build_tmux(data: dict[str, Any]) -> TmuxConfig:
	tc = TmuxConfig()
	if "executable" in data:
		tc.executable = str(data["executable"])
	return tc


def _build_logging(data: dict[str, Any]) -> LoggingConfig:
	lc = LoggingConfig()
	if "level" in data:
		lc.level = str(data["level"]).upper()
	return lc


def _build_tracing(data: dict[str, Any]) -> TracingConfig:
	tc = TracingConfig()
	if "enabled" in data:
		tc.enabled = bool(data["enabled"])
	if "service_name" in data:
		tc.service_name = str(data["service_name"])
	if "exporter" in data:
		tc.exporter = str(data["exporter"])
	return tc


def load_config(path: str | Path) -> OrcConfig:
	"""Load an orc.toml config file.

	Raises:
		FileNotFoundError: If config file doesn't exist.
		tomllib.TOMLDecodeError: If config is invalid TOML.
	"""
	config_path = Path(path)
	if not config_path.exists():
		raise FileNotFoundError(f"Config file not found: {config_path}")

	with open(config_path, "rb") as f:
		data = tomllib.load(f)

	oc = OrcConfig()
	if "workspace" in data:
		oc.workspace = _build_workspace(data["workspace"])
	if "database" in data:
		oc.database = _build_database(data["database"])
	if "tmux" in data:
		oc.tmux = _build_tmux(data["tmux"])
	if "logging" in data:
		oc.logging = _build_logging(data["logging"])
	if "tracing" in data:
		oc.tracing = _build_tracing(data["tracing"])
	return oc


def validate_config(config: OrcConfig) -> list[tuple[str, str]]:
	"""Perform semantic validation of a loaded OrcConfig.

	Returns a list of (level, message) tuples where level is 'error' or 'warning'.
	"""
	issues: list[tuple[str, str]] = []

	if shutil.which(config.tmux.executable) is None:
		issues.append(("error", f"tmux executable not found on PATH: {config.tmux.executable}"))

	root = config.workspace.resolved_root
	if not root.exists():
		issues.append(("warning", f"workspace.root does not exist yet: {root}"))

	if config.logging.level.upper() not in _LOG_LEVELS:
		issues.append(("error", f"logging.level is not a valid level: {config.logging.level}"))

	if not config.workspace.session_prefix:
		issues.append(("warning", "workspace.session_prefix is empty; sessions are named by mission id only"))

	if config.tracing.exporter not in ("console", "none"):
		issues.append(("error", f"tracing.exporter must be 'console' or 'none': {config.tracing.exporter}"))

	return issues
