"""Shared pytest fixtures and factory functions for orc tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from orc.clock import FixedClock
from orc.config import OrcConfig, WorkspaceConfig
from orc.db import Database
from orc.guards import GuardFacts
from orc.identity import ORC, StaticIdentityProvider
from orc.models import ActorType, Identity
from orc.services import Services, build_services
from orc.tmux import TmuxSession


class FakeSessions:
	"""In-memory stand-in for TmuxDriver that records every call."""

	def __init__(self, existing: tuple[str, ...] = (), fail: bool = False) -> None:
		self.sessions: set[str] = set(existing)
		self.created: list[tuple[str, str]] = []
		self.fail = fail

	def has_session(self, name: str) -> bool:
		return name in self.sessions

	def new_session(self, name: str, working_dir: str = ".") -> TmuxSession:
		if self.fail:
			raise RuntimeError(f"tmux new-session {name} failed")
		if name in self.sessions:
			return TmuxSession(name=name, working_dir=working_dir, created=False)
		self.sessions.add(name)
		self.created.append((name, working_dir))
		return TmuxSession(name=name, working_dir=working_dir)


@pytest.fixture()
def db() -> Database:
	"""In-memory Database with schema initialized."""
	return Database(":memory:")


@pytest.fixture()
def clock() -> FixedClock:
	return FixedClock()


@pytest.fixture()
def orc_actor() -> Identity:
	return ORC


@pytest.fixture()
def imp_actor() -> Identity:
	return Identity(type=ActorType.IMP, full_id="IMP-GROVE-001", mission_id="MISSION-001")


@pytest.fixture()
def sessions() -> FakeSessions:
	return FakeSessions()


@pytest.fixture()
def config(tmp_path: Path) -> OrcConfig:
	"""OrcConfig whose workspace root lives under tmp_path."""
	cfg = OrcConfig()
	cfg.workspace = WorkspaceConfig(root=str(tmp_path / "missions"))
	return cfg


@pytest.fixture()
def identity() -> StaticIdentityProvider:
	return StaticIdentityProvider(ORC)


@pytest.fixture()
def services(
	db: Database,
	config: OrcConfig,
	clock: FixedClock,
	identity: StaticIdentityProvider,
	sessions: FakeSessions,
) -> Services:
	return build_services(db, config=config, clock=clock, identity=identity, sessions=sessions)


def make_facts(**overrides: Any) -> GuardFacts:
	"""Create GuardFacts for an existing, unpinned entity, overridable via kwargs."""
	defaults: dict[str, Any] = {
		"entity_id": "X-001",
		"exists": True,
		"status": "active",
	}
	defaults.update(overrides)
	return GuardFacts(**defaults)


def make_shipment(services: Services, **overrides: Any) -> Any:
	"""Create a commission and a shipment under it."""
	commission_id = overrides.pop("commission_id", None)
	if commission_id is None:
		commission_id = services.commissions.create("Test commission").id
	defaults: dict[str, Any] = {"title": "Test shipment"}
	defaults.update(overrides)
	return services.shipments.create(commission_id, **defaults)


def make_task(services: Services, shipment: Any, **overrides: Any) -> Any:
	defaults: dict[str, Any] = {"title": "Test task", "shipment_id": shipment.id}
	defaults.update(overrides)
	return services.tasks.create(shipment.commission_id, **defaults)


def make_mission(services: Services, **overrides: Any) -> Any:
	defaults: dict[str, Any] = {"title": "Test mission"}
	defaults.update(overrides)
	return services.missions.create(**defaults)
