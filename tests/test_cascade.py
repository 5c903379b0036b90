"""Tests for the cascade coordinator."""

from __future__ import annotations

import sqlite3
from typing import Mapping

import pytest

from orc.cascade import CascadeCoordinator
from orc.clock import FixedClock, SequentialIdGenerator
from orc.db import Database
from orc.errors import NotFoundError, PreconditionFailedError, ProgrammingError
from orc.models import Commission, EntityType, Shipment

TS = "2025-01-01T00:00:00+00:00"


class FlakyHandler:
	"""Fails a fixed number of times, then succeeds."""

	def __init__(self, failures: int, exc: Exception | None = None) -> None:
		self.failures = failures
		self.exc = exc or PreconditionFailedError("shipment SHIP-001 has 1 open tasks")
		self.calls: list[tuple[str, dict]] = []

	def __call__(self, target_id: str, params: Mapping[str, str]) -> None:
		self.calls.append((target_id, dict(params)))
		if self.failures > 0:
			self.failures -= 1
			raise self.exc


@pytest.fixture()
def coordinator(db: Database, clock: FixedClock) -> CascadeCoordinator:
	return CascadeCoordinator(db, clock, SequentialIdGenerator())


@pytest.fixture(autouse=True)
def targets(db: Database) -> None:
	db.insert(Commission(id="COMM-001", title="c", created_at=TS, updated_at=TS))
	for sid in ("SHIP-001", "SHIP-002"):
		db.insert(Shipment(id=sid, commission_id="COMM-001", title=sid, created_at=TS, updated_at=TS))


class TestRun:
	def test_success_returns_applied(self, coordinator: CascadeCoordinator) -> None:
		handler = FlakyHandler(0)
		coordinator.register("complete_shipment", EntityType.SHIPMENT, handler)
		outcome = coordinator.run("complete_shipment", EntityType.PR, "PR-001", "SHIP-001", {"a": "b"})
		assert outcome.applied
		assert outcome.marker_id is None
		assert handler.calls == [("SHIP-001", {"a": "b"})]
		assert coordinator.pending() == []

	def test_failure_records_marker_and_does_not_raise(self, coordinator: CascadeCoordinator) -> None:
		coordinator.register("complete_shipment", EntityType.SHIPMENT, FlakyHandler(1))
		outcome = coordinator.run("complete_shipment", EntityType.PR, "PR-001", "SHIP-001")
		assert not outcome.applied
		assert "open tasks" in outcome.error
		[marker] = coordinator.pending()
		assert marker.id == outcome.marker_id
		assert marker.source_type == "pr"
		assert marker.source_id == "PR-001"
		assert marker.target_type == "shipment"
		assert marker.created_at == "2025-01-01T00:00:00+00:00"
		assert marker.id == "CASC-001"

	def test_database_errors_are_caught(self, coordinator: CascadeCoordinator) -> None:
		coordinator.register("x", EntityType.SHIPMENT, FlakyHandler(1, sqlite3.OperationalError("locked")))
		assert not coordinator.run("x", EntityType.PR, "PR-001", "SHIP-001").applied

	def test_unexpected_errors_propagate(self, coordinator: CascadeCoordinator) -> None:
		coordinator.register("x", EntityType.SHIPMENT, FlakyHandler(1, KeyError("workbench_id")))
		with pytest.raises(KeyError):
			coordinator.run("x", EntityType.PR, "PR-001", "SHIP-001")

	def test_unknown_action(self, coordinator: CascadeCoordinator) -> None:
		with pytest.raises(ProgrammingError):
			coordinator.run("nope", EntityType.PR, "PR-001", "SHIP-001")

	def test_success_resolves_earlier_markers(self, coordinator: CascadeCoordinator) -> None:
		coordinator.register("complete_shipment", EntityType.SHIPMENT, FlakyHandler(1))
		coordinator.run("complete_shipment", EntityType.PR, "PR-001", "SHIP-001")
		coordinator.run("complete_shipment", EntityType.PR, "PR-001", "SHIP-001")
		assert coordinator.pending() == []


class TestRetry:
	def test_retry_until_success(self, coordinator: CascadeCoordinator, clock: FixedClock) -> None:
		handler = FlakyHandler(2)
		coordinator.register("complete_shipment", EntityType.SHIPMENT, handler)
		marker_id = coordinator.run("complete_shipment", EntityType.PR, "PR-001", "SHIP-001", {"k": "v"}).marker_id

		again = coordinator.retry(marker_id)
		assert not again.applied
		assert coordinator.pending()[0].attempts == 2

		clock.advance(60)
		assert coordinator.retry(marker_id).applied
		assert coordinator.pending() == []
		assert handler.calls[-1] == ("SHIP-001", {"k": "v"})

	def test_retry_resolved_marker_is_noop(self, coordinator: CascadeCoordinator) -> None:
		handler = FlakyHandler(1)
		coordinator.register("complete_shipment", EntityType.SHIPMENT, handler)
		marker_id = coordinator.run("complete_shipment", EntityType.PR, "PR-001", "SHIP-001").marker_id
		coordinator.retry(marker_id)
		calls = len(handler.calls)
		assert coordinator.retry(marker_id).applied
		assert len(handler.calls) == calls

	def test_retry_missing_marker(self, coordinator: CascadeCoordinator) -> None:
		with pytest.raises(NotFoundError):
			coordinator.retry("missing")

	def test_reconcile_retries_all(self, coordinator: CascadeCoordinator) -> None:
		coordinator.register("complete_shipment", EntityType.SHIPMENT, FlakyHandler(2))
		coordinator.run("complete_shipment", EntityType.PR, "PR-001", "SHIP-001")
		coordinator.run("complete_shipment", EntityType.PR, "PR-002", "SHIP-002")
		outcomes = coordinator.reconcile()
		assert [o.applied for o in outcomes] == [True, True]
		assert coordinator.pending() == []

	def test_marker_ids_are_sequential(self, coordinator: CascadeCoordinator) -> None:
		coordinator.register("complete_shipment", EntityType.SHIPMENT, FlakyHandler(2))
		coordinator.run("complete_shipment", EntityType.PR, "PR-001", "SHIP-001")
		coordinator.run("complete_shipment", EntityType.PR, "PR-002", "SHIP-002")
		assert [m.id for m in coordinator.pending()] == ["CASC-001", "CASC-002"]

	def test_missing_target_is_dropped(self, coordinator: CascadeCoordinator, db: Database) -> None:
		handler = FlakyHandler(1)
		coordinator.register("complete_shipment", EntityType.SHIPMENT, handler)
		marker_id = coordinator.run("complete_shipment", EntityType.PR, "PR-001", "SHIP-001").marker_id
		with db.transaction() as conn:
			conn.execute("DELETE FROM shipments WHERE id='SHIP-001'")

		outcome = coordinator.retry(marker_id)
		assert not outcome.applied
		assert outcome.error == "shipment SHIP-001 no longer exists"
		assert len(handler.calls) == 1
		assert coordinator.pending() == []
		assert db.get_cascade(marker_id).status == "dropped"
