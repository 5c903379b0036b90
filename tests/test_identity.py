"""Tests for actor identity detection."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from orc.identity import (
	ORC,
	WorkingDirectoryIdentityProvider,
	detect_identity,
	load_grove_config,
	parse_actor_id,
)
from orc.models import ActorType
from orc.planner import GrovePlanInput, grove_config_json


def _write_grove_config(grove_dir: Path, grove_id: str = "GROVE-003", mission_id: str = "MISSION-001") -> None:
	orc_dir = grove_dir / ".orc"
	orc_dir.mkdir(parents=True)
	grove = GrovePlanInput(id=grove_id, name=grove_dir.name)
	(orc_dir / "config.json").write_text(grove_config_json(grove, mission_id, "2025-01-01T00:00:00+00:00"))


class TestDetectIdentity:
	def test_outside_grove_is_orc(self, tmp_path: Path) -> None:
		assert detect_identity(tmp_path) == ORC

	def test_inside_grove_is_imp(self, tmp_path: Path) -> None:
		grove_dir = tmp_path / "groves" / "api"
		_write_grove_config(grove_dir)
		identity = detect_identity(grove_dir)
		assert identity.type is ActorType.IMP
		assert identity.full_id == "IMP-GROVE-003"
		assert identity.mission_id == "MISSION-001"
		assert identity.is_imp

	def test_nested_directory_finds_grove(self, tmp_path: Path) -> None:
		grove_dir = tmp_path / "api"
		_write_grove_config(grove_dir)
		nested = grove_dir / "src" / "pkg"
		nested.mkdir(parents=True)
		assert detect_identity(nested).full_id == "IMP-GROVE-003"

	def test_invalid_config_falls_back_to_orc(self, tmp_path: Path) -> None:
		orc_dir = tmp_path / ".orc"
		orc_dir.mkdir()
		(orc_dir / "config.json").write_text('{"type": "grove"}')
		assert detect_identity(tmp_path) == ORC

	def test_undecodable_config_falls_back_to_orc(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
		orc_dir = tmp_path / ".orc"
		orc_dir.mkdir()
		(orc_dir / "config.json").write_bytes(b"\xff\xfe\x00grove")
		with caplog.at_level(logging.WARNING, logger="orc.identity"):
			assert detect_identity(tmp_path) == ORC
		assert "Ignoring unreadable grove config" in caplog.text

	def test_unreadable_config_loads_as_none(self, tmp_path: Path) -> None:
		assert load_grove_config(tmp_path) is None

	def test_provider_reads_directory(self, tmp_path: Path) -> None:
		_write_grove_config(tmp_path)
		assert WorkingDirectoryIdentityProvider(tmp_path).current().is_imp


class TestParseActorId:
	def test_orc(self) -> None:
		assert parse_actor_id("ORC") == ORC

	def test_imp(self) -> None:
		identity = parse_actor_id("IMP-GROVE-001")
		assert identity.type is ActorType.IMP
		assert identity.full_id == "IMP-GROVE-001"

	@pytest.mark.parametrize("raw", ["IMP", "IMP-", "BOT-1", ""])
	def test_invalid(self, raw: str) -> None:
		with pytest.raises(ValueError):
			parse_actor_id(raw)
