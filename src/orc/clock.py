"""Injected time and id sources."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
	def now(self) -> datetime: ...


class SystemClock:
	"""Wall clock in UTC."""

	def now(self) -> datetime:
		return datetime.now(timezone.utc)


class FixedClock:
	"""Deterministic clock for tests and dry runs."""

	def __init__(self, at: datetime | None = None) -> None:
		self._at = at or datetime(2025, 1, 1, tzinfo=timezone.utc)

	def now(self) -> datetime:
		return self._at

	def set(self, at: datetime) -> None:
		self._at = at

	def advance(self, seconds: float) -> datetime:
		self._at = self._at + timedelta(seconds=seconds)
		return self._at


def to_iso(at: datetime) -> str:
	if at.tzinfo is None:
		at = at.replace(tzinfo=timezone.utc)
	return at.astimezone(timezone.utc).isoformat()


_ID_RE = re.compile(r"^(?P<prefix>[A-Z]+)-(?P<number>\d+)$")


def format_id(prefix: str, number: int) -> str:
	return f"{prefix}-{number:03d}"


def parse_id_number(entity_id: str, prefix: str) -> int:
	"""Return the numeric part of ``PREFIX-NNN`` or -1 when it does not match."""
	m = _ID_RE.match(entity_id)
	if m is None or m.group("prefix") != prefix:
		return -1
	return int(m.group("number"))


class IdGenerator(Protocol):
	def next_id(self, prefix: str, current_max: int) -> str: ...


class SequentialIdGenerator:
	"""Formats ``<PREFIX>-<NNN>`` ids one past the highest number ever issued for a prefix."""

	def next_id(self, prefix: str, current_max: int) -> str:
		return format_id(prefix, current_max + 1)
