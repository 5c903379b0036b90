"""tmux session driver used by the effect executor."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class TmuxError(RuntimeError):
	"""tmux is missing or a tmux command failed."""


@dataclass(frozen=True)
class TmuxSession:
	name: str
	working_dir: str
	created: bool = True


class TmuxDriver:
	"""Creates and inspects tmux sessions through the tmux binary."""

	def __init__(self, executable: str = "tmux", timeout: float = 10.0) -> None:
		self.executable = executable
		self.timeout = timeout

	def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
		cmd = [self.executable, *args]
		try:
			return subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
		except FileNotFoundError as exc:
			raise TmuxError(f"tmux executable not found: {self.executable}") from exc
		except subprocess.TimeoutExpired as exc:
			raise TmuxError(f"tmux {args[0]} timed out after {self.timeout}s") from exc

	def has_session(self, name: str) -> bool:
		return self._run("has-session", "-t", name).returncode == 0

	def new_session(self, name: str, working_dir: str = ".") -> TmuxSession:
		"""Create a detached session, or return the existing one with that name."""
		if self.has_session(name):
			logger.info("tmux session %s already exists, reusing it", name)
			return TmuxSession(name=name, working_dir=working_dir, created=False)
		result = self._run("new-session", "-d", "-s", name, "-c", working_dir)
		if result.returncode != 0:
			raise TmuxError(f"tmux new-session {name} failed: {result.stderr.strip()}")
		logger.info("Created tmux session %s in %s", name, working_dir)
		return TmuxSession(name=name, working_dir=working_dir)

	def kill_session(self, name: str) -> bool:
		result = self._run("kill-session", "-t", name)
		if result.returncode != 0:
			logger.debug("tmux kill-session %s: %s", name, result.stderr.strip())
			return False
		logger.info("Killed tmux session %s", name)
		return True

	def list_sessions(self) -> list[str]:
		result = self._run("list-sessions", "-F", "#{session_name}")
		if result.returncode != 0:
			# No server running means no sessions.
			return []
		return [line for line in result.stdout.splitlines() if line]
