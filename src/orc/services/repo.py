"""Repo façade."""

from __future__ import annotations

from orc.models import EntityType, Repo
from orc.services.base import LifecycleService
from orc.transitions import TransitionKind


class RepoService(LifecycleService):
	entity_type = EntityType.REPO
	editable_fields = frozenset({"url", "default_branch"})

	def create(self, name: str, url: str = "", default_branch: str = "main") -> Repo:
		name = name.strip()
		return self._create(
			Repo(name=name, url=url, default_branch=default_branch),
			name=name,
			name_taken=bool(name) and self.db.repo_name_taken(name),
		)

	def get_by_name(self, name: str) -> Repo | None:
		repos = self.db.list_entities(EntityType.REPO, name=name)
		return repos[0] if repos else None

	def archive(self, repo_id: str) -> Repo:
		return self._transition(repo_id, TransitionKind.ARCHIVE)

	def restore(self, repo_id: str) -> Repo:
		return self._transition(repo_id, TransitionKind.RESTORE)

	def delete(self, repo_id: str, force: bool = False) -> None:
		# Open PRs block deletion even when forced.
		self._delete(repo_id, force=force, open_child_count=self.db.repo_has_active_prs(repo_id))
