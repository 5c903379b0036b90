"""Pull request façade. Merging cascades into shipment completion."""

from __future__ import annotations

from dataclasses import dataclass

from orc.cascade import COMPLETE_SHIPMENT, CascadeOutcome
from orc.models import EntityType, PullRequest
from orc.services.base import LifecycleService
from orc.transitions import TransitionKind


@dataclass
class MergeResult:
	pr: PullRequest
	cascade: CascadeOutcome

	@property
	def shipment_completed(self) -> bool:
		return self.cascade.applied


class PullRequestService(LifecycleService):
	entity_type = EntityType.PR
	editable_fields = frozenset({"title", "description", "url", "number", "branch", "target_branch"})

	def create(
		self,
		shipment_id: str,
		title: str,
		repo_id: str | None = None,
		branch: str = "",
		target_branch: str = "main",
		description: str = "",
		url: str = "",
		number: int | None = None,
		draft: bool = False,
	) -> PullRequest:
		"""Open a PR for an active shipment (one per shipment)."""
		shipment = self.db.get(EntityType.SHIPMENT, shipment_id)
		pr = PullRequest(
			shipment_id=shipment_id,
			repo_id=repo_id,
			commission_id=shipment.commission_id if shipment else "",
			number=number,
			title=title,
			description=description,
			branch=branch,
			target_branch=target_branch,
			url=url,
		)
		return self._create(
			pr,
			status="draft" if draft else None,
			parent_id=shipment_id,
			parent_exists=shipment is not None,
			parent_status=shipment.status if shipment else "",
			linked_exists=self.db.shipment_has_pr(shipment_id),
			related_id=repo_id or "",
			related_exists=bool(repo_id) and self.db.exists(EntityType.REPO, repo_id),
		)

	def get_for_shipment(self, shipment_id: str) -> PullRequest | None:
		return self.db.get_pr_for_shipment(shipment_id)

	def open(self, pr_id: str) -> PullRequest:
		return self._transition(pr_id, TransitionKind.OPEN)

	def approve(self, pr_id: str) -> PullRequest:
		return self._transition(pr_id, TransitionKind.APPROVE)

	def close(self, pr_id: str) -> PullRequest:
		return self._transition(pr_id, TransitionKind.CLOSE)

	def merge(self, pr_id: str) -> MergeResult:
		"""Merge the PR, then try to complete its shipment.

		The merge stands even when the shipment cannot be completed; the
		failure is recorded as a pending cascade.
		"""
		pr = self._transition(pr_id, TransitionKind.MERGE)
		outcome = self.ctx.cascades.run(COMPLETE_SHIPMENT, EntityType.PR, pr.id, pr.shipment_id)
		return MergeResult(pr=pr, cascade=outcome)
