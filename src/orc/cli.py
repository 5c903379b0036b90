"""CLI entry point for orc."""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generator

from orc.config import DEFAULT_CONFIG_PATH, OrcConfig, load_config, validate_config
from orc.db import Database
from orc.effects import describe, flatten
from orc.errors import OrcError
from orc.identity import StaticIdentityProvider, parse_actor_id
from orc.planner import session_name
from orc.services import Services, build_services
from orc.tmux import TmuxDriver, TmuxError

logger = logging.getLogger(__name__)


def _add_id(parser: argparse.ArgumentParser, name: str = "id") -> None:
	parser.add_argument(name, help="Entity id, e.g. SHIP-001")


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="orc",
		description="orc - guarded lifecycle tracking and mission provisioning",
	)
	parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Config file path")
	parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
	parser.add_argument(
		"--actor", type=parse_actor_id, default=None,
		help="Act as ORC or IMP-<grove id> instead of detecting from the working directory",
	)
	sub = parser.add_subparsers(dest="command")

	# orc commission
	commission = sub.add_parser("commission", help="Manage commissions")
	cs = commission.add_subparsers(dest="action", required=True)
	c = cs.add_parser("create", help="Create a commission")
	c.add_argument("title")
	c.add_argument("--description", default="")
	for action in ("start", "complete", "archive", "pin", "unpin"):
		_add_id(cs.add_parser(action, help=f"{action.capitalize()} a commission"))

	# orc mission
	mission = sub.add_parser("mission", help="Manage missions")
	ms = mission.add_subparsers(dest="action", required=True)
	c = ms.add_parser("create", help="Create a mission")
	c.add_argument("title")
	c.add_argument("--description", default="")
	c.add_argument("--commission", default=None, help="Parent commission id")
	c.add_argument("--workspace", default="", help="Workspace path (default: <workspace.root>/<id>)")
	_add_id(ms.add_parser("start", help="Create grove directories and the tmux session"))
	launch = ms.add_parser("launch", help="Lay out the full workspace, grove configs included")
	_add_id(launch)
	launch.add_argument("--no-tmux", action="store_true", help="Skip session creation")
	_add_id(ms.add_parser("plan", help="Print the start plan without executing it"))
	for action in ("complete", "archive", "pin", "unpin"):
		_add_id(ms.add_parser(action, help=f"{action.capitalize()} a mission"))
	d = ms.add_parser("delete", help="Delete a mission")
	_add_id(d)
	d.add_argument("--force", action="store_true")

	# orc grove
	grove = sub.add_parser("grove", help="Manage groves")
	gs = grove.add_subparsers(dest="action", required=True)
	c = gs.add_parser("create", help="Create a grove in a mission")
	c.add_argument("mission", help="Parent mission id")
	c.add_argument("name")
	c.add_argument("--repo", action="append", default=[], help="Repository name (repeatable)")
	c.add_argument("--provision", action="store_true", help="Also create the directory and config")
	_add_id(gs.add_parser("provision", help="Create the grove directory and .orc/config.json"))
	o = gs.add_parser("open", help="Open a window for the grove in its mission session")
	_add_id(o)
	o.add_argument("--run", action="append", default=[], help="Command to send to the window (repeatable)")
	_add_id(gs.add_parser("archive", help="Archive a grove"))
	d = gs.add_parser("delete", help="Delete a grove")
	_add_id(d)
	d.add_argument("--force", action="store_true")

	# orc shipment
	shipment = sub.add_parser("shipment", help="Manage shipments")
	ss = shipment.add_subparsers(dest="action", required=True)
	c = ss.add_parser("create", help="Create a shipment")
	c.add_argument("commission", help="Parent commission id")
	c.add_argument("title")
	c.add_argument("--description", default="")
	c.add_argument("--mission", default=None)
	c = ss.add_parser("complete", help="Complete a shipment")
	_add_id(c)
	c.add_argument("--force", action="store_true", help="Complete despite open tasks")
	for action in ("pause", "resume", "pin", "unpin"):
		_add_id(ss.add_parser(action, help=f"{action.capitalize()} a shipment"))
	a = ss.add_parser("assign", help="Assign a shipment to a workbench")
	_add_id(a)
	a.add_argument("workbench")
	ss.add_parser("completable", help="List shipments with a merged PR that are not complete")

	# orc task
	task = sub.add_parser("task", help="Manage tasks")
	ts = task.add_subparsers(dest="action", required=True)
	c = ts.add_parser("create", help="Create a task")
	c.add_argument("commission", help="Parent commission id")
	c.add_argument("title")
	c.add_argument("--description", default="")
	c.add_argument("--shipment", default=None)
	c = ts.add_parser("claim", help="Claim a ready task")
	_add_id(c)
	c.add_argument("--workbench", default=None)
	_add_id(ts.add_parser("complete", help="Complete a task"))
	d = ts.add_parser("discover", help="List ready tasks for a workbench")
	d.add_argument("workbench")

	# orc pr
	pr = sub.add_parser("pr", help="Manage pull requests")
	ps = pr.add_subparsers(dest="action", required=True)
	c = ps.add_parser("create", help="Create the PR for a shipment")
	c.add_argument("shipment")
	c.add_argument("title")
	c.add_argument("--repo", default=None)
	c.add_argument("--branch", default="")
	c.add_argument("--target", default="main")
	c.add_argument("--url", default="")
	c.add_argument("--draft", action="store_true")
	for action in ("open", "approve", "merge", "close"):
		_add_id(ps.add_parser(action, help=f"{action.capitalize()} a PR"))

	# orc conclave
	conclave = sub.add_parser("conclave", help="Manage conclaves")
	vs = conclave.add_subparsers(dest="action", required=True)
	c = vs.add_parser("create", help="Create a conclave")
	c.add_argument("commission")
	c.add_argument("title")
	c.add_argument("--description", default="")
	for action in ("complete", "pin", "unpin"):
		_add_id(vs.add_parser(action, help=f"{action.capitalize()} a conclave"))

	# orc cascade
	cascade = sub.add_parser("cascade", help="Inspect and retry failed cascades")
	xs = cascade.add_subparsers(dest="action", required=True)
	xs.add_parser("list", help="List pending cascades")
	xs.add_parser("reconcile", help="Retry every pending cascade")

	# orc session
	session = sub.add_parser("session", help="Inspect and stop mission tmux sessions")
	ses = session.add_subparsers(dest="action", required=True)
	ses.add_parser("list", help="List mission sessions")
	k = ses.add_parser("kill", help="Kill a mission's session")
	k.add_argument("mission", help="Mission id")

	# orc validate-config
	sub.add_parser("validate-config", help="Validate config file semantically")

	return parser


def _load(args: argparse.Namespace) -> OrcConfig:
	path = Path(args.config)
	if not path.exists() and args.config == DEFAULT_CONFIG_PATH:
		logger.debug("No %s found, using defaults", DEFAULT_CONFIG_PATH)
		return OrcConfig()
	return load_config(path)


@contextmanager
def _services(args: argparse.Namespace) -> Generator[Services, None, None]:
	config = _load(args)
	with Database(config.database.resolved_path) as db:
		identity = StaticIdentityProvider(args.actor) if args.actor is not None else None
		services = build_services(db, config=config, identity=identity)
		try:
			yield services
		finally:
			services.ctx.tracer.shutdown()


def _show(entity: Any) -> None:
	print(f"{entity.id}: {getattr(entity, 'title', '') or getattr(entity, 'name', '')} [{entity.status}]")


def _simple(services_attr: str, args: argparse.Namespace, s: Services) -> int:
	service = getattr(s, services_attr)
	entity = getattr(service, args.action)(args.id)
	_show(entity)
	return 0


def cmd_commission(args: argparse.Namespace) -> int:
	with _services(args) as s:
		if args.action == "create":
			commission = s.commissions.create(args.title, args.description)
			print(f"Created commission {commission.id}")
			return 0
		return _simple("commissions", args, s)


def cmd_mission(args: argparse.Namespace) -> int:
	with _services(args) as s:
		if args.action == "create":
			mission = s.missions.create(
				args.title, args.description, commission_id=args.commission, workspace_path=args.workspace,
			)
			print(f"Created mission {mission.id} (workspace {mission.workspace_path})")
			return 0
		if args.action == "plan":
			for effect in flatten(s.missions.plan_start(args.id)):
				print(describe(effect))
			return 0
		if args.action in ("start", "launch"):
			if args.action == "start":
				result = s.missions.start(args.id)
			else:
				result = s.missions.launch(args.id, create_session=not args.no_tmux)
			print(f"Mission {result.mission.id} is {result.mission.status} ({result.report.applied} effects applied)")
			print(f"Attach with: tmux attach -t {s.missions.session_name(result.mission.id)}")
			return 0
		if args.action == "delete":
			s.missions.delete(args.id, force=args.force)
			print(f"Deleted mission {args.id}")
			return 0
		return _simple("missions", args, s)


def cmd_grove(args: argparse.Namespace) -> int:
	with _services(args) as s:
		if args.action == "create":
			grove = s.groves.create(args.mission, args.name, repos=args.repo, provision=args.provision)
			print(f"Created grove {grove.id} ({grove.worktree_path})")
			return 0
		if args.action in ("provision", "open"):
			if args.action == "provision":
				result = s.groves.provision(args.id)
			else:
				result = s.groves.open(args.id, commands=args.run)
			print(f"Grove {result.grove.id} at {result.grove.worktree_path} ({result.report.applied} effects applied)")
			return 0
		if args.action == "delete":
			s.groves.delete(args.id, force=args.force)
			print(f"Deleted grove {args.id}")
			return 0
		return _simple("groves", args, s)


def cmd_shipment(args: argparse.Namespace) -> int:
	with _services(args) as s:
		if args.action == "create":
			shipment = s.shipments.create(
				args.commission, args.title, args.description, mission_id=args.mission,
			)
			print(f"Created shipment {shipment.id}")
			return 0
		if args.action == "complete":
			_show(s.shipments.complete(args.id, force=args.force))
			return 0
		if args.action == "assign":
			result = s.shipments.assign_workbench(args.id, args.workbench)
			print(f"Assigned {result.shipment.id} to workbench {args.workbench}")
			if result.cascade is not None and not result.cascade.applied:
				print(f"Warning: tasks were not reassigned: {result.cascade.error}")
			return 0
		if args.action == "completable":
			for shipment in s.shipments.list_completable():
				_show(shipment)
			return 0
		return _simple("shipments", args, s)


def cmd_task(args: argparse.Namespace) -> int:
	with _services(args) as s:
		if args.action == "create":
			task = s.tasks.create(args.commission, args.title, args.description, shipment_id=args.shipment)
			print(f"Created task {task.id}")
			return 0
		if args.action == "claim":
			_show(s.tasks.claim(args.id, workbench_id=args.workbench))
			return 0
		if args.action == "discover":
			for task in s.tasks.discover(args.workbench):
				_show(task)
			return 0
		return _simple("tasks", args, s)


def cmd_pr(args: argparse.Namespace) -> int:
	with _services(args) as s:
		if args.action == "create":
			pr = s.prs.create(
				args.shipment, args.title, repo_id=args.repo, branch=args.branch,
				target_branch=args.target, url=args.url, draft=args.draft,
			)
			print(f"Created PR {pr.id} [{pr.status}]")
			return 0
		if args.action == "merge":
			result = s.prs.merge(args.id)
			_show(result.pr)
			if result.shipment_completed:
				print(f"Shipment {result.pr.shipment_id} completed")
			else:
				print(f"Warning: shipment {result.pr.shipment_id} was not completed: {result.cascade.error}")
			return 0
		return _simple("prs", args, s)


def cmd_conclave(args: argparse.Namespace) -> int:
	with _services(args) as s:
		if args.action == "create":
			conclave = s.conclaves.create(args.commission, args.title, args.description)
			print(f"Created conclave {conclave.id}")
			return 0
		return _simple("conclaves", args, s)


def cmd_cascade(args: argparse.Namespace) -> int:
	with _services(args) as s:
		if args.action == "list":
			pending = s.cascades.pending()
			for marker in pending:
				print(
					f"{marker.id}: {marker.action} {marker.source_type} {marker.source_id}"
					f" -> {marker.target_type} {marker.target_id} ({marker.error})",
				)
			if not pending:
				print("No pending cascades")
			return 0
		outcomes = s.cascades.reconcile()
		failed = [o for o in outcomes if not o.applied]
		print(f"Reconciled {len(outcomes) - len(failed)} of {len(outcomes)} pending cascades")
		return 1 if failed else 0


def cmd_session(args: argparse.Namespace) -> int:
	config = _load(args)
	driver = TmuxDriver(config.tmux.executable)
	prefix = config.workspace.session_prefix
	if args.action == "list":
		names = [n for n in driver.list_sessions() if n.startswith(prefix)]
		for name in names:
			print(name)
		if not names:
			print("No mission sessions")
		return 0
	name = session_name(args.mission, prefix)
	if not driver.kill_session(name):
		print(f"No session {name}")
		return 1
	print(f"Killed session {name}")
	return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
	"""Validate config file semantically."""
	config = load_config(args.config)
	issues = validate_config(config)

	errors = [(lvl, msg) for lvl, msg in issues if lvl == "error"]
	warnings = [(lvl, msg) for lvl, msg in issues if lvl == "warning"]

	for level, msg in issues:
		print(f"[{level.upper()}] {msg}")

	if not issues:
		print("Config OK")

	print(f"\n{len(errors)} error(s), {len(warnings)} warning(s)")
	return 1 if errors else 0


COMMANDS: dict[str, Callable[[argparse.Namespace], int]] = {
	"commission": cmd_commission,
	"mission": cmd_mission,
	"grove": cmd_grove,
	"shipment": cmd_shipment,
	"task": cmd_task,
	"pr": cmd_pr,
	"conclave": cmd_conclave,
	"cascade": cmd_cascade,
	"session": cmd_session,
	"validate-config": cmd_validate_config,
}


def main(argv: list[str] | None = None) -> int:
	parser = build_parser()
	args = parser.parse_args(argv)

	level = logging.DEBUG if args.verbose else logging.INFO
	if not args.verbose and Path(args.config).exists():
		try:
			level = load_config(args.config).logging.numeric_level
		except (OSError, ValueError) as e:
			print(f"Error: {e}")
			return 1
	logging.basicConfig(
		level=level,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
		datefmt="%H:%M:%S",
		force=True,
	)

	if args.command is None:
		parser.print_help()
		return 0

	handler = COMMANDS.get(args.command)
	if handler is None:
		print(f"Unknown command: {args.command}")
		return 1

	try:
		return handler(args)
	except OrcError as e:
		print(f"Error: {e}")
		return 1
	except TmuxError as e:
		print(f"Error: {e}")
		return 1
	except FileNotFoundError as e:
		print(f"Error: {e}")
		return 1


if __name__ == "__main__":
	sys.exit(main())
