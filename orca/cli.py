#!/usr/bin/env python3
"""orca CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from orca.commands import build as cmd_build_module
from orca.commands import catalog as cmd_catalog_module
from orca.commands import graph as cmd_graph_module
from orca.commands import move as cmd_move_module
from orca.commands import review as cmd_review_module
from orca.commands import stack as cmd_stack_module
from orca.commands import status as cmd_status_module
from orca.lib.config import load_config
from orca.lib.constants import CONFIG_FILE, EXIT_CONFIG_ERROR, EXIT_ERROR
from orca.lib.errors import ConfigError, OrcaError
from orca.workflow.state_machine import InvalidTransition

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_project_config(args):
    """Load the project config from --project (default: current directory)."""
    root = Path(args.project).resolve() if args.project else Path.cwd()
    return load_config(root, args.config)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def run_command(func):
    """Adapt a `cmd_x(args, config)` module function to `args.func(args)`."""
    def handler(args):
        return func(args, get_project_config(args))
    handler.__name__ = func.__name__
    handler.__doc__ = func.__doc__
    return handler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='orca', description='Orchestrate droids over sprint shards')
    parser.add_argument('--project', '-C', help='Project root (default: current directory)')
    parser.add_argument('--config', default=CONFIG_FILE, help=f'Config file relative to the project root (default: {CONFIG_FILE})')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # orca status
    p_status = subparsers.add_parser('status', help='Show sprint column counts and phase')
    p_status.add_argument('sprint', nargs='?', help='Sprint name (all sprints if omitted)')
    p_status.set_defaults(func=run_command(cmd_status_module.cmd_status))

    # orca sprints
    p_sprints = subparsers.add_parser('sprints', help='List sprints')
    p_sprints.set_defaults(func=run_command(cmd_status_module.cmd_sprints))

    # orca graph
    p_graph = subparsers.add_parser('graph', help='Show the dependency graph')
    p_graph.add_argument('sprint', help='Sprint name')
    p_graph.set_defaults(func=run_command(cmd_graph_module.cmd_graph))

    # orca ready
    p_ready = subparsers.add_parser('ready', help='List shards ready to build')
    p_ready.add_argument('sprint', help='Sprint name')
    p_ready.set_defaults(func=run_command(cmd_graph_module.cmd_ready))

    # orca build
    p_build = subparsers.add_parser('build', help='Build ready shards with droids')
    p_build.add_argument('sprint', help='Sprint name')
    p_build.add_argument('--shard', '-s', help='Build only this shard')
    p_build.set_defaults(func=run_command(cmd_build_module.cmd_build))

    # orca review
    p_review = subparsers.add_parser('review', help='Merge and verify Ready for Review shards')
    p_review.add_argument('sprint', help='Sprint name')
    p_review.set_defaults(func=run_command(cmd_review_module.cmd_review))

    # orca finalize
    p_finalize = subparsers.add_parser('finalize', help='Promote the review branch to the sprint branch')
    p_finalize.add_argument('sprint', help='Sprint name')
    p_finalize.set_defaults(func=run_command(cmd_review_module.cmd_finalize))

    # orca rebase-stack
    p_rebase = subparsers.add_parser('rebase-stack', help='Rebase shard branches onto the sprint branch')
    p_rebase.add_argument('sprint', help='Sprint name')
    p_rebase.set_defaults(func=run_command(cmd_stack_module.cmd_rebase_stack))

    # orca move
    p_move = subparsers.add_parser('move', help='Move a shard to another column')
    p_move.add_argument('sprint', help='Sprint name')
    p_move.add_argument('shard', help='Shard ID')
    p_move.add_argument('column', help='Target column (e.g. "Ready for UAT" or ready_for_uat)')
    p_move.add_argument('--reason', '-r', help='Reason, for the log')
    p_move.add_argument('--force', action='store_true', help='Skip transition validation')
    p_move.set_defaults(func=run_command(cmd_move_module.cmd_move))

    # orca kickback
    p_kickback = subparsers.add_parser('kickback', help='Send a shard back one phase')
    p_kickback.add_argument('sprint', help='Sprint name')
    p_kickback.add_argument('shard', help='Shard ID')
    p_kickback.add_argument('--reason', '-r', help='Reason, for the log')
    p_kickback.set_defaults(func=run_command(cmd_move_module.cmd_kickback))

    # orca models
    p_models = subparsers.add_parser('models', help='List available models')
    p_models.set_defaults(func=run_command(cmd_catalog_module.cmd_models))

    # orca droids
    p_droids = subparsers.add_parser('droids', help='List installed droids')
    p_droids.set_defaults(func=run_command(cmd_catalog_module.cmd_droids))

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        return args.func(args)
    except ConfigError as e:
        print(f"ERROR: {e}")
        return EXIT_CONFIG_ERROR
    except (OrcaError, InvalidTransition) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"ERROR: {e}")
        return EXIT_ERROR


if __name__ == '__main__':
    sys.exit(main())
