"""
Weaveflow CLI.

Provides terminal access to:
- Graph file validation
- Single node runs against a graph file
- Run history listing and purging
"""

import sys
import json
import asyncio
import argparse
from pathlib import Path

from pydantic import ValidationError

from weaveflow.config import get_settings
from weaveflow.engine import create_engine
from weaveflow.executors import ExecutorError
from weaveflow.graph import GraphError, GraphSnapshot, GraphStore
from weaveflow.observability import setup_logging
from weaveflow.storage import LedgerError


def load_graph_file(path: str) -> GraphSnapshot:
    """Read a graph JSON file (``{"nodes": [...], "edges": [...]}``)."""
    return GraphSnapshot.model_validate_json(Path(path).read_text())


def cmd_validate(args: argparse.Namespace) -> int:
    """Check that a graph file is well-formed and acyclic."""
    try:
        snapshot = load_graph_file(args.file)
        store = GraphStore()
        store.load_snapshot(snapshot)
        order = store.topological_order()
    except (OSError, ValidationError, GraphError) as e:
        print(f"Error: invalid graph: {e}")
        return 1

    print(f"Graph OK: {len(snapshot.nodes)} nodes, {len(snapshot.edges)} edges")
    print("Order: " + (" -> ".join(order) if order else "(empty)"))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Run one node of a graph file and print the result."""
    setup_logging()

    try:
        snapshot = load_graph_file(args.file)
        engine = create_engine()
        engine.load_snapshot(snapshot)
        result = asyncio.run(engine.run_node(args.node_id, owner_id=args.owner))
    except (OSError, ValidationError, GraphError, ExecutorError) as e:
        print(f"Error: {e}")
        return 1

    print(json.dumps(
        {
            "nodeId": result.node_id,
            "nodeType": result.node_type,
            "status": result.status.value,
            "outputs": result.outputs,
            "error": result.error,
            "durationMs": result.duration_ms,
            "attempts": result.attempts,
            "runId": result.run_id,
        },
        indent=2,
    ))

    if args.save:
        Path(args.file).write_text(engine.snapshot().model_dump_json(by_alias=True, indent=2))
        print(f"Graph saved to {args.file}")

    return 0 if result.ok else 1


def _history_configured() -> bool:
    """Run history only outlives the process when it is kept in Redis."""
    if get_settings().redis_url:
        return True
    print("Error: run history needs Redis. Set WEAVEFLOW_REDIS_URL in the environment.")
    return False


def cmd_runs_list(args: argparse.Namespace) -> int:
    """Print recent runs of an owner, newest first."""
    setup_logging()
    if not _history_configured():
        return 1
    engine = create_engine()
    try:
        runs = engine.list_runs(args.owner, args.limit)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    print(json.dumps([run.model_dump(mode="json") for run in runs], indent=2))
    return 0


def cmd_runs_purge(args: argparse.Namespace) -> int:
    """Delete every run of an owner."""
    setup_logging()
    if not _history_configured():
        return 1
    engine = create_engine()
    try:
        count = engine.delete_runs(args.owner)
    except LedgerError as e:
        print(f"Error: {e}")
        return 1
    print(f"Successfully deleted {count} workflow run(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Weaveflow - workflow graph engine",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # validate command
    validate_parser = subparsers.add_parser('validate', help='Validate a graph file')
    validate_parser.add_argument('file', help='Graph JSON file')

    # run command
    run_parser = subparsers.add_parser('run', help='Run one node of a graph file')
    run_parser.add_argument('file', help='Graph JSON file')
    run_parser.add_argument('node_id', help='Node to run')
    run_parser.add_argument('--owner', required=True, help='Owner id for the run ledger')
    run_parser.add_argument('--save', action='store_true', help='Write the updated graph back to the file')

    # runs command
    runs_parser = subparsers.add_parser('runs', help='Inspect run history')
    runs_subparsers = runs_parser.add_subparsers(dest='runs_command', help='Runs command')

    list_parser = runs_subparsers.add_parser('list', help='List recent runs')
    list_parser.add_argument('--owner', required=True, help='Owner id')
    list_parser.add_argument('--limit', type=int, help='Maximum number of runs')

    purge_parser = runs_subparsers.add_parser('purge', help='Delete all runs')
    purge_parser.add_argument('--owner', required=True, help='Owner id')

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'validate':
        return cmd_validate(args)
    elif args.command == 'run':
        return cmd_run(args)
    elif args.command == 'runs':
        if args.runs_command == 'list':
            return cmd_runs_list(args)
        elif args.runs_command == 'purge':
            return cmd_runs_purge(args)
        parser.print_help()
        return 1
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
