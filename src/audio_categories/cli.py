"""
Audio Categories CLI Utility

Operator command-line interface for the category subsystem: listings,
diagnostics, repairs, compatibility sync and cache maintenance. No web
surface required - designed for scheduled and manual operator runs.

Usage Examples:
    # Create the database tables
    audio-categories init-db

    # Show the tree with audio counts
    audio-categories list --counts

    # Flat list of level-2 categories, including inactive ones
    audio-categories list --format flat --level 2 --include-inactive

    # Print the consistency report
    audio-categories diagnose

    # Repair orphaned / inconsistent categories
    audio-categories repair fix-structure

    # Sync legacy subjects for two audio records (all records when omitted)
    audio-categories sync 12 13

    # Warm and benchmark the query cache
    audio-categories cache-warm
    audio-categories cache-benchmark
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from audio_categories.models.enums import RepairAction
from audio_categories.services import category_compat_service
from audio_categories.services.category_diagnostic_service import (
    format_report,
    run_diagnostic,
    run_repair,
)
from audio_categories.services.category_service import CategoryService
from audio_categories.services.database import initialize_app_database
from audio_categories.services.dto import ActionLog, CreateCategoryRequest
from audio_categories.services.exceptions import ServiceError


def _print_tree(nodes, indent: int = 0) -> None:
    for node in nodes:
        count = f" ({node.audio_count})" if node.audio_count is not None else ""
        state = "" if node.is_active else " [inactive]"
        print(f"{'  ' * indent}- [{node.id}] {node.name}{count}{state}")
        _print_tree(node.children, indent + 1)


def _print_action_log(title: str, result: ActionLog, verbose: bool = False) -> None:
    print(f"{title}: processed={result.processed} updated={result.updated} errors={result.errors}")
    for entry in result.details:
        if verbose or entry.action.value != "skipped":
            print(f"  {entry.target_id}: {entry.action.value} {entry.message}")


def list_cmd(service: CategoryService, args) -> int:
    """List categories as a tree or a flat list."""
    rows = service.list_categories(
        format=args.format,
        include_inactive=args.include_inactive,
        include_count=args.counts,
        parent_id=args.parent_id,
        level=args.level,
    )
    if args.format == "tree":
        _print_tree(rows)
    else:
        for row in rows:
            count = f" ({row.audio_count})" if row.audio_count is not None else ""
            parent = f" parent={row.parent_id}" if row.parent_id is not None else ""
            print(f"[{row.id}] L{row.level} {row.name}{count}{parent}")
    print(f"{len(rows)} categories")
    return 0


def create_cmd(service: CategoryService, args) -> int:
    """Create a category."""
    record = service.create(
        CreateCategoryRequest(
            name=args.name,
            parent_id=args.parent_id,
            description=args.description,
            sort_order=args.sort_order,
        )
    )
    print(f"Created [{record.id}] {record.name} (level {record.level})")
    return 0


def delete_cmd(service: CategoryService, args) -> int:
    """Delete a category."""
    deleted = service.delete(args.category_id, force=args.force, cascade=args.cascade)
    print(f"Deleted categories: {', '.join(str(i) for i in deleted)}")
    return 0


def diagnose_cmd(args) -> int:
    """Print the consistency report. Exit status 2 when not fully healthy."""
    report = run_diagnostic()
    print(format_report(report))
    return 0 if report.health_score == 100 else 2


def repair_cmd(service: CategoryService, args) -> int:
    """Apply one repair action."""
    result = run_repair(args.action, service=service)
    _print_action_log(f"Repair {args.action}", result, args.verbose)
    return 0 if result.success else 1


def sync_cmd(args) -> int:
    """Sync legacy subjects from normalized categories."""
    if args.audio_ids:
        result = category_compat_service.batch_sync(audio_ids=args.audio_ids)
    else:
        result = category_compat_service.batch_sync()
    _print_action_log("Sync", result, args.verbose)
    return 0 if result.success else 1


def backfill_cmd(service: CategoryService, args) -> int:
    """Assign categories to legacy-only audio records from their subject."""
    result = category_compat_service.backfill_from_subject(cache=service.cache)
    _print_action_log("Backfill", result, args.verbose)
    return 0


def cache_warm_cmd(service: CategoryService, args) -> int:
    """Warm the query cache with the default query set."""
    result = service.warm_cache()
    for entry in result.entries:
        print(f"  {entry.key}: {entry.elapsed_ms:.2f} ms ({entry.result_count} rows)")
    print(f"Warmed {len(result.entries)} queries in {result.total_ms:.2f} ms")
    return 0


def cache_benchmark_cmd(service: CategoryService, args) -> int:
    """Benchmark cold vs warm latency of the default query set."""
    result = service.benchmark_cache()
    for entry in result.entries:
        print(f"  {entry.key}: cold {entry.cold_ms:.2f} ms, warm {entry.warm_ms:.2f} ms")
    print(f"Cache efficiency: {result.cache_efficiency:.1%}")
    stats = service.cache.describe()
    print(
        f"Hits: {stats['hits']}, misses: {stats['misses']}, "
        f"hit rate: {stats['hitRate']:.1%}, average {stats['averageLatencyMs']:.3f} ms"
    )
    for key in stats["slowQueries"]:
        print(f"  slow: {key}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="audio-categories",
        description="Operator utility for the audio category tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Consistency report:
    audio-categories diagnose

  Promote orphaned categories to level 1:
    audio-categories repair fix-structure

  Clear audio references to force-deleted categories:
    audio-categories repair cleanup-orphans
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output and logs")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create database tables")

    list_parser = subparsers.add_parser("list", help="List categories")
    list_parser.add_argument("--format", choices=["tree", "flat"], default="tree")
    list_parser.add_argument("--include-inactive", action="store_true")
    list_parser.add_argument("--counts", action="store_true", help="Include audio counts")
    list_parser.add_argument("--parent-id", type=int, help="Flat only: children of this parent")
    list_parser.add_argument("--level", type=int, choices=[1, 2], help="Flat only: one level")

    create_parser = subparsers.add_parser("create", help="Create a category")
    create_parser.add_argument("name")
    create_parser.add_argument("--parent-id", type=int)
    create_parser.add_argument("--description")
    create_parser.add_argument("--sort-order", type=int, default=0)

    delete_parser = subparsers.add_parser("delete", help="Delete a category")
    delete_parser.add_argument("category_id", type=int)
    delete_parser.add_argument("--force", action="store_true", help="Ignore children and audio")
    delete_parser.add_argument("--cascade", action="store_true", help="Delete children too")

    subparsers.add_parser("diagnose", help="Print the consistency report")

    repair_parser = subparsers.add_parser("repair", help="Apply a repair action")
    repair_parser.add_argument("action", choices=[a.value for a in RepairAction])

    sync_parser = subparsers.add_parser("sync", help="Sync legacy subjects")
    sync_parser.add_argument("audio_ids", nargs="*", type=int, help="Audio ids (default: all)")

    subparsers.add_parser("backfill", help="Infer categories from legacy subjects")
    subparsers.add_parser("cache-warm", help="Warm the query cache")
    subparsers.add_parser("cache-benchmark", help="Benchmark the query cache")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    initialize_app_database()
    if args.command == "init-db":
        print("Database initialized")
        return 0

    service = CategoryService()
    try:
        if args.command == "list":
            return list_cmd(service, args)
        elif args.command == "create":
            return create_cmd(service, args)
        elif args.command == "delete":
            return delete_cmd(service, args)
        elif args.command == "diagnose":
            return diagnose_cmd(args)
        elif args.command == "repair":
            return repair_cmd(service, args)
        elif args.command == "sync":
            return sync_cmd(args)
        elif args.command == "backfill":
            return backfill_cmd(service, args)
        elif args.command == "cache-warm":
            return cache_warm_cmd(service, args)
        elif args.command == "cache-benchmark":
            return cache_benchmark_cmd(service, args)
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
