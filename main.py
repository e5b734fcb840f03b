#!/usr/bin/env python3
"""
Query Doctor - ORM query log diagnostics
Main CLI Entry Point

Commands:
    python main.py analyze queries.json --schema schema.json   # Diagnose a query log
    python main.py normalize "SELECT ..."                       # Show normalized form
    python main.py config                                       # Show configuration
"""
import argparse
import json
import logging
import sys
from dataclasses import asdict

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config.settings import get_settings
from query_doctor.metadata.schema_index import MetadataIndex
from query_doctor.models import Severity
from query_doctor.orchestration.pipeline import QueryAnalysisPipeline
from query_doctor.parsing.aggregation import AggregationKeyBuilder
from query_doctor.parsing.sql_extractor import SqlStructureExtractor
from query_doctor.utils.logging_config import setup_logging
from query_doctor.utils.query_log import load_query_log, load_schema

logger = logging.getLogger(__name__)

SEVERITY_STYLES = {
    Severity.CRITICAL: 'bold red',
    Severity.WARNING: 'yellow',
    Severity.INFO: 'cyan',
}


def positive_int(value):
    """argparse type: integer of at least 1"""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: '{value}'")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def cmd_analyze(args):
    """
    Analyze a captured query log
    Runs every analyzer and prints the deduplicated issues
    """
    settings = get_settings()
    console = Console()

    try:
        queries = load_query_log(args.query_log)

        metadata_index = None
        if args.schema:
            metadata_index = load_schema(args.schema)
        elif args.database_url:
            console.print("[yellow]Reflecting database schema...[/yellow]")
            metadata_index = MetadataIndex.from_engine(args.database_url)
        else:
            logger.info("No schema given, schema-based checks are skipped")

        pipeline = QueryAnalysisPipeline(metadata_index=metadata_index, settings=settings)
        issues = pipeline.analyze(queries)
        stats = pipeline.get_statistics()

        if args.top:
            issues = issues[:args.top]

        if args.json:
            output = {
                'statistics': stats,
                'issues': [issue.to_dict() for issue in issues],
            }
            print(json.dumps(output, indent=2, ensure_ascii=False))
            return 0

        _print_report(console, issues, stats)
        return 0

    except FileNotFoundError as e:
        logger.error(f"Input file not found: {e}")
        print(f"\n❌ Input file not found: {e.filename or e}")
        return 1

    except Exception as e:
        logger.error(f"Analysis failed: {e}", exc_info=True)
        print(f"\n❌ Analysis failed: {e}")
        return 1


def _print_report(console: Console, issues, stats):
    table = Table(title="Query Issues", show_lines=True)
    table.add_column("Severity", no_wrap=True)
    table.add_column("Issue")
    table.add_column("Queries", justify="right")
    table.add_column("Suggestion")

    for issue in issues:
        style = SEVERITY_STYLES.get(issue.severity, '')
        table.add_row(
            f"[{style}]{issue.severity.upper()}[/{style}]",
            f"[bold]{issue.title}[/bold]\n{issue.description}",
            str(len(issue.queries)),
            issue.suggestion.title if issue.suggestion else '-',
        )

    if issues:
        console.print(table)
    else:
        console.print("[green]✓[/green] No issues detected")

    console.print(Panel(
        f"Queries analyzed:  {stats['query_count']}\n"
        f"Issues:            {stats['total']} "
        f"({stats['critical']} critical, {stats['warning']} warning, {stats['info']} info)\n"
        f"Skipped analyzers: {stats['skipped_analyzers']}\n"
        f"Failed analyzers:  {stats['failed_analyzers']}",
        title="Summary",
    ))


def cmd_normalize(args):
    """Show the normalized form and aggregation key of one statement"""
    try:
        settings = get_settings()
        extractor = SqlStructureExtractor(dialect=settings.sql.dialect)
        keys = AggregationKeyBuilder(extractor)

        print(f"Normalized:      {extractor.normalize_query(args.sql)}")
        print(f"Aggregation key: {keys.create_aggregation_key(args.sql)}")

        main_table = extractor.extract_main_table(args.sql)
        if main_table:
            print(f"Main table:      {main_table.table}" + (f" ({main_table.alias})" if main_table.alias else ""))
        for join in extractor.extract_joins(args.sql):
            print(f"JOIN:            {join.join_type} {join.table}" + (f" {join.alias}" if join.alias else ""))
        return 0

    except Exception as e:
        logger.error(f"Normalization failed: {e}", exc_info=True)
        print(f"\n❌ Normalization failed: {e}")
        return 1


def cmd_config(args):
    """Show current configuration"""
    try:
        settings = get_settings()

        if args.json:
            config_dict = asdict(settings)
            config_dict['paths']['log_dir'] = str(settings.paths.log_dir)
            print(json.dumps(config_dict, indent=2, ensure_ascii=False))
        else:
            print(settings.summary())

        return 0

    except Exception as e:
        logger.error(f"Config display failed: {e}", exc_info=True)
        print(f"\n❌ Config display failed: {e}")
        return 1


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description='Query Doctor - ORM query log diagnostics',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze a query log
  python main.py analyze queries.json
  python main.py analyze queries.json --schema schema.json
  python main.py analyze queries.json --database-url sqlite:///app.db --top 10
  python main.py analyze queries.json --schema schema.json --json

  # Utilities
  python main.py normalize "SELECT * FROM orders WHERE user_id = 42"
  python main.py config
  python main.py config --json
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # ============================================================================
    # ANALYZE COMMAND
    # ============================================================================
    analyze_parser = subparsers.add_parser(
        'analyze',
        help='Diagnose a captured query log'
    )
    analyze_parser.add_argument(
        'query_log',
        help='JSON file with the executed queries'
    )
    schema_group = analyze_parser.add_mutually_exclusive_group()
    schema_group.add_argument(
        '--schema',
        help='JSON schema description (tables, identifiers, associations)'
    )
    schema_group.add_argument(
        '--database-url',
        help='SQLAlchemy URL of a database to reflect the schema from'
    )
    analyze_parser.add_argument(
        '--json',
        action='store_true',
        help='Output issues as JSON'
    )
    analyze_parser.add_argument(
        '--top',
        type=positive_int,
        default=None,
        help='Only show the N most severe issues (N >= 1)'
    )
    analyze_parser.set_defaults(func=cmd_analyze)

    # ============================================================================
    # NORMALIZE COMMAND
    # ============================================================================
    normalize_parser = subparsers.add_parser(
        'normalize',
        help='Show the normalized form and aggregation key of a SQL statement'
    )
    normalize_parser.add_argument(
        'sql',
        help='SQL statement'
    )
    normalize_parser.set_defaults(func=cmd_normalize)

    # ============================================================================
    # CONFIG COMMAND
    # ============================================================================
    config_parser = subparsers.add_parser(
        'config',
        help='Show current configuration'
    )
    config_parser.add_argument(
        '--json',
        action='store_true',
        help='Output configuration as JSON'
    )
    config_parser.set_defaults(func=cmd_config)

    # Parse arguments
    args = parser.parse_args(argv)

    # Check if command was provided
    if not args.command:
        parser.print_help()
        return 1

    setup_logging(get_settings())

    # Run command
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        print(f"\n❌ Command failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
