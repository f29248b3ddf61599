"""
Command Line Interface for smart thumbnail resolution and maintenance.
"""

import argparse
import json
import logging
import os
from typing import List, Optional

import urllib3
import yaml

from .errors import ThumbnailError
from .maintenance import ThumbnailMaintenance
from .pregenerator import Pregenerator
from .reporter import Reporter
from .service import ResolveMode, SourceAsset, ThumbnailService
from .settings import load_config

DEFAULT_CONFIG = 'thumbnails.yaml'


def setup_logging(verbose: bool) -> logging.Logger:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)

    return logging.getLogger('smartthumbs')


def build_service(args: argparse.Namespace, logger: logging.Logger) -> Optional[ThumbnailService]:
    """
    Load the configuration file and build a service from it.

    Returns:
        ThumbnailService, or None if the configuration could not be loaded
    """
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error(f"Configuration not found: {args.config}")
        return None
    except (yaml.YAMLError, TypeError, ValueError) as e:
        logger.error(f"Failed to load configuration {args.config}: {e}")
        return None

    logger.debug(f"Loaded configuration: {args.config} ({len(config.presets)} presets)")
    return ThumbnailService(config, logger=logger)


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Add configuration and logging arguments to a parser."""
    parser.add_argument('-c', '--config', default=os.environ.get('THUMBNAILS_CONFIG', DEFAULT_CONFIG),
                        help=f'Configuration file (default: $THUMBNAILS_CONFIG or {DEFAULT_CONFIG})')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')


def cmd_resolve(args: argparse.Namespace) -> int:
    """Execute resolve command."""
    logger = setup_logging(args.verbose)
    service = build_service(args, logger)
    if service is None:
        return 1

    mode = ResolveMode.SILENT if args.silent else ResolveMode.STRICT
    try:
        url = service.resolve(SourceAsset(args.source, args.source_disk), args.preset, args.variant, mode=mode)
    except ThumbnailError as e:
        logger.error(f"[{e.kind}] {e}")
        return 1

    print(url)
    return 0


def cmd_purge(args: argparse.Namespace) -> int:
    """Execute purge command."""
    logger = setup_logging(args.verbose)
    service = build_service(args, logger)
    if service is None:
        return 1

    target = f"preset '{args.preset}'" if args.preset else "ALL presets"
    if not args.yes:
        answer = input(f"This will delete all generated thumbnails for {target}. Are you sure? [y/N] ")
        if answer.strip().lower() not in ('y', 'yes'):
            print("Operation cancelled.")
            return 0

    try:
        count = ThumbnailMaintenance(service, logger).purge(args.preset)
    except ThumbnailError as e:
        logger.error(f"Error purging thumbnails: {e}")
        return 1

    print(f"Successfully purged {count} thumbnails for {target}.")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Execute stats command."""
    logger = setup_logging(args.verbose)
    service = build_service(args, logger)
    if service is None:
        return 1

    maintenance = ThumbnailMaintenance(service, logger)
    reporter = Reporter()
    try:
        if args.preset:
            stats = maintenance.analyze_distribution(args.preset)
            if args.json:
                print(json.dumps(stats.to_dict(), indent=2))
            else:
                reporter.report_distribution(stats)
        else:
            stats = maintenance.get_system_stats()
            if args.json:
                print(json.dumps(stats.to_dict(), indent=2))
            else:
                reporter.report_system(stats)
    except ThumbnailError as e:
        logger.error(f"Could not collect statistics: {e}")
        return 1
    return 0


def cmd_optimize(args: argparse.Namespace) -> int:
    """Execute optimize command."""
    logger = setup_logging(args.verbose)
    service = build_service(args, logger)
    if service is None:
        return 1

    result = ThumbnailMaintenance(service, logger).optimize()
    Reporter().report_optimize(result)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Execute validate command."""
    logger = setup_logging(args.verbose)
    service = build_service(args, logger)
    if service is None:
        return 1

    result = ThumbnailMaintenance(service, logger).validate_configuration()
    Reporter().report_validation(result)
    return 0 if result['valid'] else 1


def cmd_debug(args: argparse.Namespace) -> int:
    """Execute debug command."""
    logger = setup_logging(args.verbose)
    service = build_service(args, logger)
    if service is None:
        return 1

    info = service.debug_info(SourceAsset(args.source, args.source_disk), args.preset, args.variant)
    Reporter().report_debug(info)
    return 1 if 'error' in info else 0


def cmd_strategies(args: argparse.Namespace) -> int:
    """Execute strategies command."""
    logger = setup_logging(args.verbose)
    service = build_service(args, logger)
    if service is None:
        return 1

    shards = ThumbnailMaintenance(service, logger).test_subdirectory_strategies(args.filename)
    Reporter().report_strategies(args.filename, shards)
    return 0


def cmd_pregenerate(args: argparse.Namespace) -> int:
    """Execute pregenerate command."""
    logger = setup_logging(args.verbose)
    service = build_service(args, logger)
    if service is None:
        return 1

    logger.info(f"Source disk: {args.disk}")
    logger.info(f"Scan path: {args.path or '/'}")
    if args.dry_run:
        logger.info("Dry run: no thumbnails will be generated")
    if args.limit:
        logger.info(f"Test mode: limiting to {args.limit} images")

    pregenerator = Pregenerator(
        service,
        cadence=args.cadence,
        dry_run=args.dry_run,
        force=args.force,
        use_jobs=args.jobs,
        logger=logger,
    )
    try:
        stats = pregenerator.run(args.preset or None, args.disk, args.path, args.limit)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ThumbnailError as e:
        logger.error(f"Pre-generation failed: {e}")
        return 1

    if not args.quiet:
        Reporter().report_batch(stats, title="PRE-GENERATION RESULTS")
    return 0 if stats.errors == 0 else 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='smartthumbs',
        description='Smart thumbnail resolution and maintenance',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m smartthumbs resolve images/cat.jpg -p avatar -c thumbnails.yaml
  python -m smartthumbs stats avatar
  python -m smartthumbs purge avatar --yes
  python -m smartthumbs pregenerate avatar --disk public --path images/ --dry-run
"""
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Resolve command
    resolve_parser = subparsers.add_parser('resolve', help='Print the URL of a thumbnail, generating it if needed')
    resolve_parser.add_argument('source', help='Source image path')
    resolve_parser.add_argument('-p', '--preset', required=True, help='Preset name')
    resolve_parser.add_argument('--variant', help='Variant name')
    resolve_parser.add_argument('--source-disk', default='public', help='Source disk (default: public)')
    resolve_parser.add_argument('--silent', action='store_true', help='Print a fallback URL instead of failing')
    add_common_arguments(resolve_parser)

    # Purge command
    purge_parser = subparsers.add_parser('purge', help='Delete generated thumbnails')
    purge_parser.add_argument('preset', nargs='?', help='Preset to purge (default: all)')
    purge_parser.add_argument('-y', '--yes', action='store_true', help='Skip confirmation prompt')
    add_common_arguments(purge_parser)

    # Stats command
    stats_parser = subparsers.add_parser('stats', help='Show file distribution statistics')
    stats_parser.add_argument('preset', nargs='?', help='Preset to analyze (default: system totals)')
    stats_parser.add_argument('--json', action='store_true', help='Print raw JSON')
    add_common_arguments(stats_parser)

    # Optimize command
    optimize_parser = subparsers.add_parser('optimize', help='Remove duplicate thumbnails and empty directories')
    add_common_arguments(optimize_parser)

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Check the configuration')
    add_common_arguments(validate_parser)

    # Debug command
    debug_parser = subparsers.add_parser('debug', help='Show how a thumbnail would be resolved')
    debug_parser.add_argument('source', help='Source image path')
    debug_parser.add_argument('-p', '--preset', required=True, help='Preset name')
    debug_parser.add_argument('--variant', help='Variant name')
    debug_parser.add_argument('--source-disk', default='public', help='Source disk (default: public)')
    add_common_arguments(debug_parser)

    # Strategies command
    strategies_parser = subparsers.add_parser('strategies', help='Show the shard of each subdirectory strategy')
    strategies_parser.add_argument('filename', nargs='?', default='example_image', help='Filename to shard')
    add_common_arguments(strategies_parser)

    # Pregenerate command
    pregen_parser = subparsers.add_parser('pregenerate', help='Generate missing thumbnails for existing images')
    pregen_parser.add_argument('preset', nargs='*', help='Preset(s) to generate (default: all)')
    pregen_parser.add_argument('--disk', default='public', help='Source disk to scan (default: public)')
    pregen_parser.add_argument('--path', default='', help='Path on the source disk to scan')
    pregen_parser.add_argument('-f', '--force', action='store_true', help='Regenerate existing thumbnails')
    pregen_parser.add_argument('-n', '--dry-run', action='store_true', help='Show what would be done')
    pregen_parser.add_argument('--jobs', action='store_true',
                               help='Generate through retried jobs (retries, timeout, dead letter)')
    pregen_parser.add_argument('--cadence', type=float, default=0.0, help='Seconds between images')
    pregen_parser.add_argument('--limit', type=int, metavar='N', help='Limit to N images (for testing)')
    pregen_parser.add_argument('-q', '--quiet', action='store_true', help='Suppress the summary report')
    add_common_arguments(pregen_parser)

    return parser


COMMANDS = {
    'resolve': cmd_resolve,
    'purge': cmd_purge,
    'stats': cmd_stats,
    'optimize': cmd_optimize,
    'validate': cmd_validate,
    'debug': cmd_debug,
    'strategies': cmd_strategies,
    'pregenerate': cmd_pregenerate,
}


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    return COMMANDS[parsed_args.command](parsed_args)
