#!/usr/bin/env python3
"""Command-line interface for the ledger fee reconciliation job.

Scans every non-deleted transaction pair, normalizes the sign of the fee
columns of order-linked pairs and reports rows whose net amount still does
not add up. Nothing is written unless --notdryrun is passed.

Usage:
    collective-ledger-fees --verbose
    collective-ledger-fees --notdryrun --batch-size 500 --format detailed_text
    python -m collective_ledger.reconciliation.cli --limit 1000 --output report.json
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from ..database import DatabaseManager
from ..errors import PairingError
from .models import ReconciliationOptions
from .service import ReconciliationJob

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_FATAL = 2


async def run_reconciliation_async(
    options: ReconciliationOptions,
    output_file: Optional[str] = None,
    output_format: str = "text",
    database_url: Optional[str] = None,
) -> int:
    """Run reconciliation asynchronously.

    Args:
        options: Reconciliation options.
        output_file: Optional output file path.
        output_format: Output format ('json', 'csv', 'text', 'detailed_text').
        database_url: Overrides DATABASE_URL.

    Returns:
        Exit code (0 clean, 1 findings reported, 2 aborted on a pairing error).
    """
    manager = DatabaseManager(database_url)
    await manager.initialize()

    try:
        async with manager.session() as session:
            job = ReconciliationJob(session, options)
            try:
                report = await job.run()
                exit_code = EXIT_FINDINGS if report.has_findings else EXIT_OK
            except PairingError as e:
                logger.error(f"Reconciliation aborted: {e}")
                await session.rollback()
                report = job.report
                exit_code = EXIT_FATAL

            output = job.generate_report(
                report=report,
                format=output_format,
                include_details=True,
            )
            if output_file:
                with open(output_file, 'w') as f:
                    f.write(output)
                logger.info(f"Report written to {output_file}")
            else:
                print(output)

            if exit_code == EXIT_FINDINGS:
                logger.warning(
                    f"Reconciliation completed with issues: "
                    f"{len(report.inconsistencies)} inconsistencies, "
                    f"{len(report.conflicts)} conflicts"
                )
            return exit_code

    finally:
        await manager.shutdown()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="collective-ledger-fees",
        description="Normalize ledger fee signs and report transactions that do not add up.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--notdryrun",
        action="store_true",
        help="Pass this flag when you're ready to write the corrections for real",
    )
    parser.add_argument(
        "-l", "--limit",
        type=int,
        help="Total transactions to process (default: all)",
    )
    parser.add_argument(
        "-b", "--batch-size",
        type=int,
        default=100,
        help="Batch size to fetch at a time (default: 100)",
    )
    parser.add_argument(
        "--format", "-f",
        choices=["json", "csv", "text", "detailed_text"],
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)",
    )
    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    parsed_args = create_parser().parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        options = ReconciliationOptions(
            dry_run=not parsed_args.notdryrun,
            verbose=parsed_args.verbose,
            limit=parsed_args.limit,
            batch_size=parsed_args.batch_size,
        )
    except ValueError as e:
        logger.error(str(e))
        return EXIT_FATAL

    if options.verbose:
        logger.info("Starting to migrate fees")
    exit_code = asyncio.run(run_reconciliation_async(
        options=options,
        output_file=parsed_args.output,
        output_format=parsed_args.format,
    ))
    if options.verbose:
        logger.info("Finished migrating fees")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
