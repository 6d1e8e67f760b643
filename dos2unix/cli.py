"""
Command-line front ends: ``dos2unix`` and ``unix2dos``.
"""

import argparse
import logging
import os
import sys
import time
import traceback
from typing import List, Optional, Sequence, Tuple

from . import __version__
from .convert import (
    BatchSummary,
    ConversionOutcome,
    ConversionRequest,
    Converter,
    EngineConfig,
    Status,
    convert_files,
    logger,
)
from .detect import ENCODING_CHOICES, parse_encoding
from .scanner import LineEndingStyle

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

STYLE_NAMES = {LineEndingStyle.UNIX: "Unix", LineEndingStyle.DOS: "DOS"}


def setup_logging(verbose: int, quiet: bool, log_file: Optional[str] = None) -> None:
    """Configure the root handlers; quiet wins over verbose."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    logger.setLevel(level)


def build_parser(prog: str, target: LineEndingStyle) -> argparse.ArgumentParser:
    source_style = "DOS or Mac" if target is LineEndingStyle.UNIX else "Unix or Mac"
    mac_target = "Unix (LF)" if target is LineEndingStyle.UNIX else "DOS (CRLF)"
    parser = argparse.ArgumentParser(
        prog=prog,
        description=(
            f"Convert text files with {source_style} line endings to "
            f"{STYLE_NAMES[target]} line endings."
        ),
    )
    parser.add_argument(
        "files", nargs="*", metavar="FILE", help="Files to convert in place"
    )
    parser.add_argument(
        "-b", "--backup", action="store_true", help="Make a backup (FILE~) of each file"
    )
    parser.add_argument(
        "-f", "--force", action="store_true", help="Force conversion of binary files"
    )
    bom = parser.add_mutually_exclusive_group()
    bom.add_argument(
        "-k",
        "--keep-bom",
        action="store_true",
        help="Make sure the output starts with a Byte Order Mark",
    )
    bom.add_argument(
        "-r", "--remove-bom", action="store_true", help="Remove any Byte Order Mark"
    )
    parser.add_argument(
        "-m",
        "--mac",
        action="store_true",
        help=f"Also convert Mac line endings (CR) to {mac_target}",
    )
    parser.add_argument(
        "-o",
        "--oldfile",
        action="store_true",
        help="Overwrite original files (default behavior)",
    )
    parser.add_argument(
        "-n",
        "--newfile",
        nargs=2,
        action="append",
        default=[],
        metavar=("INFILE", "OUTFILE"),
        help="Write the conversion of INFILE to a new file OUTFILE (repeatable)",
    )
    parser.add_argument(
        "--allow-overwrite",
        action="store_true",
        help="Let --newfile replace an existing OUTFILE",
    )
    parser.add_argument(
        "--add-eol", action="store_true", help="Add missing end-of-line at end of file"
    )
    parser.add_argument(
        "--keep-date",
        action="store_true",
        help="Keep the modification time of the original file",
    )
    parser.add_argument(
        "-e",
        "--encoding",
        choices=ENCODING_CHOICES,
        default="auto",
        help="Input encoding (default: auto-detect)",
    )
    parser.add_argument(
        "-i",
        "--info",
        action="store_true",
        help="Report encoding and line break statistics without converting",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity level (can be used multiple times)",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Only report errors"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads (default: auto-detect based on CPU count)",
    )
    parser.add_argument(
        "--log-file", default=None, help="Also append log lines to this file"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"{prog} {__version__}",
        help="Show program version and exit",
    )
    return parser


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.2f} seconds"
    if seconds < 3600:
        minutes = int(seconds // 60)
        plural = "s" if minutes != 1 else ""
        return f"{minutes} minute{plural} {seconds % 60:.2f} seconds"
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return (
        f"{hours} hour{'s' if hours != 1 else ''} "
        f"{minutes} minute{'s' if minutes != 1 else ''} "
        f"{seconds % 60:.2f} seconds"
    )


def build_requests(
    args: argparse.Namespace, target: LineEndingStyle
) -> Tuple[List[ConversionRequest], int]:
    """Turn parsed arguments into requests, plus the count of rejected ones."""
    common = dict(
        target=target,
        force=args.force,
        keep_bom=args.keep_bom,
        remove_bom=args.remove_bom,
        add_eol=args.add_eol,
        mac=args.mac,
        keep_date=args.keep_date,
        encoding=parse_encoding(args.encoding),
        info=args.info,
    )
    pairs: List[Tuple[str, Optional[str]]] = [(path, None) for path in args.files]
    pairs += [(infile, outfile) for infile, outfile in args.newfile]

    requests: List[ConversionRequest] = []
    rejected = 0
    seen = set()
    for source, destination in pairs:
        if os.path.exists(source) and not os.path.isfile(source):
            logger.warning("Skipping %s, not a regular file.", source)
            continue
        key = os.path.realpath(destination or source)
        if key in seen:
            logger.warning("Skipping %s, already listed.", destination or source)
            continue
        seen.add(key)
        try:
            requests.append(
                ConversionRequest(
                    source=source,
                    destination=destination,
                    backup=args.backup and destination is None,
                    allow_overwrite=args.allow_overwrite,
                    **common,
                )
            )
        except ValueError as e:
            logger.error("Error converting %s: %s", source, e)
            rejected += 1
    return requests, rejected


def report_outcome(
    outcome: ConversionOutcome, target: LineEndingStyle, verbose: int
) -> None:
    """Log one line for a finished conversion."""
    name = STYLE_NAMES[target]
    if outcome.status is Status.FAILED:
        logger.error("Error converting %s: %s", outcome.source, outcome.error)
        return
    if outcome.status is Status.SKIPPED_BINARY:
        logger.info(
            "Skipping binary file %s. Use --force to convert it.", outcome.source
        )
        return
    if outcome.status is Status.UNCHANGED:
        logger.info("%s is already in %s format.", outcome.source, name)
        return

    if outcome.destination != outcome.source:
        message = (
            f"converting file {outcome.source} to file {outcome.destination}"
            f" in {name} format"
        )
    else:
        message = f"converting file {outcome.source} to {name} format"
    if verbose >= 1:
        encoding = outcome.encoding.value if outcome.encoding else "?"
        message += (
            f" ({outcome.converted_total} of {outcome.stats.total} line breaks"
            f", {outcome.bytes_written} bytes, {encoding}"
            f", BOM {outcome.bom_action.value})"
        )
    if outcome.backup_path:
        message += f", backup in {outcome.backup_path}"
    logger.info(message)


def format_info(outcome: ConversionOutcome) -> str:
    """One ``--info`` line: CRLF LF CR BOM ENCODING STYLE EOL FILE."""
    if outcome.status is Status.FAILED:
        return f"{outcome.source}: {outcome.error}"
    encoding = outcome.encoding.value if outcome.encoding else "-"
    bom = "with-bom" if outcome.bom_present else "no-bom"
    if outcome.status is Status.SKIPPED_BINARY:
        return (
            f"{'-':>6} {'-':>6} {'-':>6}  {bom:<8} {encoding:<10} "
            f"{'binary':<6} {'-':<6} {outcome.source}"
        )
    stats = outcome.stats
    style = stats.style.value if stats.style else "none"
    eol = "eol" if stats.ends_with_eol else "no-eol"
    return (
        f"{stats.crlf:>6} {stats.lf:>6} {stats.cr:>6}  {bom:<8} {encoding:<10} "
        f"{style:<6} {eol:<6} {outcome.source}"
    )


def _filter_stdin(
    args: argparse.Namespace, target: LineEndingStyle, config: EngineConfig
) -> int:
    if sys.stdin.isatty():
        logger.error("No files specified and no input provided.")
        return 1
    request = ConversionRequest(
        source="<stdin>",
        target=target,
        force=args.force,
        keep_bom=args.keep_bom,
        remove_bom=args.remove_bom,
        add_eol=args.add_eol,
        mac=args.mac,
        encoding=parse_encoding(args.encoding),
    )
    outcome = Converter(config).convert_stream(
        request, sys.stdin.buffer, sys.stdout.buffer
    )
    if outcome.status is Status.SKIPPED_BINARY:
        logger.error("Binary input on stdin. Use --force to convert it.")
        return 1
    return 0


def run(
    argv: Optional[Sequence[str]], target: LineEndingStyle, prog: str
) -> int:  # pylint: disable=too-many-branches
    parser = build_parser(prog, target)
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet, args.log_file)
    logger.debug("%s v%s", prog, __version__)

    try:
        if args.workers is not None and args.workers <= 0:
            logger.warning(
                "Invalid worker count (%d), using auto-detection instead", args.workers
            )
            args.workers = None
        config = EngineConfig(verbose=args.verbose, quiet=args.quiet)

        if not args.files and not args.newfile:
            if args.info:
                parser.error("--info needs at least one FILE")
            return _filter_stdin(args, target, config)

        start_time: float = time.time()
        requests, rejected = build_requests(args, target)
        outcomes = convert_files(
            requests,
            config,
            max_workers=args.workers,
            progress=not args.quiet and not args.info and len(requests) > 1,
        )

        for outcome in outcomes:
            if args.info:
                if outcome.failed:
                    logger.error("Error reading %s: %s", outcome.source, outcome.error)
                else:
                    print(format_info(outcome))
            else:
                report_outcome(outcome, target, args.verbose)

        summary = BatchSummary.from_outcomes(outcomes)
        if len(outcomes) > 1 and not args.info:
            logger.info(
                "Processed: %d, Unchanged: %d, Skipped: %d, Errors: %d",
                summary.converted,
                summary.unchanged,
                summary.skipped,
                summary.failed + rejected,
            )
        if args.verbose:
            logger.info(
                "Done! Examined %d files in %s.",
                summary.examined,
                format_duration(time.time() - start_time),
            )
        return 1 if summary.failed or rejected else 0
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        if logger.level <= logging.DEBUG:
            logger.debug("Traceback: %s", traceback.format_exc())
        return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for ``dos2unix``."""
    return run(argv, LineEndingStyle.UNIX, "dos2unix")


def unix2dos_main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for ``unix2dos``."""
    return run(argv, LineEndingStyle.DOS, "unix2dos")


if __name__ == "__main__":
    sys.exit(main())
