import argparse
import logging
import os
import sys
import textwrap
from pathlib import Path

from . import Deduplicator, Processor, ScanOptions, Settings
from .commands.resume import reraise
from .errors import EXIT_SCAN_FAILED, EXIT_SETUP_ERROR, HashError, ScanInterrupted, SetupError
from .report.sink import ConsoleResultSink, FileResultSink, ResultSink
from .state.settings import SETTING_LOGGING_LEVEL, SETTING_LOGGING_PATH
from .utils.processor import HASH_ALGORITHMS
from .utils.walker import normalize_extensions

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='deduplicate',
        description='Find files with identical content under a directory tree. Long scans can be interrupted '
                    'and resumed where they stopped.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent('''
            Examples:
              deduplicate --dir ~/Pictures --types jpg,png
              deduplicate /data --result duplicates.txt --verbose
              deduplicate /data --resume

            Each duplicate is written as one line: ORIGINAL<TAB>DUPLICATE.
            ''').strip()
    )
    parser.add_argument(
        'directory',
        nargs='?',
        metavar='DIR',
        help='Directory to scan recursively (same as --dir)')
    parser.add_argument(
        '--dir',
        metavar='DIR',
        help='Directory to scan recursively. Defaults to the current directory.')
    parser.add_argument(
        '--result',
        metavar='PATH',
        help='File the duplicates are appended to, "-" for standard output. Defaults to '
             'dedup-results-<timestamp>.txt.')
    parser.add_argument(
        '--types',
        metavar='LIST',
        help='Comma-separated list of file extensions to consider, e.g. "txt,.jpg". Matching is case-sensitive.')
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Show every hashed file and every duplicate while scanning')
    parser.add_argument(
        '--concurrency',
        type=int,
        metavar='N',
        help='Maximum number of files hashed at the same time (default: 10)')
    parser.add_argument(
        '--hash',
        dest='hash_algorithm',
        choices=sorted(HASH_ALGORITHMS),
        help='Content hash function (default: md5)')
    parser.add_argument(
        '--buffer-size',
        type=int,
        metavar='BYTES',
        help='Read buffer of the work list; smaller values give finer checkpoints (default: 256)')
    parser.add_argument(
        '--state-dir',
        metavar='PATH',
        help='Directory holding the work list, the lock file and deduplicate.toml. Defaults to the current '
             'directory.')
    parser.add_argument(
        '--keep-going',
        action='store_true',
        default=None,
        help='Skip files that cannot be hashed instead of stopping the scan')
    resume_group = parser.add_mutually_exclusive_group()
    resume_group.add_argument(
        '--resume',
        action='store_true',
        help='Resume an unfinished scan without asking')
    resume_group.add_argument(
        '--restart',
        action='store_true',
        help='Discard an unfinished scan and start over without asking')
    parser.add_argument(
        '--log-file',
        metavar='PATH',
        help='Path to log file for operation logging. If not provided, uses logging.path from deduplicate.toml '
             'or no logging.')
    parser.add_argument(
        '--log-level',
        metavar='LEVEL',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Defaults to INFO.')
    return parser


def configure_logging(args, settings: Settings) -> None:
    """Set up the root logger from the command line, falling back to settings.

    A log file gets the full format. --verbose additionally prints INFO messages
    (hashed files, duplicates) to stderr.
    """
    log_file = args.log_file or settings.get(SETTING_LOGGING_PATH)
    log_level = args.log_level or settings.get(SETTING_LOGGING_LEVEL) or 'INFO'

    handlers: list[logging.Handler] = []
    if log_file:
        file_handler = logging.FileHandler(str(log_file))
        file_handler.setLevel(getattr(logging, str(log_level).upper()))
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    if args.verbose:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        handlers.append(console_handler)

    if handlers:
        logging.basicConfig(
            level=min(handler.level for handler in handlers),
            handlers=handlers,
            force=True
        )


def ask_resume(work_list_path: Path) -> bool:
    """Ask on the terminal whether to resume the unfinished scan."""
    while True:
        try:
            answer = input(f"An unfinished scan was found ({work_list_path}). Resume it? [y/n] ")
        except EOFError:
            raise SetupError("An unfinished scan exists and no answer was given; use --resume or --restart") \
                from None

        answer = answer.strip().lower()
        if answer in ('y', 'yes'):
            return True
        if answer in ('n', 'no'):
            return False


def deduplicate_main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.concurrency is not None and args.concurrency < 1:
        parser.error('--concurrency must be at least 1')
    if args.buffer_size is not None and args.buffer_size < 1:
        parser.error('--buffer-size must be at least 1')

    state_directory = Path(args.state_dir) if args.state_dir else Path.cwd()

    try:
        settings = Settings(state_directory)
    except ValueError as e:
        print(f"Error: invalid settings file: {e}", file=sys.stderr)
        sys.exit(EXIT_SETUP_ERROR)

    configure_logging(args, settings)

    options = ScanOptions.from_settings(
        settings,
        concurrency=args.concurrency,
        buffer_size=args.buffer_size,
        hash_algorithm=args.hash_algorithm,
        extensions=normalize_extensions(args.types),
        isolate_errors=args.keep_going,
    )
    if options.hash_algorithm not in HASH_ALGORITHMS:
        print(f"Error: unknown hash algorithm in settings: {options.hash_algorithm}", file=sys.stderr)
        sys.exit(EXIT_SETUP_ERROR)

    directory = Path(args.directory or args.dir or '.')

    sink: ResultSink
    excluded_paths = []
    if args.result == '-':
        sink = ConsoleResultSink()
    else:
        sink = FileResultSink(Path(args.result) if args.result else None)
        excluded_paths.append(sink.path)

    if args.resume:
        should_resume = lambda path: True
    elif args.restart:
        should_resume = lambda path: False
    else:
        should_resume = ask_resume

    print(f"Processing directory: {directory}", file=sys.stderr)

    try:
        with Processor(min(options.concurrency, os.cpu_count() or 1), options.hash_algorithm) as processor:
            deduplicator = Deduplicator(directory, processor.digest, state_directory, options)
            result = deduplicator.process(sink, should_resume, excluded_paths)
    except SetupError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_SETUP_ERROR)
    except (FileNotFoundError, NotADirectoryError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_SETUP_ERROR)
    except HashError as e:
        print(f"Error: {e}. Progress was saved; run again to resume.", file=sys.stderr)
        sys.exit(EXIT_SCAN_FAILED)
    except ScanInterrupted as e:
        print("Interrupted. Progress was saved; run again to resume.", file=sys.stderr)
        if e.signum is not None:
            reraise(e.signum)
        sys.exit(EXIT_SCAN_FAILED)

    summary = (f"Found {result.duplicates} duplicates among {result.classified} files "
               f"({result.distinct} distinct contents)")
    if isinstance(sink, FileResultSink):
        summary += f", written to {sink.path}"
    print(summary, file=sys.stderr)
    return result


if __name__ == '__main__':
    deduplicate_main()
