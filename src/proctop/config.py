"""Command-line configuration for proctop."""

import argparse
import logging
from dataclasses import dataclass

MODES = ("normal", "grouped", "tree")


@dataclass(slots=True)
class ProcessConfig:
    """Startup settings of the process view."""

    poll_rate: float = 2.0
    default_mode: str = "normal"
    is_case_sensitive: bool = False
    is_match_whole_word: bool = False
    is_use_regex: bool = False
    show_memory_as_values: bool = False
    is_command: bool = False
    log_file: str | None = None
    log_level: str = "INFO"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proctop", description="proctop - process viewer with tree and grouped modes"
    )
    parser.add_argument(
        "-r", "--rate", type=float, default=2.0, help="refresh interval in seconds"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-T", "--tree", action="store_true", help="start in tree mode")
    mode.add_argument("-g", "--group", action="store_true", help="start with processes grouped")
    parser.add_argument(
        "-S", "--case-sensitive", action="store_true", help="make searches case sensitive"
    )
    parser.add_argument(
        "-W", "--whole-word", action="store_true", help="match whole words when searching"
    )
    parser.add_argument("-R", "--regex", action="store_true", help="use regex when searching")
    parser.add_argument(
        "-m", "--mem-as-value", action="store_true", help="show memory as bytes, not percent"
    )
    parser.add_argument(
        "-c", "--command", action="store_true", help="show full commands instead of names"
    )
    parser.add_argument("--log-file", default=None, help="write logs to this file")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="log level used with --log-file",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> ProcessConfig:
    """Parse command-line arguments into a ProcessConfig."""
    args = build_parser().parse_args(argv)
    if args.tree:
        mode = "tree"
    elif args.group:
        mode = "grouped"
    else:
        mode = "normal"

    return ProcessConfig(
        poll_rate=max(0.1, args.rate),
        default_mode=mode,
        is_case_sensitive=args.case_sensitive,
        is_match_whole_word=args.whole_word,
        is_use_regex=args.regex,
        show_memory_as_values=args.mem_as_value,
        is_command=args.command,
        log_file=args.log_file,
        log_level=args.log_level,
    )


def configure_logging(config: ProcessConfig) -> None:
    """
    Send logs to the configured file.

    Without a log file nothing is configured, since the terminal belongs to the UI.
    """
    if config.log_file is None:
        return
    if not logging.getLogger().handlers:
        logging.basicConfig(
            filename=config.log_file,
            level=config.log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            filemode="a",
        )
    logging.getLogger("psutil").setLevel(logging.WARNING)
