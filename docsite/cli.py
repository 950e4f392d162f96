"""CLI entrypoints for docsite commands."""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Callable

from .config import ConfigError, DocsiteConfig, load_config
from .errors import DocsiteError
from .logging import LEVEL_NAMES, configure_logging, get_logger
from .orchestrator import Orchestrator, RunSummary

logger = get_logger("cli")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    _add_verbose_option(parser, suppress_default=True)
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the project root (defaults to current directory).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a .docsite.yml file (defaults to <path>/.docsite.yml).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LEVEL_NAMES,
        default=None,
        help="Console log level (overrides --verbose).",
    )


def _add_generation_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum number of pages generated in parallel.",
    )


def _add_cleanup_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--destructive",
        dest="destructive",
        action="store_true",
        default=None,
        help="Delete orphaned pages instead of only reporting them.",
    )
    group.add_argument(
        "--dry-run",
        dest="destructive",
        action="store_false",
        help="Only report orphaned pages (the default).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docsite",
        description="Generate and maintain a documentation site from a source tree.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser(
        "plan",
        help="Scan the project and produce a validated documentation plan.",
    )
    _add_common_options(plan_parser)

    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate pages for the current plan.",
    )
    _add_common_options(generate_parser)
    _add_generation_options(generate_parser)

    clean_parser = subparsers.add_parser(
        "clean",
        help="Report (or remove) pages that are no longer in the plan.",
    )
    _add_common_options(clean_parser)
    _add_cleanup_options(clean_parser)

    build_parser = subparsers.add_parser(
        "build-all",
        help="Plan, generate and clean in a single run.",
    )
    _add_common_options(build_parser)
    _add_generation_options(build_parser)
    _add_cleanup_options(build_parser)

    return parser


def _load(args: argparse.Namespace) -> DocsiteConfig:
    root = Path(args.path).expanduser().resolve()
    if not root.is_dir():
        raise FileNotFoundError(f"Project path not found: {args.path}")
    config_path = args.config if args.config is not None else root
    config = load_config(config_path)
    if args.config is not None:
        config.root = root
    concurrency = getattr(args, "concurrency", None)
    if concurrency is not None:
        if concurrency < 1:
            raise ConfigError("--concurrency must be at least 1")
        config.concurrency = concurrency
    return config


def _install_interrupt_handler(cancel_event: threading.Event) -> Callable[[], None]:
    if threading.current_thread() is not threading.main_thread():
        return lambda: None

    def _handler(signum: int, frame: object) -> None:
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupt received; finishing in-flight pages (press Ctrl-C again to abort)")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, _handler)
    return lambda: signal.signal(signal.SIGINT, previous)


def main(argv: list[str] | None = None, *, orchestrator: Orchestrator | None = None) -> int:
    """CLI entrypoint for docsite commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file, level=args.log_level)

    cancel_event = orchestrator.cancel_event if orchestrator is not None else threading.Event()
    orchestrator = orchestrator or Orchestrator(cancel_event=cancel_event)
    restore = _install_interrupt_handler(cancel_event)

    try:
        config = _load(args)
        summary = _dispatch(orchestrator, args, config)
    except (ConfigError, FileNotFoundError, NotADirectoryError, DocsiteError) as exc:
        parser.exit(1, f"docsite {args.command} failed: {exc}\nRun with --verbose for more details.\n")
    finally:
        restore()

    print(summary.render())
    return summary.exit_code


def _dispatch(orchestrator: Orchestrator, args: argparse.Namespace, config: DocsiteConfig) -> RunSummary:
    if args.command == "plan":
        return orchestrator.run_plan(args.path, config=config)
    if args.command == "generate":
        return orchestrator.run_generate(args.path, config=config)
    if args.command == "clean":
        return orchestrator.run_clean(args.path, config=config, destructive=args.destructive)
    if args.command == "build-all":
        return orchestrator.run_build_all(args.path, config=config, destructive=args.destructive)
    raise DocsiteError(f"Unknown command {args.command}")  # pragma: no cover - argparse enforces choices


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
