"""Subcommand dispatcher shared by the command line tools."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from utils.error_tracker import ErrorTracker
from utils.logger import Logger, LoggerType

Handler = Callable[[argparse.Namespace], Optional[int]]


@dataclass
class Command:
    """A subcommand; the handler may return a process exit code."""

    name: str
    handler: Handler
    add_arguments: Optional[Callable[[argparse.ArgumentParser], None]] = None
    help: str | None = None


@dataclass
class CommandDispatcher:
    """Register and execute subcommands using ``argparse``.

    Every subcommand also accepts ``--log-level`` and ``--no-log-file``,
    applied through :meth:`Logger.configure` before the handler runs.
    """

    description: str
    commands: Iterable[Command] = field(default_factory=list)

    @staticmethod
    def _add_logging_args(parser: argparse.ArgumentParser) -> None:
        group = parser.add_argument_group("logging")
        group.add_argument(
            "--log-level",
            default=None,
            choices=["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"],
        )
        group.add_argument(
            "--no-log-file",
            dest="log_file",
            action="store_false",
            help="Log to the console only",
        )

    def _build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(description=self.description)
        subparsers = parser.add_subparsers(dest="command")
        for cmd in self.commands:
            sp = subparsers.add_parser(cmd.name, help=cmd.help)
            if cmd.add_arguments:
                cmd.add_arguments(sp)
            self._add_logging_args(sp)
            sp.set_defaults(func=cmd.handler)
        return parser

    def run(
        self,
        args: Optional[list[str]] = None,
        *,
        logger: Optional[LoggerType] = None,
        track_exceptions: bool = True,
    ) -> int:
        """
        Parse arguments, dispatch the selected command and return its exit code.

        Any ``SystemExit`` raised by ``argparse`` is logged before re-raising.
        Optionally installs the global :class:`ErrorTracker` for uncaught
        exceptions.
        """
        if logger is None:
            logger = Logger.get_logger("utils.cli")

        if track_exceptions:
            ErrorTracker.install_excepthook()
            ErrorTracker.install_signal_handlers()

        parser = self._build_parser()

        try:
            ns = parser.parse_args(args)
        except SystemExit as exc:  # argparse calls sys.exit() on error
            logger.error(f"Argument parsing failed: {exc}")
            raise

        if not hasattr(ns, "func"):
            parser.print_help()
            return 2

        if ns.log_level is not None or not ns.log_file:
            Logger.configure(level=ns.log_level, to_file=ns.log_file)
        return ns.func(ns) or 0
