"""Command table and dispatch for slash commands."""

from __future__ import annotations

import argparse
import importlib
import logging
import shlex
import sys
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from .constants import COMMAND_PREFIX, DEFAULT_USAGE, HELP_COMMAND
from .errors import CommandParseError, ConfigurationError

if TYPE_CHECKING:
    from .messages import MessageSender
    from .stats import StatsManager

Handler = Callable[[argparse.Namespace, str, "MessageSender"], None]
Builder = Callable[[argparse.ArgumentParser, str, "MessageSender"], Any]


@dataclass(frozen=True)
class CommandSpec:
    name: str
    description: str
    handler: Handler
    builder: Builder | None = None
    aliases: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, item: Any) -> CommandSpec:
        if isinstance(item, CommandSpec):
            return item
        if not isinstance(item, Mapping):
            raise ConfigurationError(f"command descriptor must be a mapping, got {type(item).__name__}")
        try:
            return cls(
                name=str(item["name"]),
                description=str(item.get("description") or ""),
                handler=item["handler"],
                builder=item.get("builder"),
                aliases=tuple(item.get("aliases") or ()),
            )
        except KeyError as e:
            raise ConfigurationError(f"command descriptor missing {e.args[0]!r}") from e


class CommandTable(Mapping[str, CommandSpec]):
    """Read-only mapping of command name to `CommandSpec`, built once."""

    def __init__(self, commands: Iterable[Any] = ()) -> None:
        entries: dict[str, CommandSpec] = {}
        taken: set[str] = {HELP_COMMAND}
        for item in commands:
            spec = CommandSpec.from_config(item)
            if not callable(spec.handler):
                raise ConfigurationError(f"command {spec.name!r} has no callable handler")
            for name in (spec.name, *spec.aliases):
                if not name or any(ch.isspace() for ch in name) or name.startswith("-"):
                    raise ConfigurationError(f"invalid command name {name!r}")
                if name in taken:
                    raise ConfigurationError(f"duplicate command name {name!r}")
                taken.add(name)
            entries[spec.name] = spec
        self._entries = entries

    def __getitem__(self, name: str) -> CommandSpec:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class _ParserExit(Exception):
    def __init__(self, status: int, message: str | None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class CommandParser(argparse.ArgumentParser):
    """ArgumentParser that never exits the process or writes to stdio.

    Printed text (help) is collected into ``output``; errors raise
    `CommandParseError` carrying the parser's help.
    """

    def __init__(self, *args: Any, output: list[str] | None = None, **kwargs: Any) -> None:
        if sys.version_info >= (3, 14):
            # Replies are plain text; never emit ANSI colour codes.
            kwargs.setdefault("color", False)
        super().__init__(*args, **kwargs)
        self.output = output if output is not None else []

    def _print_message(self, message: str, file: Any = None) -> None:
        if message:
            self.output.append(message)

    def exit(self, status: int = 0, message: str | None = None):
        raise _ParserExit(status, message)

    def error(self, message: str):
        raise CommandParseError(message, usage=self.format_help())


class CommandDispatcher:
    """
    Parses a command line against the command table and runs the handler.

    The parser is rebuilt for every dispatch so builders can shape options
    per sender. User-visible outcomes are replies only:
    - help output -> result reply
    - parse errors -> error reply with usage text
    - handler exceptions -> error reply naming the command
    """

    def __init__(
        self,
        table: CommandTable,
        *,
        script_name: str = "",
        usage: str = DEFAULT_USAGE,
        prefix: str = COMMAND_PREFIX,
        stats: StatsManager | None = None,
    ) -> None:
        self.table = table
        self.script_name = script_name
        self.usage = usage
        self.prefix = prefix
        self.stats = stats
        self.log = logging.getLogger("rnsterm.commands")

    def _inc(self, key: str) -> None:
        if self.stats is not None:
            self.stats.inc(key)

    def build_parser(
        self, src: str, sender: MessageSender, output: list[str]
    ) -> tuple[CommandParser, dict[str, CommandParser]]:
        parser = CommandParser(prog=self.script_name, usage=self.usage, output=output)
        sub = parser.add_subparsers(
            dest="command", metavar="<command>", title="commands", required=True
        )

        by_name: dict[str, CommandParser] = {}

        help_parser = sub.add_parser(
            HELP_COMMAND,
            prog=f"{self.prefix}{HELP_COMMAND}",
            help="Show available commands",
            description="Show available commands, or the options of one command",
            output=output,
        )
        help_parser.add_argument("topic", nargs="?", help="Command to describe")
        help_parser.set_defaults(_spec=None)
        by_name[HELP_COMMAND] = help_parser

        for spec in self.table.values():
            cmd_parser = sub.add_parser(
                spec.name,
                prog=f"{self.prefix}{spec.name}",
                aliases=list(spec.aliases),
                help=spec.description,
                description=spec.description,
                output=output,
            )
            if spec.builder is not None:
                spec.builder(cmd_parser, src, sender)
            cmd_parser.set_defaults(_spec=spec)
            by_name[spec.name] = cmd_parser
            for alias in spec.aliases:
                by_name[alias] = cmd_parser

        return parser, by_name

    def dispatch(self, line: str, src: str, sender: MessageSender) -> str:
        """Parse ``line`` (without the prefix) and run the matching command.

        Returns the top-level help text.
        """
        output: list[str] = []
        parser, by_name = self.build_parser(src, sender, output)
        help_text = parser.format_help()

        try:
            argv = shlex.split(line)
            args = parser.parse_args(argv)
        except CommandParseError as e:
            self._inc("parse_errors")
            self.log.info("Rejected command src=%s: %s", src, e)
            sender.send_error(src, f"Error: {e}\n\n{e.usage}".rstrip())
            return help_text
        except ValueError as e:
            # shlex: unbalanced quotes and similar
            self._inc("parse_errors")
            self.log.info("Rejected command src=%s: %s", src, e)
            sender.send_error(src, f"Error: {e}\n\n{help_text}".rstrip())
            return help_text
        except _ParserExit as e:
            text = "".join(output).strip() or (e.message or "").strip()
            if text:
                sender.send_result(src, text)
            return help_text

        spec: CommandSpec | None = vars(args).pop("_spec", None)
        if spec is None:
            self._send_help(args, src, sender, help_text, by_name)
            return help_text

        self._inc("commands")
        self.log.info("Executing command %s src=%s", spec.name, src)
        try:
            spec.handler(args, src, sender)
        except Exception as e:
            self._inc("command_errors")
            self.log.error("Error executing command %s: %s", spec.name, e, exc_info=True)
            sender.send_error(src, f"Error executing command {spec.name}: {e}")

        return help_text

    def _send_help(
        self,
        args: argparse.Namespace,
        src: str,
        sender: MessageSender,
        help_text: str,
        by_name: dict[str, CommandParser],
    ) -> None:
        topic = getattr(args, "topic", None)
        if not topic:
            sender.send_result(src, help_text.strip())
            return

        topic = topic[len(self.prefix):] if topic.startswith(self.prefix) else topic
        cmd_parser = by_name.get(topic)
        if cmd_parser is None:
            sender.send_error(src, f"Unknown command: {topic}\n\n{help_text}".rstrip())
            return
        sender.send_result(src, cmd_parser.format_help().strip())


def load_commands_module(path: str) -> list[CommandSpec]:
    """Import ``path`` and return the command descriptors in its ``COMMANDS``."""
    try:
        module = importlib.import_module(path)
    except ImportError as e:
        raise ConfigurationError(f"cannot import commands module {path!r}: {e}") from e

    commands = getattr(module, "COMMANDS", None)
    if commands is None:
        raise ConfigurationError(f"commands module {path!r} has no COMMANDS")
    if callable(commands):
        commands = commands()
    return [CommandSpec.from_config(c) for c in commands]


def builtin_commands(
    stats: StatsManager | None = None,
) -> list[CommandSpec]:
    """Small built-in command set installed by the CLI daemon."""

    def _echo_args(parser: argparse.ArgumentParser, src: str, sender: MessageSender) -> None:
        parser.add_argument("words", nargs="+", help="Text to send back")

    def _echo(args: argparse.Namespace, src: str, sender: MessageSender) -> None:
        sender.send_result(src, " ".join(args.words))

    def _whoami(args: argparse.Namespace, src: str, sender: MessageSender) -> None:
        sender.send_result(src, src)

    def _stats(args: argparse.Namespace, src: str, sender: MessageSender) -> None:
        if stats is None:
            sender.send_result(src, "stats unavailable")
            return
        sender.send_result(src, stats.format_stats())

    return [
        CommandSpec("echo", "Send the given text back", _echo, builder=_echo_args),
        CommandSpec("whoami", "Show your peer address", _whoami),
        CommandSpec("stats", "Show terminal counters", _stats),
    ]
