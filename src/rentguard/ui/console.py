"""Interactive moderator console for triaging the review queue."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
import os

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import PromptSession

from rentguard.datatypes.moderation_datatypes import EntityType, ModerationFlag
from rentguard.datatypes.queue_datatypes import QueueFilters, QueuePriority, QueueStatus
from rentguard.moderation.errors import QueueItemNotFoundError
from rentguard.moderation.moderation_engine import ModerationEngine
from rentguard.util.logger import get_logger

# Box drawing helpers for aligned console output
BOX_WIDTH = 45

def box_line(char: str) -> str:
    return char * BOX_WIDTH

def box_title(title: str) -> list[str]:
    inner_width = BOX_WIDTH - 2
    pad_left = (inner_width - len(title)) // 2
    pad_right = inner_width - len(title) - pad_left
    return [
        f"╔{'═' * inner_width}╗",
        f"║{' ' * pad_left}{title}{' ' * pad_right}║",
        f"╚{'═' * inner_width}╝"
    ]

logger = get_logger("console")

CommandHandler = Callable[["ConsoleControl", list[str]], Awaitable[None]]

_SEVERITY_STYLES = {
    "CRITICAL": "ansired bold",
    "HIGH": "ansired",
    "MEDIUM": "ansiyellow",
    "LOW": "ansibrightblack",
}


@dataclass
class Command:
    """Definition of a console command."""
    name: str
    handler: CommandHandler
    aliases: list[str]
    description: str
    usage: str = ""

    def matches(self, input_cmd: str) -> bool:
        """Check if input matches this command or any alias."""
        return input_cmd == self.name or input_cmd in self.aliases


def console_print(message: str, style: str = "") -> None:
    """Render text via prompt_toolkit without breaking the active prompt."""
    formatted: FormattedText | str
    if style:
        formatted = FormattedText([(style, message)])
    else:
        formatted = message
    print_formatted_text(formatted)


def print_flag(flag: ModerationFlag, indent: str = "    ") -> None:
    console_print(
        f"{indent}[{flag.severity}] {flag.type} ({flag.confidence:.2f}) - {flag.description}",
        _SEVERITY_STYLES.get(flag.severity.value, ""),
    )


class ConsoleControl:
    """State shared by console commands: the engine and the acting moderator."""

    def __init__(self, engine: ModerationEngine, moderator_id: str | None = None) -> None:
        self.shutdown_event = asyncio.Event()
        self.engine = engine
        self.moderator_id = moderator_id

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    def stop(self) -> None:
        self.shutdown_event.set()

    def is_shutdown_requested(self) -> bool:
        return self.shutdown_event.is_set()


def parse_queue_filters(args: list[str]) -> QueueFilters:
    """
    Build queue filters from free-order tokens such as ``pending high listing``.

    Raises:
        ValueError: If a token is not a known status, priority, or entity type.
    """
    filters = QueueFilters()
    for token in args:
        value = token.upper()
        if value in QueueStatus.__members__:
            filters.status = QueueStatus(value)
        elif value in QueuePriority.__members__:
            filters.priority = QueuePriority(value)
        elif value in EntityType.__members__:
            filters.entity_type = value
        else:
            raise ValueError(f"Unknown queue filter '{token}'")
    return filters


def _require_moderator(control: ConsoleControl) -> str | None:
    if not control.moderator_id:
        console_print("No moderator id configured. Set RENTGUARD_MODERATOR_ID.", "ansired")
        return None
    return control.moderator_id


# ==================== Command Handlers ====================

async def cmd_help(control: ConsoleControl, args: list[str]) -> None:
    """Display available commands and their descriptions."""
    for line in box_title("Moderator Commands"):
        console_print(line, "ansigreen")

    for cmd in COMMANDS:
        aliases_str = f" (aliases: {', '.join(cmd.aliases)})" if cmd.aliases else ""
        console_print(f"\n  {cmd.name}{aliases_str}", "ansicyan")
        console_print(f"    {cmd.description}")
        if cmd.usage:
            console_print(f"    Usage: {cmd.usage}", "ansibrightblack")

    console_print("")


async def cmd_queue(control: ConsoleControl, args: list[str]) -> None:
    """List review queue items, newest first."""
    try:
        filters = parse_queue_filters(args)
    except ValueError as exc:
        console_print(str(exc), "ansired")
        return

    items = await control.engine.get_moderation_queue(filters)
    if not items:
        console_print("Queue is empty for these filters.", "ansiyellow")
        return

    for line in box_title(f"Review Queue ({len(items)})"):
        console_print(line, "ansiblue")

    for item in items:
        created = item.created_at.strftime("%Y-%m-%d %H:%M") if item.created_at else "-"
        console_print(
            f"  #{item.id} {item.entity_type} {item.entity_id}  {item.priority}  {item.status}  {created}",
            "ansicyan",
        )
        if item.owner_id:
            console_print(f"    owner: {item.owner_id}", "ansibrightblack")
        for flag in item.flags:
            print_flag(flag)
        if item.resolved_by:
            console_print(f"    resolved by {item.resolved_by}: {item.notes or ''}", "ansibrightblack")

    console_print("")


async def cmd_approve(control: ConsoleControl, args: list[str]) -> None:
    """Approve the queued item for an entity."""
    if not args:
        console_print("Usage: approve <entity_id> [notes...]", "ansiyellow")
        return
    moderator_id = _require_moderator(control)
    if moderator_id is None:
        return

    notes = " ".join(args[1:]) or None
    try:
        item = await control.engine.approve_content(args[0], moderator_id, notes)
    except QueueItemNotFoundError as exc:
        console_print(str(exc), "ansired")
        return
    console_print(f"Approved {item.entity_type} {item.entity_id} (item #{item.id}).", "ansigreen")


async def cmd_reject(control: ConsoleControl, args: list[str]) -> None:
    """Reject the queued item for an entity; a reason is required."""
    if len(args) < 2:
        console_print("Usage: reject <entity_id> <reason...>", "ansiyellow")
        return
    moderator_id = _require_moderator(control)
    if moderator_id is None:
        return

    try:
        item = await control.engine.reject_content(args[0], moderator_id, " ".join(args[1:]))
    except QueueItemNotFoundError as exc:
        console_print(str(exc), "ansired")
        return
    console_print(f"Rejected {item.entity_type} {item.entity_id} (item #{item.id}).", "ansigreen")


async def cmd_history(control: ConsoleControl, args: list[str]) -> None:
    """Show a user's moderation history and risk level."""
    if not args:
        console_print("Usage: history <user_id>", "ansiyellow")
        return

    history = await control.engine.get_user_history(args[0])

    for line in box_title(f"History: {history.user_id}"):
        console_print(line, "ansiblue")
    console_print(f"  Risk level:        {history.risk_level}")
    console_print(f"  Total violations:  {history.total_violations}")
    console_print(f"  Recent violations: {history.recent_violations}")

    for record in history.records:
        created = record.created_at.strftime("%Y-%m-%d %H:%M") if record.created_at else "-"
        console_print(
            f"  {created}  {record.action}  {record.entity_type} {record.entity_id}",
            "ansibrightblack",
        )
    console_print("")


async def cmd_stats(control: ConsoleControl, args: list[str]) -> None:
    """Display queue totals."""
    stats = await control.engine.get_queue_stats()

    for line in box_title("Queue Stats"):
        console_print(line, "ansiblue")
    console_print(f"  Pending:   {stats.pending}")
    for priority in (QueuePriority.HIGH, QueuePriority.MEDIUM, QueuePriority.LOW):
        console_print(f"    {priority.value:<7} {stats.pending_by_priority.get(priority, 0)}", "ansibrightblack")
    console_print(f"  Approved:  {stats.approved}")
    console_print(f"  Rejected:  {stats.rejected}")
    console_print("")


async def cmd_test(control: ConsoleControl, args: list[str]) -> None:
    """Run the text classifier and PII detection against arbitrary text."""
    if not args:
        console_print("Usage: test <text...>", "ansiyellow")
        return

    report = await control.engine.test_text(" ".join(args))
    console_print(f"  Confidence: {report['confidence']:.2f}")
    if not report["flags"] and not report["pii_flags"]:
        console_print("  No flags.", "ansigreen")
    for flag in [*report["pii_flags"], *report["flags"]]:
        print_flag(flag, indent="  ")
    console_print(f"  Masked: {report['masked_text']}", "ansibrightblack")


async def cmd_clear(control: ConsoleControl, args: list[str]) -> None:
    """Clear the console screen."""
    os.system('cls' if os.name == 'nt' else 'clear')
    console_print("Console cleared.", "ansigreen")


async def cmd_shutdown(control: ConsoleControl, args: list[str]) -> None:
    """Request graceful shutdown."""
    console_print("Shutdown requested.", "ansiyellow")
    control.request_shutdown()


# ==================== Command Registry ====================

COMMANDS: list[Command] = [
    Command(
        name="help",
        handler=cmd_help,
        aliases=["h", "?"],
        description="Show this help message with all available commands",
    ),
    Command(
        name="queue",
        handler=cmd_queue,
        aliases=["q", "list"],
        description="List review queue items (filter by status, priority, entity type)",
        usage="queue [pending|approved|rejected] [low|medium|high] [listing|profile|message|review]",
    ),
    Command(
        name="approve",
        handler=cmd_approve,
        aliases=["a"],
        description="Approve the queued item for an entity",
        usage="approve <entity_id> [notes...]",
    ),
    Command(
        name="reject",
        handler=cmd_reject,
        aliases=["r"],
        description="Reject the queued item for an entity",
        usage="reject <entity_id> <reason...>",
    ),
    Command(
        name="history",
        handler=cmd_history,
        aliases=["user"],
        description="Show a user's moderation history and risk level",
        usage="history <user_id>",
    ),
    Command(
        name="stats",
        handler=cmd_stats,
        aliases=["stat"],
        description="Show pending/approved/rejected totals",
    ),
    Command(
        name="test",
        handler=cmd_test,
        aliases=["t"],
        description="Run the text classifier against arbitrary text",
        usage="test <text...>",
    ),
    Command(
        name="clear",
        handler=cmd_clear,
        aliases=["cls"],
        description="Clear the console screen",
    ),
    Command(
        name="quit",
        handler=cmd_shutdown,
        aliases=["shutdown", "stop", "exit"],
        description="Close the console and shut down",
    ),
]


# ==================== Command Dispatcher ====================

async def handle_console_command(command: str, control: ConsoleControl) -> None:
    """Interpret and execute a single console command line."""
    if not command.strip():
        return

    parts = command.strip().split()
    cmd_name = parts[0].lower()
    args = parts[1:]

    for cmd in COMMANDS:
        if cmd.matches(cmd_name):
            try:
                await cmd.handler(control, args)
            except Exception as exc:
                logger.exception("Error executing command '%s': %s", cmd_name, exc)
                console_print(f"Error executing command: {exc}", "ansired")
            return

    console_print(f"Unknown command '{cmd_name}'. Type 'help' for available commands.", "ansired")


async def run_console(control: ConsoleControl) -> None:
    """Run the interactive moderator console until shutdown is requested."""
    session = PromptSession("moderator> ")

    for line in box_title("Rentguard Moderator Console"):
        console_print(line, "ansigreen")
    console_print("Type 'help' for available commands or 'quit' to exit.\n", "ansibrightblack")

    with patch_stdout():
        while not control.is_shutdown_requested():
            try:
                line = await session.prompt_async()
                if line.strip():
                    await handle_console_command(line, control)
            except (EOFError, KeyboardInterrupt):
                console_print("\nShutdown requested by user.", "ansiyellow")
                control.request_shutdown()
                break


@asynccontextmanager
async def console_session(control: ConsoleControl) -> AsyncIterator[ConsoleControl]:
    """Run the console as a background task, cancelling it on exit."""
    console_task = asyncio.create_task(run_console(control))
    # A console that exits on its own still releases shutdown_event waiters
    console_task.add_done_callback(lambda _task: control.request_shutdown())
    try:
        yield control
    finally:
        control.stop()
        console_task.cancel()
        try:
            await console_task
        except asyncio.CancelledError:
            pass
