# src/openstud/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, cast

from ..core.persona import PERSONA_PROMPTS, resolve_persona
from ..core.state import AppState
from ..tasks.task_changes import save_button_label
from ..tasks.task_models import INDIVIDUAL_WORKSPACE, Task, WorkspaceRole
from ..tasks.workspace_tasks import (
    get_project_task_stats,
    get_recent_activity,
    get_task_stats_by_category,
    get_workspace_project_task_stats,
    get_workspace_tasks,
)

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /save, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Domain errors (not found / access denied / invalid input) become the reply text.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        nparams = len(inspect.signature(handler).parameters)

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except (LookupError, PermissionError, ValueError) as e:
            logger.debug("Command /%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_date(ts: float | None) -> str:
    if ts is None:
        return "no due date"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d")


def _parse_date(raw: str) -> float:
    try:
        return datetime.strptime(raw, "%Y-%m-%d").astimezone().timestamp()
    except ValueError:
        raise ValueError(f"Invalid date: {raw} (expected YYYY-MM-DD)") from None


def _fmt_task(state: AppState, task: Task) -> str:
    """One task line; staged edits are shown next to the stored value."""
    pct = f"{task.completion_percentage}%"
    pending = state.changes.get_change_for(task.id)
    if pending and "completion_percentage" in pending:
        pct = f"{task.completion_percentage}% -> {pending['completion_percentage']}% (unsaved)"
    mark = "x" if (pending or {}).get("completed", task.completed) else " "
    extra = []
    if task.priority:
        extra.append(task.priority.value)
    if task.category:
        extra.append(task.category.value)
    extra_str = f" [{', '.join(extra)}]" if extra else ""
    return f"[{mark}] {task.id}  {task.title}  {pct}  due {_fmt_date(task.due_at)}{extra_str}"


def _workspace_arg(args: list[str]) -> str:
    return args[0] if args else INDIVIDUAL_WORKSPACE


def _parse_role(raw: str) -> WorkspaceRole:
    try:
        return WorkspaceRole(raw.upper())
    except ValueError:
        raise ValueError(f"Unknown role: {raw} (member, admin or owner)") from None


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    models = ", ".join(list(getattr(state.settings, "llm_models", []) or []))
    pending = len(state.changes)
    return (
        "Status:\n"
        f"  User: {state.identity.user_id}\n"
        f"  Persona: {state.persona or 'base'}\n"
        f"  Conversation: {state.conversation_id or '(new on next message)'}\n"
        f"  Unsaved task changes: {pending}\n"
        f"  Models (priority -> fallback): {models}"
    )


def cmd_workspaces(state: AppState, args: list[str]) -> str:
    lines = ["Workspaces:", f"  {INDIVIDUAL_WORKSPACE}  (personal)"]
    for ws in state.task_store.list_workspaces(state.identity):
        role = state.task_store.get_member_role(ws.id, state.identity.user_id)
        lines.append(f"  {ws.id}  {ws.name}  ({role.value if role else '?'})")
    return "\n".join(lines)


def cmd_workspace(state: AppState, args: list[str]) -> str:
    """
    /workspace new <name...>
    /workspace add <workspace_id> <user_id> [member|admin|owner]
    /workspace members <workspace_id>
    /workspace remove <workspace_id> <user_id>
    /workspace role <workspace_id> <user_id> <member|admin|owner>
    /workspace rename <workspace_id> <name...>
    /workspace delete <workspace_id>
    """
    usage = (
        "Usage:\n"
        "  /workspace new <name>\n"
        "  /workspace add <workspace_id> <user_id> [member|admin|owner]\n"
        "  /workspace members <workspace_id>\n"
        "  /workspace remove <workspace_id> <user_id>\n"
        "  /workspace role <workspace_id> <user_id> <member|admin|owner>\n"
        "  /workspace rename <workspace_id> <name>\n"
        "  /workspace delete <workspace_id>"
    )
    if not args:
        return usage

    sub = args[0].lower()
    if sub == "new" and len(args) >= 2:
        ws = state.task_store.create_workspace(state.identity, name=" ".join(args[1:]))
        return f"Workspace created: {ws.id} ({ws.name})"

    if sub == "add" and len(args) >= 3:
        role = _parse_role(args[3]) if len(args) >= 4 else WorkspaceRole.MEMBER
        member = state.task_store.add_workspace_member(state.identity, args[1], args[2], role)
        return f"Added {member.user_id} as {member.role.value}."

    if sub == "members" and len(args) >= 2:
        members = state.task_store.list_workspace_members(state.identity, args[1])
        lines = [f"Members of {args[1]}:"]
        lines.extend(f"  {m.user_id} ({m.role.value})" for m in members)
        return "\n".join(lines)

    if sub == "remove" and len(args) >= 3:
        state.task_store.remove_workspace_member(state.identity, args[1], args[2])
        return f"Removed {args[2]} from {args[1]}."

    if sub == "role" and len(args) >= 4:
        member = state.task_store.update_workspace_member_role(
            state.identity, args[1], args[2], _parse_role(args[3])
        )
        return f"{member.user_id} is now {member.role.value}."

    if sub == "rename" and len(args) >= 3:
        ws = state.task_store.update_workspace(state.identity, args[1], name=" ".join(args[2:]))
        return f"Workspace renamed: {ws.name}"

    if sub == "delete" and len(args) >= 2:
        state.task_store.delete_workspace(state.identity, args[1])
        return "Workspace deleted with all its projects and tasks."

    return usage


def cmd_projects(state: AppState, args: list[str]) -> str:
    workspace_id = _workspace_arg(args)
    projects = state.task_store.list_projects(state.identity, workspace_id)
    if not projects:
        return f"No projects in {workspace_id}."
    lines = [f"Projects in {workspace_id}:"]
    lines.extend(f"  {p.id}  {p.name}" for p in projects)
    return "\n".join(lines)


def cmd_project(state: AppState, args: list[str]) -> str:
    """
    /project new <workspace_id|individual> <name...>
    /project stats <project_id>
    /project delete <project_id>
    """
    usage = (
        "Usage:\n"
        "  /project new <workspace_id|individual> <name>\n"
        "  /project stats <project_id>\n"
        "  /project delete <project_id>"
    )
    if len(args) < 2:
        return usage

    sub = args[0].lower()
    if sub == "new" and len(args) >= 3:
        project = state.task_store.create_project(
            state.identity, name=" ".join(args[2:]), workspace_id=args[1]
        )
        return f"Project created: {project.id} ({project.name})"

    if sub == "stats":
        s = get_project_task_stats(state.task_store, state.identity, args[1])
        return (
            f"{s.name}: {s.completed_tasks}/{s.total_tasks} done, "
            f"avg {s.avg_completion_percentage:.0f}%"
        )

    if sub == "delete":
        project = state.task_store.delete_project(state.identity, args[1])
        return f"Project deleted: {project.name}"

    return usage


def cmd_tasks(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /tasks <project_id>"
    tasks = state.task_store.list_tasks(state.identity, args[0])
    if not tasks:
        return "No tasks in this project."
    return "\n".join(["Tasks:", *(f"  {_fmt_task(state, t)}" for t in tasks)])


def cmd_task(state: AppState, args: list[str]) -> str:
    """
    /task new <project_id> <title...>
    /task due <task_id> <YYYY-MM-DD>     (staged, needs /save)
    /task priority <task_id> <low|medium|high|urgent>   (staged)
    /task delete <task_id>
    """
    usage = (
        "Usage:\n"
        "  /task new <project_id> <title>\n"
        "  /task due <task_id> <YYYY-MM-DD>\n"
        "  /task priority <task_id> <low|medium|high|urgent>\n"
        "  /task delete <task_id>"
    )
    if len(args) < 2:
        return usage

    sub = args[0].lower()
    if sub == "new" and len(args) >= 3:
        task = state.task_store.create_task(
            state.identity, project_id=args[1], title=" ".join(args[2:])
        )
        return f"Task created: {task.id} ({task.title})"

    if sub == "due" and len(args) >= 3:
        state.changes.add_change(args[1], {"due_at": _parse_date(args[2])})
        return f"Due date staged for {args[1]}. {save_button_label(len(state.changes))} with /save."

    if sub == "priority" and len(args) >= 3:
        state.changes.add_change(args[1], {"priority": args[2]})
        return f"Priority staged for {args[1]}. {save_button_label(len(state.changes))} with /save."

    if sub == "delete":
        task = state.task_store.delete_task(state.identity, args[1])
        return f"Task deleted: {task.title}"

    return usage


def cmd_due(state: AppState, args: list[str]) -> str:
    workspace_id = _workspace_arg(args)
    items = get_workspace_tasks(state.task_store, state.identity, workspace_id)
    if not items:
        return f"No tasks with due dates in {workspace_id}."
    lines = [f"Upcoming tasks in {workspace_id}:"]
    lines.extend(
        f"  {_fmt_date(i.task.due_at)}  {i.task.title}  ({i.project_name}, {i.task.completion_percentage}%)"
        for i in items
    )
    return "\n".join(lines)


def cmd_stats(state: AppState, args: list[str]) -> str:
    """
    /stats [workspace_id]   per-project progress
    /stats categories [workspace_id]   average completion per category
    """
    if args and args[0].lower() == "categories":
        scope = args[1] if len(args) >= 2 else None
        cats = get_task_stats_by_category(state.task_store, state.identity, scope)
        if not cats:
            return "No tasks yet."
        lines = [f"Average completion by category{f' in {scope}' if scope else ''}:"]
        lines.extend(f"  {c.name}: {c.avg_completion}% ({c.total} tasks)" for c in cats)
        return "\n".join(lines)

    workspace_id = _workspace_arg(args)
    stats = get_workspace_project_task_stats(state.task_store, state.identity, workspace_id)
    if not stats:
        return f"No projects in {workspace_id}."
    lines = [f"Project progress in {workspace_id}:"]
    lines.extend(
        f"  {s.name}: {s.completed_tasks}/{s.total_tasks} done, avg {s.avg_completion_percentage:.0f}%"
        for s in stats
    )
    return "\n".join(lines)


def cmd_activity(state: AppState, args: list[str]) -> str:
    """/activity [workspace_id]  recently touched tasks (all scopes by default)"""
    items = get_recent_activity(state.task_store, state.identity, args[0] if args else None)
    if not items:
        return "No recent activity."
    lines = ["Recent activity:"]
    lines.extend(
        f"  {datetime.fromtimestamp(a.at).astimezone().strftime('%Y-%m-%d %H:%M')}  "
        f"{a.description} ({a.user_id or 'unknown'})"
        for a in items
    )
    return "\n".join(lines)


def cmd_progress(state: AppState, args: list[str]) -> str:
    """/progress <task_id> <0-100>  (staged, needs /save)"""
    if len(args) < 2:
        return "Usage: /progress <task_id> <0-100>"
    try:
        pct = int(args[1].rstrip("%"))
    except ValueError:
        return "Progress must be a whole number between 0 and 100."
    state.changes.add_change(args[0], {"completion_percentage": pct})
    return f"Progress {pct}% staged for {args[0]}. {save_button_label(len(state.changes))} with /save."


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <task_id>"
    state.changes.add_change(args[0], {"completion_percentage": 100})
    return f"Marked {args[0]} as done (unsaved). {save_button_label(len(state.changes))} with /save."


def _fmt_fields(fields: dict[str, Any]) -> str:
    parts = []
    for key, value in fields.items():
        if key == "due_at":
            value = _fmt_date(value)
        elif hasattr(value, "value"):
            value = value.value
        parts.append(f"{key}={value}")
    return ", ".join(parts)


def cmd_changes(state: AppState, args: list[str]) -> str:
    pending = state.changes.list_pending_changes()
    if not pending:
        return "No unsaved changes."
    lines = [f"Unsaved changes ({len(pending)}):"]
    lines.extend(f"  {c.task_id}: {_fmt_fields(c.fields)}" for c in pending)
    lines.append(f"Use /save ({save_button_label(len(pending))}) or /discard.")
    return "\n".join(lines)


def cmd_save(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    n = len(state.changes)
    if n == 0:
        return "No changes to save."
    if emit:
        emit(f"Saving {n} task change{'s' if n != 1 else ''}...")

    report = asyncio.run(state.changes.save_all_changes(state.identity))

    if report.ok:
        return "All changes saved successfully."
    lines = [f"Saved {len(report.saved)} of {report.attempted}. These tasks were not saved:"]
    lines.extend(f"  {f.task_id}: {f.reason}" for f in report.failed)
    lines.append("They are still pending: fix and /save again, or /discard.")
    return "\n".join(lines)


def cmd_discard(state: AppState, args: list[str]) -> str:
    n = state.changes.discard_all_changes()
    if n == 0:
        return "No changes to discard."
    return f"All changes discarded ({n})."


def cmd_persona(state: AppState, args: list[str]) -> str:
    if not args:
        return (
            f"Current persona: {state.persona or 'base'}. "
            f"Available: base, {', '.join(PERSONA_PROMPTS)}."
        )
    name = args[0].lower()
    state.persona = None if name == "base" else resolve_persona(name)
    return f"Persona set to {state.persona or 'base'}."


def cmd_chats(state: AppState, args: list[str]) -> str:
    convs = state.conversations.list_conversations(state.identity)
    if not convs:
        return "No conversations yet. Just type a question to start one."
    lines = ["Conversations:"]
    for c in convs:
        marker = "*" if c.id == state.conversation_id else " "
        lines.append(f" {marker} {c.id}  {c.title}")
    return "\n".join(lines)


def cmd_chat(state: AppState, args: list[str]) -> str:
    """
    /chat new            start a fresh conversation with the next message
    /chat <id>           continue an existing conversation
    /chat delete <id>
    """
    if not args:
        return "Usage: /chat new | /chat <conversation_id> | /chat delete <conversation_id>"

    sub = args[0].lower()
    if sub == "new":
        state.conversation_id = None
        return "Next message starts a new conversation."

    if sub == "delete" and len(args) >= 2:
        state.conversations.delete_conversation(state.identity, args[1])
        if state.conversation_id == args[1]:
            state.conversation_id = None
        return "Conversation deleted."

    conv = state.conversations.get_conversation(state.identity, args[0])
    state.conversation_id = conv.id
    return f"Continuing conversation: {conv.title}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show session status.")
registry.register("workspaces", cmd_workspaces, help_text="List your workspaces.")
registry.register(
    "workspace",
    cmd_workspace,
    help_text="Workspace admin: new | add | members | remove | role | rename | delete.",
)
registry.register("projects", cmd_projects, help_text="List projects: /projects [workspace_id].")
registry.register("project", cmd_project, help_text="Project actions: new | stats | delete.")
registry.register("tasks", cmd_tasks, help_text="List tasks of a project: /tasks <project_id>.")
registry.register("task", cmd_task, help_text="Task actions: new | due | priority | delete.")
registry.register("due", cmd_due, help_text="Tasks with due dates: /due [workspace_id].")
registry.register(
    "stats", cmd_stats, help_text="Progress stats: /stats [workspace_id] | /stats categories [workspace_id]."
)
registry.register("activity", cmd_activity, help_text="Recent task activity: /activity [workspace_id].")
registry.register("progress", cmd_progress, help_text="Stage progress: /progress <task_id> <0-100>.")
registry.register("done", cmd_done, help_text="Stage completion: /done <task_id>.")
registry.register("changes", cmd_changes, help_text="List unsaved task changes.")
registry.register("save", cmd_save, help_text="Save all unsaved task changes.")
registry.register("discard", cmd_discard, help_text="Discard all unsaved task changes.")
registry.register("persona", cmd_persona, help_text="Tutor persona: /persona [name].")
registry.register("chats", cmd_chats, help_text="List your tutor conversations.")
registry.register("chat", cmd_chat, help_text="Conversation: /chat new | /chat <id> | /chat delete <id>.")
