"""
Display helpers for the YISHI console.

Tables and panels for anchors, hints, option sets and audit results.
"""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..state.schema import Hint, HintKind, OptionSet
from ..systems.integrity import AuditResult, Severity
from ..systems.spawn import DirectedAnchor

# Shared console instance
console = Console()

THEME = {
    "primary": "dark_sea_green4",   # temple-smoke green
    "secondary": "grey70",
    "warning": "dark_goldenrod",
    "danger": "dark_red",
    "accent": "gold3",              # lamp light
    "dim": "dim",
}

SEVERITY_STYLE = {
    Severity.ERROR: THEME["danger"],
    Severity.WARNING: THEME["warning"],
    Severity.INFO: THEME["dim"],
}

HINT_STYLE = {
    HintKind.CLUE: THEME["secondary"],
    HintKind.ACTION: THEME["primary"],
    HintKind.ITEM: THEME["accent"],
}


def render_line(speaker: str | None, text: str) -> None:
    if speaker:
        console.print(Text(f"{speaker}: ", style=f"bold {THEME['accent']}") + Text(text))
    else:
        console.print(Text(text, style="italic"))


def render_notice(message: str) -> None:
    console.print(Panel(message, border_style=THEME["danger"], title="Notice"))


def render_choices(options: list[str], title: str = "Choose") -> None:
    table = Table(title=title, show_header=False, border_style=THEME["primary"])
    table.add_column("#", style=THEME["accent"], justify="right")
    table.add_column("Option")
    for i, text in enumerate(options, start=1):
        table.add_row(str(i), text)
    console.print(table)


def render_option_set(option_set: OptionSet) -> None:
    table = Table(title=f"The spirit seems {option_set.tone}" if option_set.tone else None,
                  border_style=THEME["primary"])
    table.add_column("#", style=THEME["accent"], justify="right")
    table.add_column("Say")
    table.add_column("Kind", style=THEME["dim"])
    table.add_column("Needs", style=THEME["warning"])
    for i, option in enumerate(option_set.options, start=1):
        table.add_row(str(i), option.text, option.category.value, ", ".join(option.requires))
    console.print(table)


def render_anchors(anchors: list[DirectedAnchor]) -> None:
    table = Table(title="Reachable anchors", border_style=THEME["primary"])
    table.add_column("Anchor", style=THEME["accent"])
    table.add_column("Location")
    table.add_column("Spirit")
    table.add_column("State")
    for directed in anchors:
        spirit = directed.service.spirit_id if directed.service else (directed.anchor.service_spirit or "")
        state = "[green]resolved[/green]" if directed.resolved else "open"
        table.add_row(directed.id, directed.anchor.location, spirit, state)
    console.print(table)


def render_hints(hints: list[Hint]) -> None:
    if not hints:
        console.print(f"[{THEME['dim']}]No hints right now.[/{THEME['dim']}]")
        return
    table = Table(title="Hints", border_style=THEME["primary"])
    table.add_column("Kind")
    table.add_column("Hint")
    for hint in hints:
        style = HINT_STYLE[hint.kind]
        table.add_row(f"[{style}]{hint.kind.value}[/{style}]", hint.text)
    console.print(table)


def render_audit(result: AuditResult) -> None:
    stats = ", ".join(f"{name} {count}" for name, count in result.stats.items())
    console.print(f"[{THEME['dim']}]Loaded: {stats}[/{THEME['dim']}]")

    if not result.issues:
        console.print("[green]All checks passed.[/green]")
        return

    table = Table(border_style=THEME["primary"])
    table.add_column("Severity")
    table.add_column("Category", style=THEME["dim"])
    table.add_column("Message")
    for issue in result.issues:
        style = SEVERITY_STYLE[issue.severity]
        table.add_row(f"[{style}]{issue.severity.value}[/{style}]", issue.category, issue.message)
    console.print(table)
    console.print(f"{result.error_count} errors, {result.warning_count} warnings")
