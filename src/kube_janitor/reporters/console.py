"""Rich console output for one-shot pod scans."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kube_janitor.models import Classification, ClassificationKind, PodSnapshot

console = Console()

_KIND_COLOR: dict[ClassificationKind, str] = {
    ClassificationKind.HEALTHY: "green",
    ClassificationKind.CRASH_LOOPING: "orange1",
    ClassificationKind.TERMINAL_FAILURE: "red",
}


def print_scan(
    results: list[tuple[PodSnapshot, Classification]],
    title: str = "Pod Scan",
    show_healthy: bool = False,
) -> None:
    """Print classified pods as a Rich table, offending pods first."""
    offending = [(p, c) for p, c in results if c.is_offending]
    rows = results if show_healthy else offending

    if not rows:
        console.print(
            Panel(f"[green]No offending pods among {len(results)} scanned.[/]", title=title)
        )
        return

    table = Table(title=title, show_header=True, header_style="bold", expand=True)
    table.add_column("Verdict", width=16, no_wrap=True)
    table.add_column("Namespace", min_width=12)
    table.add_column("Pod", min_width=30)
    table.add_column("Phase", width=10, no_wrap=True)
    table.add_column("Detail", min_width=20)

    order = {
        ClassificationKind.TERMINAL_FAILURE: 0,
        ClassificationKind.CRASH_LOOPING: 1,
        ClassificationKind.HEALTHY: 2,
    }
    for pod, result in sorted(rows, key=lambda r: (order[r[1].kind], r[0].identity.key)):
        color = _KIND_COLOR[result.kind]
        if result.kind == ClassificationKind.CRASH_LOOPING:
            detail = f"{result.restart_count} restarts"
        else:
            detail = result.reason
        table.add_row(
            f"[{color}]{result.kind.value.replace('_', ' ')}[/]",
            pod.namespace,
            pod.name,
            pod.phase or "-",
            detail,
        )

    console.print(table)
    console.print(
        f"[bold]{len(offending)} offending[/] of {len(results)} pod(s) scanned"
    )
