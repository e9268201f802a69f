"""livesync CLI — run the LiveUpdate reconciler against a local store directory."""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from livesync import __version__

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs")
def main(verbose: bool):
    """livesync — sync changed files into running containers.

    Objects live in a store directory as YAML files, one per object:
    <store>/<Kind>/[<namespace>/]<name>.yaml
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# ── Reconcile ────────────────────────────────────────────────────────


@main.command()
@click.argument("name")
@click.option("--store", "-s", "store_dir", default=".livesync", help="Store directory")
@click.option("--namespace", "-n", default="", help="Namespace of the LiveUpdate")
@click.option("--config", "-c", "config_path", default=None, help="Reconciler config (YAML)")
def reconcile(name: str, store_dir: str, namespace: str, config_path: str | None):
    """Run one reconciliation pass for the LiveUpdate NAME."""
    from livesync.api.models import NamespacedName
    from livesync.config import ReconcilerConfig, load_config
    from livesync.reconciler import ReconcileError, Reconciler
    from livesync.store.client import LocalStore

    config = load_config(config_path) if config_path else ReconcilerConfig()
    store = LocalStore(store_dir)
    reconciler = Reconciler(store, config=config)
    nn = NamespacedName(name=name, namespace=namespace)

    console.print(f"\n[bold blue]livesync[/] — Reconciling: {nn}\n")

    try:
        reconciler.reconcile(nn)
    except ReconcileError as e:
        console.print(f"[red]Reconcile failed:[/] {e}")
        raise SystemExit(1)

    _print_status(store, nn)


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@click.argument("name")
@click.option("--store", "-s", "store_dir", default=".livesync", help="Store directory")
@click.option("--namespace", "-n", default="", help="Namespace of the LiveUpdate")
def status(name: str, store_dir: str, namespace: str):
    """Show the stored status of the LiveUpdate NAME."""
    from livesync.api.models import NamespacedName
    from livesync.store.client import LocalStore

    _print_status(LocalStore(store_dir), NamespacedName(name=name, namespace=namespace))


# ── Deps ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("name")
@click.option("--store", "-s", "store_dir", default=".livesync", help="Store directory")
@click.option("--namespace", "-n", default="", help="Namespace of the LiveUpdate")
def deps(name: str, store_dir: str, namespace: str):
    """List the objects the LiveUpdate NAME depends on."""
    from livesync.api.models import Kind, NamespacedName
    from livesync.indexer import index_live_update
    from livesync.store.client import LocalStore, NotFoundError

    store = LocalStore(store_dir)
    nn = NamespacedName(name=name, namespace=namespace)
    try:
        lu = store.get(Kind.LIVE_UPDATE, nn)
    except NotFoundError:
        console.print(f"[red]LiveUpdate {nn} not found[/]")
        raise SystemExit(1)

    table = Table(title=f"Dependencies of {nn}")
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    table.add_column("Present", justify="center")

    for key in index_live_update(lu):
        present = store.path_for(key.kind, key.name).exists()
        table.add_row(key.kind.value, str(key.name), "[green]yes[/]" if present else "[yellow]no[/]")

    console.print(table)


def _print_status(store, nn) -> None:
    from livesync.api.models import Kind
    from livesync.store.client import NotFoundError

    try:
        lu = store.get(Kind.LIVE_UPDATE, nn)
    except NotFoundError:
        console.print(f"[yellow]LiveUpdate {nn} not found[/]")
        return

    st = lu.status
    if st.failed is not None:
        since = st.failed.last_transition_time.isoformat() if st.failed.last_transition_time else "?"
        console.print(
            Panel(
                f"{st.failed.message}\n\n[dim]since {since}[/]",
                title=f"[red]{st.failed.reason}[/]",
            )
        )
        return

    if not st.containers:
        console.print("[dim]No containers synced yet.[/]")
        return

    table = Table(title=f"LiveUpdate {nn}")
    table.add_column("Pod", style="cyan")
    table.add_column("Container")
    table.add_column("ID", style="dim")
    table.add_column("Last Synced")
    table.add_column("Exec Error")

    for c in st.containers:
        table.add_row(
            c.pod_name,
            c.container_name,
            c.container_id[:12],
            c.last_file_time_synced.isoformat() if c.last_file_time_synced else "",
            f"[red]{c.last_exec_error}[/]" if c.last_exec_error else "[green]-[/]",
        )

    console.print(table)


if __name__ == "__main__":
    main()
