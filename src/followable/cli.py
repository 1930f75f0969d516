#!/usr/bin/env python3
"""
followable CLI - manage follow relationships from the shell
"""

import logging

import click
from rich.console import Console
from rich.table import Table

from .errors import FollowableError
from .graph import FollowGraph
from .models import Collection, Extreme, FollowOutcome, RepairStrategy, Role, UnfollowOutcome
from .settings import FollowableSettings

console = Console()

OUTCOME_STYLE = {
    FollowOutcome.CREATED: "green",
    FollowOutcome.ALREADY_RELATED: "yellow",
    FollowOutcome.DENIED: "red",
    FollowOutcome.SELF_REFERENCE: "dim",
    FollowOutcome.TORN: "bold red",
    UnfollowOutcome.REMOVED: "green",
    UnfollowOutcome.NOT_RELATED: "yellow",
    UnfollowOutcome.SELF_REFERENCE: "dim",
}


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=(level or "INFO").upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _split_ref(ref: str) -> tuple[str, str]:
    type_name, sep, node_id = ref.partition(":")
    if not sep or not type_name or not node_id:
        raise click.BadParameter(f"expected TYPE:ID, got {ref!r}")
    return type_name, node_id


class _Context:
    def __init__(self, cfg: FollowableSettings):
        self.cfg = cfg
        self._graph = None

    @property
    def graph(self) -> FollowGraph:
        if self._graph is None:
            self._graph = FollowGraph.from_settings(self.cfg)
        return self._graph

    def node(self, ref: str):
        return self.graph.node(*_split_ref(ref))


def _nodes_table(title: str, nodes) -> Table:
    table = Table(title=title)
    table.add_column("#", style="cyan", width=4)
    table.add_column("Type", style="blue")
    table.add_column("Id", style="white")
    for i, node in enumerate(nodes, 1):
        table.add_row(str(i), node.type, node.id)
    return table


@click.group()
@click.option("--backend", default=None, help="memory|sqlite|arango (default from FOLLOWABLE_BACKEND)")
@click.option("--sqlite-path", default=None, help="SQLite database file")
@click.pass_context
def cli(ctx, backend, sqlite_path):
    """followable - follow relationships between heterogeneous nodes"""
    overrides = {}
    if backend:
        overrides["backend"] = backend
    if sqlite_path:
        overrides["sqlite_path"] = sqlite_path
    cfg = FollowableSettings(**overrides)
    _configure_logging(cfg.log_level)
    ctx.obj = _Context(cfg)


@cli.command()
def version():
    """Print the package version"""
    from . import __version__

    console.print(__version__)


@cli.group()
def node():
    """Manage nodes"""
    pass


@node.command("add")
@click.argument("ref")
@click.pass_obj
def node_add(obj: _Context, ref):
    """Register a node TYPE:ID"""
    type_name, node_id = _split_ref(ref)
    created = obj.graph.add_node(type_name, node_id)
    console.print(f"[green]Added[/green] {created.ref}")


@cli.command()
@click.argument("follower")
@click.argument("followees", nargs=-1, required=True)
@click.pass_obj
def follow(obj: _Context, follower, followees):
    """FOLLOWER follows each of FOLLOWEES (all given as TYPE:ID)"""
    source = obj.node(follower)
    results = obj.graph.follow(source, *[obj.node(f) for f in followees])
    for res in results:
        style = OUTCOME_STYLE[res.outcome]
        console.print(f"{source.ref} -> {res.target}: [{style}]{res.outcome.value}[/{style}]")


@cli.command()
@click.argument("follower")
@click.argument("followees", nargs=-1, required=True)
@click.pass_obj
def unfollow(obj: _Context, follower, followees):
    """FOLLOWER stops following each of FOLLOWEES"""
    source = obj.node(follower)
    results = obj.graph.unfollow(source, *[obj.node(f) for f in followees])
    for res in results:
        style = OUTCOME_STYLE[res.outcome]
        console.print(f"{source.ref} -/-> {res.target}: [{style}]{res.outcome.value}[/{style}]")


@cli.command()
@click.argument("ref")
@click.option("--by-type", default=None, help="Only peers of this type")
@click.pass_obj
def followers(obj: _Context, ref, by_type):
    """List followers of TYPE:ID"""
    target = obj.node(ref)
    console.print(_nodes_table(f"Followers of {target.ref}", obj.graph.query.followers_of(target, by_type)))


@cli.command()
@click.argument("ref")
@click.option("--by-type", default=None, help="Only peers of this type")
@click.pass_obj
def followees(obj: _Context, ref, by_type):
    """List followees of TYPE:ID"""
    target = obj.node(ref)
    console.print(_nodes_table(f"Followees of {target.ref}", obj.graph.query.followees_of(target, by_type)))


@cli.command()
@click.argument("ref")
@click.option("--followed", is_flag=True, help="Show who followed this node instead")
@click.pass_obj
def history(obj: _Context, ref, followed):
    """Replay the follow history of TYPE:ID, oldest first"""
    target = obj.node(ref)
    if followed:
        nodes = obj.graph.query.followed_history_of(target)
        title = f"Followed history of {target.ref}"
    else:
        nodes = obj.graph.query.follow_history_of(target)
        title = f"Follow history of {target.ref}"
    console.print(_nodes_table(title, nodes))


@cli.command()
@click.argument("ref")
@click.argument("types", nargs=-1, required=True)
@click.option("--role", type=click.Choice([r.value for r in Role]), default=Role.FOLLOWEE.value)
@click.option("--unset", is_flag=True, help="Remove the types instead of adding them")
@click.pass_obj
def block(obj: _Context, ref, types, role, unset):
    """Block TYPES from following TYPE:ID (--role followee) or being followed by it (--role follower)"""
    target = obj.node(ref)
    fn = obj.graph.policy.unset_authorization if unset else obj.graph.policy.set_authorization
    blocked = fn(target, Role(role), *types)
    console.print(f"{target.ref} blocked {role} types: {', '.join(sorted(blocked)) or '-'}")


@cli.command()
@click.argument("type_name")
@click.option("--role", type=click.Choice([c.value for c in Collection]), default=Collection.FOLLOWERS.value)
@click.option("--extreme", type=click.Choice([e.value for e in Extreme]), default=Extreme.MAX.value)
@click.option("--by-type", default=None, help="Count only peers of this type")
@click.pass_obj
def rank(obj: _Context, type_name, role, extreme, by_type):
    """Nodes of TYPE_NAME with the most (or fewest) followers/followees"""
    agg = obj.graph.aggregation
    nodes = agg.rank_nodes(type_name, role, extreme, by_type)
    if not nodes:
        console.print("[yellow]No nodes[/yellow]")
        return

    table = Table(title=f"{type_name}: {extreme} {role}" + (f" by {by_type}" if by_type else ""))
    table.add_column("Type", style="blue")
    table.add_column("Id", style="white")
    table.add_column("Count", style="cyan", justify="right")
    for n in nodes:
        table.add_row(n.type, n.id, str(agg.count(n, role, by_type)))
    console.print(table)


@cli.command()
@click.argument("ref", required=False)
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in RepairStrategy]),
    default=RepairStrategy.REMOVE.value,
)
@click.pass_obj
def reconcile(obj: _Context, ref, strategy):
    """Repair torn relationships for TYPE:ID, or for every node when omitted"""
    manager = obj.graph.manager
    repair = RepairStrategy(strategy)
    reports = [manager.reconcile(obj.node(ref), repair)] if ref else manager.reconcile_all(strategy=repair)

    table = Table(title=f"Reconcile ({repair.value})")
    table.add_column("Node", style="blue")
    table.add_column("Checked", justify="right")
    table.add_column("Removed", style="red", justify="right")
    table.add_column("Completed", style="green", justify="right")
    table.add_column("Deduplicated", style="yellow", justify="right")
    for rep in reports:
        table.add_row(
            str(rep.node),
            str(rep.checked),
            str(len(rep.removed)),
            str(len(rep.completed)),
            str(len(rep.deduplicated)),
        )
    console.print(table)


def main():
    try:
        cli()
    except FollowableError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
