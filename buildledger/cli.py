import json

import click

from .errors import BuildLedgerError
from .services import catalog, rollup, stock_updates
from .services.catalog import BomGraph
from .services.explosion import explode


def register_cli(app):
    @app.cli.command("check-bom")
    def check_bom() -> None:
        """Report raw SKUs with components, dangling edges and cycles."""
        issues = catalog.validate_catalog()
        if not issues:
            click.echo("BOM OK: no integrity issues found.")
            return
        click.echo(f"Found {len(issues)} BOM issue(s):")
        for issue in issues:
            click.echo(f"  - {issue}")
        raise SystemExit(1)

    @app.cli.command("explode")
    @click.argument("code")
    @click.argument("quantity", type=int, default=1)
    def explode_command(code: str, quantity: int) -> None:
        """Print the raw materials needed for QUANTITY units of CODE."""
        graph = BomGraph.load()
        try:
            node = graph.find_by_code(code)
            requirements = explode(graph, node.id, quantity)
        except BuildLedgerError as exc:
            raise click.ClickException(str(exc)) from exc
        rows = {graph.get_code(sku_id): total for sku_id, total in requirements.items()}
        click.echo(json.dumps({"sku": node.code, "quantity": quantity, "raw_materials": rows}, indent=2))

    @app.cli.command("in-assembly")
    def in_assembly_command() -> None:
        """Print raw material quantities locked inside built stock."""
        graph = BomGraph.load()
        try:
            locked = rollup.in_assembly(graph=graph)
        except BuildLedgerError as exc:
            raise click.ClickException(str(exc)) from exc
        rows = {graph.get_code(sku_id): quantity for sku_id, quantity in locked.items()}
        click.echo(json.dumps(rows, indent=2, sort_keys=True))

    @app.cli.command("set-quantity")
    @click.argument("code")
    @click.argument("state")
    @click.argument("quantity")
    def set_quantity_command(code: str, state: str, quantity: str) -> None:
        """Set the on-hand QUANTITY of CODE in STATE, consuming components."""
        try:
            update = stock_updates.set_quantity(code, state, quantity)
        except BuildLedgerError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(update.message())
        if update.partial_failure is not None:
            raise SystemExit(2)
