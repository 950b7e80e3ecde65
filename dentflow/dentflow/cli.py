from __future__ import annotations

import json
import logging
from importlib.metadata import PackageNotFoundError, version as _pkg_version
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from .catalog import CatalogError
from .catalog_loader import dump_catalog, load_catalog
from .chart import InvalidToothError, ToothConditions
from .config import load_settings
from .csv_export import to_csv
from .session import UnknownUnitError, WorkflowSession
from .storage import SnapshotPathError, read_snapshot, resolve_in_root, write_snapshot

app = typer.Typer(add_completion=False, no_args_is_help=True)

INPUT_ERRORS = (
    FileNotFoundError,
    json.JSONDecodeError,
    ValidationError,
    CatalogError,
    InvalidToothError,
    SnapshotPathError,
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log generation and scheduling details")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _fail(msg: str, code: int = 1):
    typer.echo(f"Error: {msg}", err=True)
    raise typer.Exit(code=code)


def _catalog_path(root: str, catalog: Optional[str]) -> Optional[Path]:
    return resolve_in_root(root, catalog) if catalog else None


def _load_session(root: str, session: str, catalog: Optional[str]) -> WorkflowSession:
    try:
        snapshot = read_snapshot(root, session)
        return WorkflowSession.restore(snapshot, catalog=load_catalog(_catalog_path(root, catalog)), settings=load_settings())
    except INPUT_ERRORS as e:
        _fail(str(e))
    except ValueError as e:
        _fail(f"corrupt session {session}: {e}")


def _save_session(root: str, session: str, ws: WorkflowSession) -> Path:
    return write_snapshot(root, session, ws.snapshot())


def _parse_overrides(values: List[str]) -> dict:
    out = {}
    for item in values:
        if "=" not in item:
            _fail(f"--override expects UNIT=INDEX, got {item!r}")
        key, index = item.rsplit("=", 1)
        try:
            out[key] = int(index)
        except ValueError:
            _fail(f"--override index must be an integer, got {index!r}")
    return out


@app.command("init-catalog")
def cli_init_catalog(
    root: str = typer.Option(".", "--root", help="Working directory for all relative paths"),
    out: str = typer.Option("catalog.json", "--out"),
):
    path = dump_catalog(load_catalog(None), resolve_in_root(root, out))
    typer.echo(str(path))


@app.command("init-chart")
def cli_init_chart(
    root: str = typer.Option(".", "--root", help="Working directory for all relative paths"),
    out: str = typer.Option("chart.example.json", "--out"),
):
    example = {
        "11": ["C1"],
        "21": ["per"],
        "36": ["C3"],
        "46": ["C2"],
        "47": ["C2"],
    }
    path = resolve_in_root(root, out)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(example, indent=2), encoding="utf-8")
    typer.echo(str(path))


@app.command("plan")
def cli_plan(
    root: str = typer.Option(".", "--root", help="Working directory for all relative paths"),
    conditions: str = typer.Option(..., "--conditions", help="Path to tooth conditions JSON"),
    catalog: Optional[str] = typer.Option(None, "--catalog", help="Catalog JSON (built-in catalog when omitted)"),
    grouping: Optional[str] = typer.Option(None, "--grouping", help="individual or grouped"),
    slots: Optional[int] = typer.Option(None, "--slots", help="Minimum number of visit slots"),
    override: List[str] = typer.Option([], "--override", help="UNIT=INDEX rule choice, repeatable"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the session snapshot here"),
):
    """Generate treatment cards from a tooth chart and start a scheduling session."""
    try:
        settings = load_settings()
        updates = {}
        if grouping is not None:
            updates["grouping_mode"] = grouping
        if slots is not None:
            updates["slot_count"] = slots
        if updates:
            settings = settings.model_validate({**settings.model_dump(), **updates})
        data = json.loads(resolve_in_root(root, conditions).read_text(encoding="utf-8"))
        if isinstance(data, dict) and "tooth_conditions" in data:
            data = data["tooth_conditions"]
        chart = ToothConditions(data)
        ws = WorkflowSession(
            catalog=load_catalog(_catalog_path(root, catalog)),
            settings=settings,
            tooth_conditions=chart,
            overrides=_parse_overrides(override),
        )
    except INPUT_ERRORS as e:
        _fail(str(e))

    nodes = ws.generate()
    if not nodes:
        typer.echo("No clinical input: the chart has no cataloged conditions.", err=True)
    if out:
        typer.echo(str(_save_session(root, out, ws)))
    else:
        typer.echo(json.dumps([n.model_dump() for n in nodes], ensure_ascii=False))


@app.command("show")
def cli_show(
    root: str = typer.Option(".", "--root", help="Working directory for all relative paths"),
    session: str = typer.Option(..., "--session", help="Session snapshot JSON"),
    catalog: Optional[str] = typer.Option(None, "--catalog"),
):
    ws = _load_session(root, session, catalog)
    for slot in ws.slots():
        if not slot.nodes:
            continue
        typer.echo(f"Slot {slot.slot_index}:")
        for n in slot.nodes:
            typer.echo(f"  [{n.id}] {n.step_name} ({n.card_number}/{n.total_cards}) {n.treatment_name} teeth={','.join(n.teeth)}")
    groups = ws.unscheduled_groups()
    if groups:
        typer.echo("Unscheduled:")
    for g in groups:
        typer.echo(f"  {g.base_id}")
        for n in g.nodes:
            typer.echo(f"    [{n.id}] {n.step_name} ({n.card_number}/{n.total_cards})")


@app.command("place")
def cli_place(
    root: str = typer.Option(".", "--root", help="Working directory for all relative paths"),
    session: str = typer.Option(..., "--session", help="Session snapshot JSON"),
    node: str = typer.Option(..., "--node", help="Card id"),
    slot: int = typer.Option(..., "--slot", help="Target visit slot (1-based)"),
    catalog: Optional[str] = typer.Option(None, "--catalog"),
):
    """Move a card into a visit slot, enforcing step order within its course."""
    ws = _load_session(root, session, catalog)
    result = ws.place(node, slot)
    if not result.ok:
        typer.echo(f"Rejected ({result.conflict.kind}): {result.conflict.reason}", err=True)
        raise typer.Exit(code=2)
    _save_session(root, session, ws)
    typer.echo(f"{node} -> slot {slot}")


@app.command("unplace")
def cli_unplace(
    root: str = typer.Option(".", "--root", help="Working directory for all relative paths"),
    session: str = typer.Option(..., "--session", help="Session snapshot JSON"),
    node: str = typer.Option(..., "--node", help="Card id"),
    catalog: Optional[str] = typer.Option(None, "--catalog"),
):
    ws = _load_session(root, session, catalog)
    ws.unplace(node)
    _save_session(root, session, ws)
    typer.echo(f"{node} -> unscheduled")


@app.command("select-rule")
def cli_select_rule(
    root: str = typer.Option(".", "--root", help="Working directory for all relative paths"),
    session: str = typer.Option(..., "--session", help="Session snapshot JSON"),
    unit: str = typer.Option(..., "--unit", help="Unit key, e.g. C2-46"),
    index: int = typer.Option(..., "--index", help="Alternative rule index (0-based)"),
    catalog: Optional[str] = typer.Option(None, "--catalog"),
):
    """Choose another treatment rule for one unit and regenerate its cards."""
    ws = _load_session(root, session, catalog)
    try:
        dropped = ws.select_rule(unit, index)
    except UnknownUnitError:
        _fail(f"no unit {unit!r} in this session")
    except ValueError as e:
        _fail(str(e))
    _save_session(root, session, ws)
    typer.echo(f"{unit} -> rule {index} ({len(dropped)} placements cleared)")


@app.command("export-csv")
def cli_export_csv(
    root: str = typer.Option(".", "--root", help="Working directory for all relative paths"),
    session: str = typer.Option(..., "--session", help="Session snapshot JSON"),
    out: str = typer.Option(..., "--out", help="Path to CSV output"),
):
    try:
        snapshot = read_snapshot(root, session)
        out_path = resolve_in_root(root, out)
    except INPUT_ERRORS as e:
        _fail(str(e))
    out_path.parent.mkdir(parents=True, exist_ok=True)
    to_csv(snapshot, str(out_path))
    typer.echo(str(out_path))


@app.command("version")
def cli_version():
    try:
        typer.echo(_pkg_version("dentflow"))
    except PackageNotFoundError:
        from . import __version__
        typer.echo(__version__)
