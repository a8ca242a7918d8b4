"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TypeVar

import typer

from gmcctl.core.errors import ErrorKind, GmcError
from gmcctl.core.history import decode_history
from gmcctl.core.model import CommandResult, ConfigField, CountSample, LabelMarker, SaveDataType, SoftKey
from gmcctl.core.profiles import load_profiles
from gmcctl.core.session import GMCSession

T = TypeVar("T")

app = typer.Typer(help="GQ GMC Geiger-Muller counter control over USB serial")
config_app = typer.Typer(help="Inspect and change the counter's NVM configuration")
app.add_typer(config_app, name="config")

_KEY_NAMES = {
    "left": SoftKey.LEFT,
    "up": SoftKey.UP,
    "down": SoftKey.DOWN,
    "enter": SoftKey.ENTER,
    "1": SoftKey.KEY1,
    "2": SoftKey.KEY2,
    "3": SoftKey.KEY3,
    "4": SoftKey.KEY4,
}


@dataclass
class Options:
    port: str
    profile: str | None


@app.callback()
def main(
    ctx: typer.Context,
    port: str = typer.Option("/dev/gqgmc", "--port", envvar="GMCCTL_PORT", help="Serial device"),
    profile: str | None = typer.Option(None, "--profile", help="Device profile ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol traffic"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    ctx.obj = Options(port=port, profile=profile)


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


def _require(result: CommandResult[T]) -> T:
    if not result.ok:
        raise _fail(result.error.text)
    return result.value


@contextmanager
def _connected(ctx: typer.Context) -> Iterator[GMCSession]:
    options: Options = ctx.obj
    try:
        loaded = load_profiles()
        for warning in loaded.warnings:
            typer.echo(f"Warning: {warning}", err=True)
        session = GMCSession(options.port, profile=loaded.get(options.profile))
        opened = session.open()
        if opened.error is ErrorKind.OLDER_FIRMWARE:
            typer.echo(f"Warning: {opened.error.text}", err=True)
        elif not opened.ok:
            session.close()
            raise _fail(opened.error.text)
        try:
            yield session
        finally:
            session.close()
    except GmcError as exc:
        raise _fail(str(exc)) from None


@app.command("profiles")
def list_profiles() -> None:
    """List available device profiles."""
    try:
        loaded = load_profiles()
    except GmcError as exc:
        raise _fail(str(exc)) from None
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    for profile in sorted(loaded.profiles.values(), key=lambda p: p.id):
        typer.echo(f"{profile.id}: {profile.name} ({profile.baudrate} baud)")


@app.command("info")
def info(ctx: typer.Context) -> None:
    """Show version, serial number, firmware revision and battery voltage."""
    with _connected(ctx) as session:
        typer.echo(f"Version: {_require(session.get_version())}")
        typer.echo(f"Serial number: {_require(session.get_serial_number())}")
        typer.echo(f"Firmware: {session.firmware_revision}")
        typer.echo(f"Battery: {_require(session.get_battery_voltage()):.1f} V")


@app.command("cpm")
def cpm(ctx: typer.Context) -> None:
    """Read counts per minute."""
    with _connected(ctx) as session:
        typer.echo(_require(session.get_cpm()))


@app.command("cps")
def cps(
    ctx: typer.Context,
    count: int = typer.Option(1, "--count", "-n", min=1, help="Number of samples"),
    interval: float = typer.Option(1.0, "--interval", help="Seconds between samples"),
) -> None:
    """Poll counts per second."""
    with _connected(ctx) as session:
        for index in range(count):
            typer.echo(_require(session.get_cps()))
            if index + 1 < count:
                time.sleep(interval)


@app.command("stream")
def stream(
    ctx: typer.Context,
    count: int = typer.Option(10, "--count", "-n", min=1, help="Number of pushed samples to print"),
) -> None:
    """Turn on auto-CPS reporting and print pushed samples."""
    with _connected(ctx) as session:
        started = _require(session.turn_on_cps())
        with started as samples:
            for index, sample in enumerate(samples):
                typer.echo(_require(sample))
                if index + 1 >= count:
                    break


@app.command("history")
def history(
    ctx: typer.Context,
    address: int = typer.Argument(..., min=0, help="Start address in the history buffer"),
    length: int = typer.Argument(..., min=0, help="Number of bytes to read (at most 4096)"),
    raw: bool = typer.Option(False, "--raw", help="Print a hex dump instead of decoded entries"),
) -> None:
    """Read and decode part of the history log."""
    with _connected(ctx) as session:
        data = _require(session.get_history_data(address, length))
    if raw:
        for row in range(0, len(data), 16):
            typer.echo(f"{address + row:06x}  {data[row:row + 16].hex(' ')}")
        return

    unwritten = 0
    for entry in decode_history(data, start_address=address):
        if isinstance(entry, CountSample):
            if entry.fill:
                unwritten += 1
                continue
            mode = entry.mode.name.lower() if entry.mode is not None else "?"
            stamp = entry.time.isoformat(sep=" ") if entry.time else "-"
            typer.echo(f"{entry.offset:06x}  {entry.value:>5} {mode:<4} {stamp}")
        elif isinstance(entry, LabelMarker):
            typer.echo(f"{entry.offset:06x}  label {entry.text!r}")
        else:
            when = entry.when.isoformat(sep=" ") if entry.when else "invalid"
            mode = entry.mode.name.lower() if entry.mode is not None else "?"
            typer.echo(f"{entry.offset:06x}  timestamp {when} mode={mode}")
    if unwritten:
        typer.echo(f"{unwritten} unwritten bytes")


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the known configuration fields."""
    with _connected(ctx) as session:
        for name, value in session.config.dump().items():
            typer.echo(f"{name}: {value}")


def _commit(session: GMCSession, verify: bool) -> None:
    _require(session.commit_configuration(verify=verify))
    typer.echo("Configuration committed")


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    field: str = typer.Argument(..., help="Field name, e.g. alarm_cpm_value"),
    value: int = typer.Argument(...),
    verify: bool = typer.Option(False, "--verify", help="Read the block back after committing"),
) -> None:
    """Set one configuration field and commit the whole block."""
    try:
        target = ConfigField[field.upper()]
    except KeyError:
        raise _fail(f"Unknown configuration field '{field}'") from None
    with _connected(ctx) as session:
        try:
            session.config.write_field(target, value)
        except ValueError as exc:
            raise _fail(str(exc)) from None
        _commit(session, verify)


@config_app.command("set-save-type")
def config_set_save_type(
    ctx: typer.Context,
    mode: str = typer.Argument(..., help="off, cps, cpm or cph"),
    verify: bool = typer.Option(False, "--verify", help="Read the block back after committing"),
) -> None:
    """Select what the counter logs into its history buffer."""
    try:
        save_type = SaveDataType[mode.upper()]
    except KeyError:
        raise _fail(f"Unknown logging mode '{mode}'. Allowed: off, cps, cpm, cph") from None
    with _connected(ctx) as session:
        session.config.set_save_data_type(save_type)
        _commit(session, verify)


@config_app.command("reset-address")
def config_reset_address(
    ctx: typer.Context,
    verify: bool = typer.Option(False, "--verify", help="Read the block back after committing"),
) -> None:
    """Restart history logging near the beginning of the buffer."""
    with _connected(ctx) as session:
        session.config.reset_data_save_address()
        _commit(session, verify)


@app.command("key")
def key(ctx: typer.Context, name: str = typer.Argument(..., help="left, up, down, enter or 1-4")) -> None:
    """Emulate a front-panel key press."""
    soft_key = _KEY_NAMES.get(name.lower())
    if soft_key is None:
        raise _fail(f"Unknown key '{name}'")
    with _connected(ctx) as session:
        _require(session.send_key(soft_key))


@app.command("set-date")
def set_date(ctx: typer.Context, date: str = typer.Argument(..., help="MMDDYY")) -> None:
    """Set the counter's date."""
    with _connected(ctx) as session:
        try:
            _require(session.set_date(date))
        except ValueError as exc:
            raise _fail(str(exc)) from None


@app.command("set-time")
def set_time(ctx: typer.Context, clock: str = typer.Argument(..., help="HHMMSS")) -> None:
    """Set the counter's time of day."""
    with _connected(ctx) as session:
        try:
            _require(session.set_time(clock))
        except ValueError as exc:
            raise _fail(str(exc)) from None


@app.command("sync-clock")
def sync_clock(ctx: typer.Context) -> None:
    """Set the counter's date and time from the host clock."""
    with _connected(ctx) as session:
        _require(session.sync_clock())


@app.command("power-off")
def power_off(ctx: typer.Context) -> None:
    """Turn the counter off."""
    with _connected(ctx) as session:
        _require(session.turn_off_power())


def run() -> None:
    app()


if __name__ == "__main__":
    run()
