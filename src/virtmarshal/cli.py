"""
Command-line interface for virtmarshal.

This module defines all CLI commands using the Typer library.
"""

import logging
from typing import Annotated

import typer

from virtmarshal import __version__

app = typer.Typer(
    name="virtmarshal",
    help="virtmarshal - typed parameters, listings and events over libvirt",
    no_args_is_help=True,
)

# Options shared by every command that talks to libvirt
UriOption = Annotated[
    str | None,
    typer.Option("--uri", "-c", envvar="VIRTMARSHAL_URI", help="libvirt connection URI"),
]
LibraryOption = Annotated[
    str | None,
    typer.Option(
        "--library", envvar="VIRTMARSHAL_LIBVIRT", help="Path to libvirt.so",
    ),
]


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"virtmarshal {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option("--log-level", "-l", help="DEBUG, INFO, WARNING or ERROR"),
    ] = "WARNING",
) -> None:
    """virtmarshal - typed parameters, listings and events over libvirt."""
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level {log_level!r}", param_hint="--log-level")
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(error: Exception):
    print(f"Error: {error}")
    raise typer.Exit(code=1) from error


def _connect(uri: str | None, library: str | None, read_only: bool = True):
    from virtmarshal.backends.libvirt import LibvirtSubsystem

    return LibvirtSubsystem(uri, read_only=read_only, library_path=library)


@app.command("info")
def info() -> None:
    """
    Display marshaling information.

    Shows the virTypedParameter record layout, the typed parameter kinds,
    the listings that can be queried, and the argument shape handed to
    each kind of event handler. Doesn't need libvirt to be running.
    """
    from virtmarshal.events.kinds import EventKind
    from virtmarshal.ffi import ffi
    from virtmarshal.ffi.constants import VIR_TYPED_PARAM_FIELD_LENGTH
    from virtmarshal.params.typed import TypedKind
    from virtmarshal.query.listings import format_listings

    print("virtmarshal Information")
    print("=" * 60)
    print()
    print(f"virTypedParameter: {ffi.sizeof('virTypedParameter')} bytes")
    print(f"  field  offset {ffi.offsetof('virTypedParameter', 'field'):3d}  "
          f"({VIR_TYPED_PARAM_FIELD_LENGTH} bytes, names up to "
          f"{VIR_TYPED_PARAM_FIELD_LENGTH - 1})")
    print(f"  type   offset {ffi.offsetof('virTypedParameter', 'type'):3d}")
    print(f"  value  offset {ffi.offsetof('virTypedParameter', 'value'):3d}")
    print()
    print("Kinds:")
    print("-" * 60)
    for kind in TypedKind:
        print(f"  {int(kind)}  {kind.name}")
    print()
    print("Listings:")
    print("-" * 60)
    print(format_listings())
    print()
    print("Event handler arguments:")
    print("-" * 60)
    for kind in EventKind:
        print(f"  {int(kind)}  {kind.name.ljust(16)} ({', '.join(kind.arguments)})")


# Create a subcommand group for typed parameters
params_app = typer.Typer(help="Typed parameter commands")
app.add_typer(params_app, name="params")


def _split_assignment(text: str) -> tuple[str, str]:
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise typer.BadParameter(f"Expected NAME=VALUE, got {text!r}")
    return name, value


@params_app.command("encode")
def params_encode(
    values: Annotated[
        list[str], typer.Argument(help="Parameters as NAME=KIND:VALUE, e.g. cpu_shares=ullong:1024")
    ],
    show_hex: Annotated[
        bool, typer.Option("--hex", help="Dump each encoded record")
    ] = False,
) -> None:
    """
    Encode parameters into virTypedParameter records and decode them back.

    Useful for checking how a value will be represented before sending it
    to libvirt.
    """
    from virtmarshal.errors import VirtMarshalError
    from virtmarshal.ffi import ffi
    from virtmarshal.params import ParameterSet, TypedKind, coerce, decode, encode

    try:
        params = ParameterSet()
        for text in values:
            name, typed = _split_assignment(text)
            kind_name, sep, raw = typed.partition(":")
            if not sep:
                raise typer.BadParameter(f"Expected NAME=KIND:VALUE, got {text!r}")
            params.add(coerce(name, TypedKind.from_name(kind_name), raw))

        encoded = encode(params)
        decoded = decode(encoded.array, encoded.count)

        print(f"Encoded {encoded.count} records "
              f"({encoded.count * ffi.sizeof('virTypedParameter')} bytes)")
        for index, value in enumerate(decoded):
            print(f"  [{index}] {value}")
            if show_hex:
                record = bytes(ffi.buffer(encoded.array + index))
                for offset in range(0, len(record), 16):
                    chunk = record[offset:offset + 16]
                    print(f"      {offset:04x}  {chunk.hex(' ')}")

    except (VirtMarshalError, ValueError) as e:
        _fail(e)


def _parameter_group(name: str):
    from virtmarshal.subsystem import ParameterGroup

    try:
        return ParameterGroup(name.replace("-", "_"))
    except ValueError:
        known = ", ".join(group.value for group in ParameterGroup)
        raise typer.BadParameter(f"Unknown group {name!r} (known: {known})") from None


@params_app.command("get")
def params_get(
    domain: Annotated[
        str | None, typer.Argument(help="Domain name (not needed for node_memory)")
    ] = None,
    group_name: Annotated[
        str, typer.Option("--group", "-g", help="scheduler, memory, blkio or node_memory")
    ] = "scheduler",
    uri: UriOption = None,
    library: LibraryOption = None,
) -> None:
    """Show a typed parameter group."""
    from virtmarshal.errors import VirtMarshalError
    from virtmarshal.ffi.constants import VIR_TYPED_PARAM_STRING_OKAY
    from virtmarshal.params import get_parameters
    from virtmarshal.subsystem import ResourceKind

    group = _parameter_group(group_name)
    if domain is None and group.owner is ResourceKind.DOMAIN:
        raise typer.BadParameter(f"The {group.value} group needs a domain name")

    try:
        with _connect(uri, library) as virt:
            handle = virt.lookup_domain(domain) if domain is not None else None
            params = get_parameters(virt, handle, group, VIR_TYPED_PARAM_STRING_OKAY)

            print(f"{group.value} parameters ({len(params)}):")
            for value in params:
                print(f"  {value}")

    except VirtMarshalError as e:
        _fail(e)


@params_app.command("set")
def params_set(
    domain: Annotated[str, typer.Argument(help="Domain name ('-' for node_memory)")],
    values: Annotated[list[str], typer.Argument(help="Parameters as NAME=VALUE")],
    group_name: Annotated[
        str, typer.Option("--group", "-g", help="scheduler, memory, blkio or node_memory")
    ] = "scheduler",
    config: Annotated[
        bool, typer.Option("--config", help="Change the persistent config, not the live domain")
    ] = False,
    uri: UriOption = None,
    library: LibraryOption = None,
) -> None:
    """
    Change parameters in a typed parameter group.

    Kinds are taken from the current values, so only names the group
    already has can be set.
    """
    from virtmarshal.errors import VirtMarshalError
    from virtmarshal.ffi.constants import (
        VIR_DOMAIN_AFFECT_CONFIG,
        VIR_DOMAIN_AFFECT_CURRENT,
        VIR_TYPED_PARAM_STRING_OKAY,
    )
    from virtmarshal.params import set_parameters
    from virtmarshal.subsystem import ResourceKind

    group = _parameter_group(group_name)
    updates = dict(_split_assignment(text) for text in values)
    flags = VIR_DOMAIN_AFFECT_CONFIG if config else VIR_DOMAIN_AFFECT_CURRENT

    try:
        with _connect(uri, library, read_only=False) as virt:
            handle = None
            if group.owner is ResourceKind.DOMAIN:
                handle = virt.lookup_domain(domain)
            applied = set_parameters(
                virt, handle, group, updates, flags | VIR_TYPED_PARAM_STRING_OKAY
            )

            print(f"Applied {len(applied)} {group.value} parameters:")
            for value in applied:
                print(f"  {value}")

    except VirtMarshalError as e:
        _fail(e)


@app.command("list")
def list_command(
    listing: Annotated[str, typer.Argument(help="What to list (see 'virtmarshal info')")],
    selector: Annotated[
        str | None,
        typer.Option(
            "--selector", "-s",
            help="Capability for node_devices, DOMAIN for snapshots, "
                 "DOMAIN:SNAPSHOT for snapshot_children",
        ),
    ] = None,
    uri: UriOption = None,
    library: LibraryOption = None,
) -> None:
    """List domains, networks, storage pools and other named objects."""
    from virtmarshal.errors import VirtMarshalError
    from virtmarshal.query.listings import LISTINGS, list_names
    from virtmarshal.subsystem import ResourceKind

    if listing not in LISTINGS:
        known = ", ".join(LISTINGS)
        raise typer.BadParameter(f"Unknown listing {listing!r} (known: {known})")

    try:
        with _connect(uri, library) as virt:
            target = selector
            if listing == "snapshot_children":
                domain_name, _, snapshot_name = (selector or "").partition(":")
                if not domain_name or not snapshot_name:
                    raise typer.BadParameter(
                        "snapshot_children needs --selector DOMAIN:SNAPSHOT"
                    )
                target = virt.lookup_snapshot(
                    virt.lookup_domain(domain_name), snapshot_name
                )
            elif LISTINGS[listing].resource is ResourceKind.SNAPSHOT:
                if selector is None:
                    raise typer.BadParameter("snapshots needs --selector DOMAIN")
                target = virt.lookup_domain(selector)

            for entry in list_names(virt, listing, target):
                print(entry)

    except VirtMarshalError as e:
        _fail(e)


@app.command("stats")
def stats_command(
    which: Annotated[str, typer.Argument(help="cpu or memory")],
    index: Annotated[
        int, typer.Option("--index", "-i", help="CPU or NUMA cell number, -1 for all")
    ] = -1,
    uri: UriOption = None,
    library: LibraryOption = None,
) -> None:
    """Show host CPU or memory statistics."""
    from virtmarshal.errors import VirtMarshalError
    from virtmarshal.query.listings import STATISTICS, get_statistics

    listing = f"{which}_stats"
    if listing not in STATISTICS:
        raise typer.BadParameter(f"Expected 'cpu' or 'memory', got {which!r}")

    try:
        with _connect(uri, library) as virt:
            stats = get_statistics(virt, listing, index)
            width = max((len(name) for name in stats), default=0)
            for name, value in stats.items():
                print(f"{name.ljust(width)}  {value}")

    except VirtMarshalError as e:
        _fail(e)


# Create a subcommand group for domain events
events_app = typer.Typer(help="Domain event commands")
app.add_typer(events_app, name="events")


def describe_event(kind, args: tuple) -> str:
    """Format an event's arguments (everything after conn and dom) for display."""
    from virtmarshal.events.kinds import EventKind
    from virtmarshal.ffi import constants

    if kind is EventKind.LIFECYCLE:
        event, detail = args
        event_name = constants.LIFECYCLE_EVENT_NAMES.get(event, str(event))
        detail_name = constants.LIFECYCLE_DETAIL_NAMES.get((event, detail), str(detail))
        return f"{event_name} ({detail_name})"
    if kind is EventKind.WATCHDOG:
        (action,) = args
        return constants.WATCHDOG_ACTION_NAMES.get(action, str(action))
    if kind in (EventKind.IO_ERROR, EventKind.IO_ERROR_REASON):
        src_path, dev_alias, action = args[:3]
        text = (f"{dev_alias} ({src_path}) "
                f"{constants.IO_ERROR_ACTION_NAMES.get(action, str(action))}")
        if kind is EventKind.IO_ERROR_REASON:
            text += f": {args[3]}"
        return text
    if kind is EventKind.GRAPHICS:
        phase, local, remote, auth_scheme, subject = args
        phase_name = constants.GRAPHICS_PHASE_NAMES.get(phase, str(phase))
        return (f"{phase_name} {remote.node}:{remote.service} -> "
                f"{local.node}:{local.service} auth={auth_scheme} subject={subject}")
    if kind is EventKind.RTC_CHANGE:
        return f"utc offset {args[0]}s"
    return ""


@events_app.command("watch")
def events_watch(
    kind_names: Annotated[
        list[str] | None,
        typer.Option("--kind", "-k", help="Event kind to watch (repeatable)"),
    ] = None,
    count: Annotated[
        int, typer.Option("--count", "-n", help="Stop after this many events (0 = forever)")
    ] = 0,
    uri: UriOption = None,
    library: LibraryOption = None,
) -> None:
    """
    Print domain events as they happen.

    Runs libvirt's default event loop until --count events have arrived
    or Ctrl+C is pressed.
    """
    from virtmarshal.backends.libvirt import event_loop_iterate, event_loop_register
    from virtmarshal.errors import VirtMarshalError
    from virtmarshal.events import CallbackDispatchTable, EventKind

    try:
        kinds = [EventKind.from_name(name) for name in kind_names or ["lifecycle"]]
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    seen = 0

    def on_event(conn, dom, *args):
        nonlocal seen
        # The last argument is the opaque we registered: the event kind
        kind = args[-1]
        seen += 1
        print(f"{dom.name}: {kind.name} {describe_event(kind, args[:-1])}".rstrip())

    try:
        event_loop_register(library)
        with _connect(uri, library) as virt:
            table = CallbackDispatchTable(virt)
            try:
                for kind in kinds:
                    table.register(kind, on_event, opaque=kind)

                print(f"Watching {', '.join(k.name for k in kinds)} events "
                      f"on {virt}. Press Ctrl+C to stop.")
                while count == 0 or seen < count:
                    event_loop_iterate(library)
            except KeyboardInterrupt:
                print()
            finally:
                table.deregister_all()

    except VirtMarshalError as e:
        _fail(e)


if __name__ == "__main__":
    app()
