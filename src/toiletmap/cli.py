"""CLI for toiletmap - manage the toilet directory from a terminal."""

import argparse
import asyncio
import base64
import json
import mimetypes
import platform
import sys
from collections.abc import Awaitable
from pathlib import Path
from typing import TypeVar

from . import __version__
from .core.model import NewToilet, ToiletRecord, ToiletUpdate
from .core.rating import allocate_next_id
from .errors import ToiletMapError
from .loader import load_records
from .log import setup_logging
from .runtime import Runtime, build_runtime

T = TypeVar("T")


def _run(rt: Runtime, coro: Awaitable[T]) -> T:
    """Run one coroutine and close the runtime's HTTP clients afterwards."""

    async def _main() -> T:
        try:
            return await coro
        finally:
            await rt.aclose()

    return asyncio.run(_main())


def _image_data_url(path: str) -> str:
    p = Path(path)
    media_type = mimetypes.guess_type(p.name)[0] or "image/jpeg"
    payload = base64.b64encode(p.read_bytes()).decode("ascii")
    return f"data:{media_type};base64,{payload}"


def _print_record(record: ToiletRecord) -> None:
    print(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))


def cmd_ls(args: argparse.Namespace, rt: Runtime) -> int:
    """List all records."""
    repo = rt.repository
    result = _run(rt, load_records(repo.store, repo.codec, repo.records_dir))

    if args.json:
        print(json.dumps([r.to_dict() for r in result.records], indent=2, ensure_ascii=False))
    else:
        for r in result.records:
            cost = "free" if r.is_free else "paid"
            print(f"{r.id}\t{r.name}\t{r.address}\t{cost}\t{r.rating:.1f} ({r.total_ratings})")

    for skipped in result.skipped:
        print(f"Skipped {skipped.name}: {skipped.reason}", file=sys.stderr)
    return 0


def cmd_show(args: argparse.Namespace, rt: Runtime) -> int:
    """Print one record as JSON."""
    _print_record(_run(rt, rt.repository.get(args.id)))
    return 0


def cmd_add(args: argparse.Namespace, rt: Runtime) -> int:
    """Create a new record."""
    new = NewToilet(
        name=args.name,
        address=args.address,
        latitude=args.lat,
        longitude=args.lng,
        description=args.description or "",
        is_free=not args.paid,
        image_data=_image_data_url(args.image) if args.image else None,
    )
    result = _run(rt, rt.repository.create(new))
    if result.image_error:
        print(f"Warning: image not attached: {result.image_error}", file=sys.stderr)
    if args.quiet:
        print(result.record.id)
    else:
        _print_record(result.record)
    return 0


def cmd_edit(args: argparse.Namespace, rt: Runtime) -> int:
    """Edit the user-editable fields of a record."""
    update = ToiletUpdate(
        name=args.name,
        address=args.address,
        description=args.description,
        is_free=args.is_free,
        image_data=_image_data_url(args.image) if args.image else None,
        removed_images=tuple(args.remove_image),
    )
    result = _run(rt, rt.repository.update(args.id, update))
    if result.image_error:
        print(f"Warning: image not attached: {result.image_error}", file=sys.stderr)
    if not args.quiet:
        _print_record(result.record)
    return 0


def cmd_vote(args: argparse.Namespace, rt: Runtime) -> int:
    """Like or dislike a record."""
    result = _run(rt, rt.repository.vote(args.id, args.cmd, args.previous))
    if not args.quiet:
        r = result.record
        state = "updated" if result.changed else "unchanged"
        print(f"{r.id} {state}: likes={r.likes} dislikes={r.dislikes} rating={r.rating:.1f}")
    return 0


def cmd_rm(args: argparse.Namespace, rt: Runtime) -> int:
    """Delete a record permanently."""
    if not args.yes:
        answer = input(f"Delete toilet {args.id}? This cannot be undone. [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted")
            return 1
    _run(rt, rt.repository.delete(args.id))
    if not args.quiet:
        print(f"Deleted toilet {args.id}")
    return 0


def cmd_next_id(args: argparse.Namespace, rt: Runtime) -> int:
    """Print the id the next created record would get."""
    print(allocate_next_id(_run(rt, rt.repository.list_ids())))
    return 0


def cmd_geocode(args: argparse.Namespace, rt: Runtime) -> int:
    """Reverse geocode a coordinate."""
    result = _run(rt, rt.geocoder.reverse_geocode(args.lat, args.lng))
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    print(result.address)
    return 0


def cmd_serve(args: argparse.Namespace, rt: Runtime) -> int:
    """Start the HTTP API server."""
    import uvicorn

    from .api.app import create_app

    host = args.host or rt.config.server.host
    port = args.port or rt.config.server.port
    app = create_app(rt)

    print(f"Starting server on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=rt.config.log.level.lower())
    return 0


def _version_text() -> str:
    return "\n".join(
        [
            f"toiletmap {__version__}",
            f"python {platform.python_version()}",
            f"platform {platform.platform()}",
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toiletmap",
        description="Crowdsourced public toilet directory",
    )
    parser.add_argument("--version", action="version", version=_version_text())
    parser.add_argument("--config", type=Path, help="Path to toiletmap.toml")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")

    subparsers = parser.add_subparsers(dest="cmd", required=True)

    # serve command
    parser_serve = subparsers.add_parser("serve", help="Start the HTTP API server")
    parser_serve.add_argument("--host", help="Host to bind to (default: from config)")
    parser_serve.add_argument("--port", type=int, help="Port to bind to (default: from config)")

    # ls command
    parser_ls = subparsers.add_parser("ls", help="List all toilets")
    parser_ls.add_argument("--json", action="store_true", help="Output JSON")

    # show command
    parser_show = subparsers.add_parser("show", help="Print one toilet as JSON")
    parser_show.add_argument("id", help="Toilet ID")

    # add command
    parser_add = subparsers.add_parser("add", help="Add a toilet")
    parser_add.add_argument("--name", required=True)
    parser_add.add_argument("--address", required=True)
    parser_add.add_argument("--lat", type=float, required=True, help="Latitude")
    parser_add.add_argument("--lng", type=float, required=True, help="Longitude")
    parser_add.add_argument("--description")
    parser_add.add_argument("--paid", action="store_true", help="Toilet is not free")
    parser_add.add_argument("--image", help="Path to an image to attach")

    # edit command
    parser_edit = subparsers.add_parser("edit", help="Edit a toilet")
    parser_edit.add_argument("id", help="Toilet ID")
    parser_edit.add_argument("--name")
    parser_edit.add_argument("--address")
    parser_edit.add_argument("--description")
    cost = parser_edit.add_mutually_exclusive_group()
    cost.add_argument("--free", dest="is_free", action="store_true", default=None)
    cost.add_argument("--paid", dest="is_free", action="store_false", default=None)
    parser_edit.add_argument("--image", help="Path to an image to append")
    parser_edit.add_argument(
        "--remove-image", type=int, action="append", default=[],
        help="Index of an image to remove (repeatable)"
    )

    # like / dislike commands
    for kind in ("like", "dislike"):
        parser_vote = subparsers.add_parser(kind, help=f"{kind.capitalize()} a toilet")
        parser_vote.add_argument("id", help="Toilet ID")
        parser_vote.add_argument(
            "--previous", choices=["like", "dislike"],
            help="Vote previously cast by this user, to switch it"
        )

    # rm command
    parser_rm = subparsers.add_parser("rm", help="Delete a toilet")
    parser_rm.add_argument("id", help="Toilet ID")
    parser_rm.add_argument("--yes", action="store_true", help="Skip confirmation")

    # next-id command
    subparsers.add_parser("next-id", help="Print the next free toilet ID")

    # geocode command
    parser_geocode = subparsers.add_parser("geocode", help="Reverse geocode a coordinate")
    parser_geocode.add_argument("lat", type=float)
    parser_geocode.add_argument("lng", type=float)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    handlers = {
        "serve": cmd_serve,
        "ls": cmd_ls,
        "show": cmd_show,
        "add": cmd_add,
        "edit": cmd_edit,
        "like": cmd_vote,
        "dislike": cmd_vote,
        "rm": cmd_rm,
        "next-id": cmd_next_id,
        "geocode": cmd_geocode,
    }
    handler = handlers.get(args.cmd)
    if handler is None:
        print(f"Unknown command: {args.cmd}", file=sys.stderr)
        sys.exit(1)

    try:
        rt = build_runtime(config_path=args.config)
        setup_logging(rt.config.log.level)
        exit_code = handler(args, rt)
    except (ToiletMapError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
