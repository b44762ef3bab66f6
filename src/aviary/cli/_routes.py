"""``aviary routes`` — print the flattened route table.

Mounted bundles are listed under their full prefix with the owning
bundle's name, indented by mount depth.
"""

import argparse
import sys

from aviary.cli._resolve import resolve_app
from aviary.errors import ConfigurationError


def format_routes(rows: list[tuple[str, str, str, str]]) -> str:
    """Render (methods, path, route, handler) rows as an aligned table."""
    header = ("METHOD", "PATH", "ROUTE", "HANDLER")
    widths = [max(len(header[i]), *(len(r[i]) for r in rows)) for i in range(3)]
    fmt = f"{{:<{widths[0]}}}  {{:<{widths[1]}}}  {{:<{widths[2]}}}  {{}}"
    lines = [fmt.format(*header), "-" * min(sum(widths) + 6 + len(header[3]), 80)]
    lines.extend(fmt.format(*row) for row in rows)
    return "\n".join(lines)


def run_routes(args: argparse.Namespace) -> None:
    """Resolve ``args.app``, freeze it, and print its route table."""
    try:
        app = resolve_app(args.app)
        app._ensure_frozen()
    except (ModuleNotFoundError, AttributeError, TypeError, ConfigurationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    rows: list[tuple[str, str, str, str]] = []
    for entry in app.walk():
        handler = getattr(entry.handler, "__name__", str(entry.handler))
        route = f"{'  ' * entry.depth}{entry.bundle}.{entry.route_type.__name__}"
        rows.append((", ".join(sorted(entry.methods)), entry.path, route, handler))

    if not rows:
        print("No routes registered.")
        return
    print(format_routes(rows))
