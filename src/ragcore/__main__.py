# ragcore/__main__.py
from __future__ import annotations

import argparse
from dataclasses import asdict
import json
import sys

from ragcore.core.errors import FilterCompileError, ParseError
from ragcore.core.expression import parse, to_text
from ragcore.services.logger import LoggingConfig, StdLoggerService
from ragcore.storage.filters import SqlFilter, default_registry

"""
ragcore CLI

Small developer tool for working with filter expressions without a backend.

Commands:

  1) Parse and pretty-print an expression
       python -m ragcore parse "category == 'framework' AND year >= 2020"

  2) Compile an expression for a backend
       python -m ragcore compile --backend qdrant "tags IN ['a', 'b']"

     Dict results (elasticsearch, qdrant) are printed as JSON, RediSearch
     fragments as plain text, SQLite as {"where": ..., "params": [...]}.

  3) List the bundled filter compilers
       python -m ragcore backends

Exit codes: 0 ok, 2 malformed expression / untranslatable filter / unknown backend.
"""


def _render(compiled: object) -> str:
    if isinstance(compiled, SqlFilter):
        return json.dumps(asdict(compiled), indent=2, ensure_ascii=False)
    if isinstance(compiled, dict):
        return json.dumps(compiled, indent=2, ensure_ascii=False)
    return str(compiled)


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]

    parser = argparse.ArgumentParser(prog="ragcore")
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_parse = sub.add_parser("parse", help="Parse a filter expression and print it back.")
    p_parse.add_argument("expression")

    p_compile = sub.add_parser("compile", help="Compile a filter expression for a backend.")
    p_compile.add_argument("--backend", required=True)
    p_compile.add_argument("--qdrant-prefix", default="metadata.")
    p_compile.add_argument("expression")

    sub.add_parser("backends", help="List available filter compilers.")

    args = parser.parse_args(argv)

    log = StdLoggerService.build(LoggingConfig(level=args.log_level.upper())).for_namespace("cli")

    if args.cmd == "backends":
        for name in default_registry().names():
            print(name)
        return 0

    try:
        expr = parse(args.expression)
    except ParseError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.cmd == "parse":
        print(to_text(expr))
        return 0

    registry = default_registry(qdrant_key_prefix=args.qdrant_prefix)
    if args.backend not in registry:
        print(
            f"error: unknown backend {args.backend!r}; available: {', '.join(registry.names())}",
            file=sys.stderr,
        )
        return 2

    try:
        compiled = registry.get(args.backend).compile(expr)
    except FilterCompileError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    log.debug("compiled %r for %s", to_text(expr), args.backend)
    print(_render(compiled))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
