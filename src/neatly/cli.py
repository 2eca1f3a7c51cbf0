"""Command line entry point.

Usage:
    python -m neatly -i <document> [-f json|yaml] [-c config.yaml] [--verbose]
    python -m neatly -v
"""

import argparse
import json
import logging
import sys

import yaml

from . import __version__
from .config import LoaderConfig
from .dao import Dao
from .errors import NeatlyError

APP_NAME = "neatly"


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``python -m neatly``."""
    parser = argparse.ArgumentParser(prog=APP_NAME, description="Load a neatly document")
    parser.add_argument("-i", dest="input", help="neatly document path or URL")
    parser.add_argument("-f", dest="format", default="json", help="output format: json or yaml")
    parser.add_argument("-c", dest="config", default=None, help="loader configuration YAML file")
    parser.add_argument("-v", dest="version", action="store_true", help="print version")
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.version:
        print(f"{APP_NAME} {__version__}")
        return

    if not args.input:
        parser.print_help()
        return

    output_format = args.format.lower()
    if output_format not in ("json", "yaml"):
        print(f"unsupported output format: {args.format}", file=sys.stderr)
        sys.exit(2)

    config = LoaderConfig.from_file(args.config) if args.config else LoaderConfig()
    try:
        document = Dao(config).load({}, args.input)
    except NeatlyError as e:
        print(f"failed to load neatly document: {args.input} {e}", file=sys.stderr)
        sys.exit(1)

    if output_format == "json":
        print(json.dumps(document, indent="\t", default=str))
    else:
        print(yaml.safe_dump(document, sort_keys=False, default_flow_style=False))


if __name__ == "__main__":
    main()
