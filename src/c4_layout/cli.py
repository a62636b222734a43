"""Command-line entry point: lay out one view of an exported model as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from c4_layout.model import C4Model, ModelError, View, ViewType
from c4_layout.orchestrator import LayoutOrchestrator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="c4-layout", description="Compute diagram positions for one view of a model.")
    parser.add_argument("model", type=Path, help="model.json produced by the model exporter")
    parser.add_argument("--view", choices=[v.value for v in ViewType], default=ViewType.LANDSCAPE.value)
    parser.add_argument("--focus", help="focused system/container/deployment id")
    parser.add_argument("--selected", help="selected entity id (narrows the deployment view)")
    parser.add_argument("--query", default="", help="free-text filter; non-matching nodes are dimmed")
    parser.add_argument("--indent", type=int, default=2)
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    try:
        doc = json.loads(args.model.read_text(encoding="utf-8"))
        model = C4Model.from_dict(doc)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ModelError) as exc:
        parser.error(f"cannot load {args.model}: {exc}")

    view = View(type=ViewType(args.view), focus=args.focus, selected=args.selected, query=args.query)
    output = asyncio.run(LayoutOrchestrator().compute_layout(model, view))
    logger.info("Laid out %d nodes and %d edges", len(output.nodes), len(output.edges))

    json.dump(output.to_dict(), sys.stdout, indent=args.indent)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
