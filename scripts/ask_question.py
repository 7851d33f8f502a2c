"""Ask a single question from the command line.

Runs the full pipeline in-process (load, chunk, index, retrieve, generate)
and prints the answer followed by the retrieval summary.

Design goals
------------
- Config-first: models, documents and limits come from YAML.
- Optional document overrides for one-off runs.
- Works when running from a repo checkout (adds `<repo>/src` to sys.path).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Make `src/doctrine_rag` importable when running from a repo checkout.
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from doctrine_rag.app.container import build_container
from doctrine_rag.common import DoctrineRAGError
from doctrine_rag.config import GlobalConfig


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ask a question about FM 5-0 and its form fields")

    parser.add_argument(
        "--query",
        "-q",
        required=True,
        type=str,
        help="Question to answer",
    )
    parser.add_argument(
        "--config-file",
        "-c",
        required=False,
        type=str,
        default=os.environ.get("DOCTRINE_CONFIG", str(REPO_ROOT / "config" / "config.yaml")),
        help="Path to the YAML configuration file (default: $DOCTRINE_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--pdf",
        required=False,
        type=str,
        default=None,
        help="Field manual PDF to use instead of the configured default (optional)",
    )
    parser.add_argument(
        "--csv",
        required=False,
        type=str,
        default=None,
        help="Form-field CSV to use instead of the configured default (optional)",
    )
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Print the answer as it is generated",
    )

    return parser.parse_args()


async def _ask(args: argparse.Namespace) -> int:
    cfg = GlobalConfig.load(args.config_file)
    logging.basicConfig(level=str(cfg.logging.get("level", "WARNING")).upper())
    container = build_container(cfg)

    pdf_bytes = Path(args.pdf).read_bytes() if args.pdf else None
    csv_text = Path(args.csv).read_text(encoding="utf-8") if args.csv else None

    try:
        result = await container.pipeline.run(
            args.query,
            pdf_bytes=pdf_bytes,
            csv_text=csv_text,
            stream=args.stream,
        )
    except DoctrineRAGError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if result.streaming:
        async for token in result.tokens:
            print(token, end="", flush=True)
        print()
    else:
        print(result.answer)

    meta = result.metadata
    print()
    print(f"Source: {meta.source} ({meta.total_results} results)")
    print("Context:")
    print(meta.context)
    return 0


def main() -> None:
    args = parse_args()
    sys.exit(asyncio.run(_ask(args)))


if __name__ == "__main__":
    main()
