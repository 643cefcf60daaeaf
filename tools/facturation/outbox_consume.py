"""Traite les événements outbox en attente (transmission PDP des factures finalisées)."""

from __future__ import annotations

import argparse
import sys
from typing import Iterable

from backend.core.config import settings
from backend.core.db import create_engine
from backend.core.observability import start_trace
from backend.core.observability.logging import get_logger, init_logging
from backend.core.outbox.consumer import consume_one
from facturation.pdp import build_dispatcher, pdp_handlers

logger = get_logger("tools.facturation.outbox_consume")


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Consomme les événements outbox")
    parser.add_argument("--max-events", type=int, default=100, help="Nombre maximal d'événements")
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    init_logging()
    start_trace()

    engine = create_engine()
    handlers = pdp_handlers(build_dispatcher(settings), engine)
    processed = 0
    for _ in range(args.max_events):
        if not consume_one(handlers, engine):
            break
        processed += 1
    logger.info("outbox_consume_finished", extra={"processed": processed})
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
