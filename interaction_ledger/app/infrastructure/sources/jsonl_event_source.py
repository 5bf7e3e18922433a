from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonLinesInteractionEventSource:
    """
    Upstream source reading one JSON interaction event per line.

    Lines are handed to the ingestion path untouched (as raw JSON documents),
    so malformed lines are reported as rejected events instead of aborting
    the whole file. Blank lines are skipped. path "-" reads stdin.

    Expected shape:
      {"hash": "0x..", "block": 123, "address": "0x..", "contract": "0x..", "chain": "eth",
       "authoritative": false, "source": "reorg-watcher"}
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)

    def __iter__(self) -> Iterator[str]:
        if self._path == "-":
            yield from self._lines(sys.stdin)
            return

        with open(self._path, encoding="utf-8") as f:
            yield from self._lines(f)

    def _lines(self, stream) -> Iterator[str]:
        count = 0
        for line in stream:
            line = line.strip()
            if not line:
                continue
            count += 1
            yield line
        logger.debug("Read %s events from %s", count, self._path)
