"""
Dataset sinks.

Accept records one at a time, in the order the frontier emits them.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from .models import Record

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_PATH = 'storage/datasets/default.jsonl'


class DatasetWriter:
    """Appends records as JSON lines to a dataset file."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or os.getenv('CRAWLER_OUTPUT_PATH', DEFAULT_OUTPUT_PATH))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.count = 0
        self._lock = asyncio.Lock()

        logger.info(f"[dataset] Writing records to {self.path}")

    async def push(self, record: Record):
        """Append one record. Write errors propagate to the caller."""
        line = json.dumps(record.to_dict(), ensure_ascii=False)
        async with self._lock:
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(line + '\n')
            self.count += 1
        logger.debug(f"[dataset] Stored {record.source_url}")

    def read_all(self) -> List[Dict]:
        """Load every stored record (for inspection and tests)."""
        if not self.path.exists():
            return []
        with open(self.path, 'r', encoding='utf-8') as f:
            return [json.loads(line) for line in f if line.strip()]


class MemoryDataset:
    """Keeps records in memory."""

    def __init__(self):
        self.records: List[Record] = []

    async def push(self, record: Record):
        self.records.append(record)

    @property
    def count(self) -> int:
        return len(self.records)

    def urls(self) -> List[str]:
        return [record.source_url for record in self.records]
