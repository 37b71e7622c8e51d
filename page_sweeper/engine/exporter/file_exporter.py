"""Stream exporter writing the result set as JSON, JSON lines or CSV."""

from __future__ import annotations

import csv
import json
import sys
from pathlib import Path
from typing import IO, Optional

from .base import BaseExporter

RECORD_FIELDS = ("Account", "Transaction", "Amount", "Currency")


class FileExporter(BaseExporter):
    """Write records to a file, or to stdout when no path is given.

    The ``json`` format emits one JSON array once the exporter is closed,
    matching a single serialised result set; ``jsonl`` and ``csv`` stream.
    """

    def __init__(self, fmt: str, path: Path | None = None, stream: IO[str] | None = None) -> None:
        if fmt not in ("json", "jsonl", "csv"):
            raise ValueError(f"Unsupported output format: {fmt}")
        self.format = fmt
        self.path = path
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._file = path.open("w", encoding="utf-8", newline="")
            self._owns_file = True
        else:
            self._file = stream or sys.stdout
            self._owns_file = False
        self._csv_writer: Optional[csv.DictWriter] = None
        self._buffer: list[dict] = []
        self._closed = False

    def export(self, record: dict) -> None:
        if self.format == "json":
            self._buffer.append(record)
        elif self.format == "jsonl":
            json.dump(record, self._file, ensure_ascii=False)
            self._file.write("\n")
        else:  # csv
            if not self._csv_writer:
                fieldnames = [name for name in RECORD_FIELDS if name in record] or sorted(record)
                self._csv_writer = csv.DictWriter(self._file, fieldnames=fieldnames)
                self._csv_writer.writeheader()
            self._csv_writer.writerow(record)

    def flush(self) -> None:
        self._file.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.format == "json":
            json.dump(self._buffer, self._file, ensure_ascii=False)
            self._file.write("\n")
        self.flush()
        if self._owns_file:
            self._file.close()


__all__ = ["FileExporter", "RECORD_FIELDS"]
