"""File based sink supporting CSV and JSON lines."""

from __future__ import annotations

import csv
import json
import re
from pathlib import Path
from typing import Optional, Sequence

from ...errors import SinkWriteError
from ..records import RECORD_FIELDS, Record
from .base import BaseSink


def keyword_filename(keyword: str, fmt: str) -> str:
    slug = re.sub(r"\s+", "-", keyword.strip())
    slug = re.sub(r"[^0-9A-Za-z_-]+", "_", slug) or "keyword"
    extension = "jsonl" if fmt == "json" else "csv"
    return f"{slug}.{extension}"


class FileSink(BaseSink):
    """Append records to one file per keyword; reruns extend the file."""

    def __init__(self, output_dir: Path, keyword: str, fmt: str = "csv") -> None:
        if fmt not in ("csv", "json"):
            raise ValueError(f"Unsupported output format: {fmt}")
        self.output_dir = output_dir
        self.keyword = keyword
        self.format = fmt
        self.path = self.output_dir / keyword_filename(keyword, fmt)
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            # Header only goes into a fresh file
            needs_header = not self.path.exists() or self.path.stat().st_size == 0
            self._file = self.path.open("a", encoding="utf-8", newline="")
        except OSError as exc:
            raise SinkWriteError(f"Cannot open {self.path}: {exc}") from exc
        self._csv_writer: Optional[csv.DictWriter] = None
        if self.format == "csv":
            self._csv_writer = csv.DictWriter(self._file, fieldnames=list(RECORD_FIELDS))
            if needs_header:
                self._csv_writer.writeheader()
                self._file.flush()
        self.rows_written = 0

    @property
    def closed(self) -> bool:
        return self._file.closed

    def append(self, records: Sequence[Record]) -> None:
        if self._file.closed:
            raise ValueError(f"Sink already closed: {self.path}")
        for record in records:
            row = record.as_row()
            if self._csv_writer is not None:
                self._csv_writer.writerow(row)
            else:
                json.dump(row, self._file, ensure_ascii=False)
                self._file.write("\n")
        self._file.flush()
        self.rows_written += len(records)

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


__all__ = ["FileSink", "keyword_filename"]
