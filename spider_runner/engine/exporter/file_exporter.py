"""File based writer supporting JSON, pretty JSON, JSON lines and CSV."""

from __future__ import annotations

import csv
import json
import textwrap
from pathlib import Path
from threading import Lock
from typing import Any, BinaryIO, Optional, TextIO

from .base import BaseExporter

FORMATS = ("json", "pretty_json", "jsonlines", "csv")
JSON_FORMATS = ("json", "pretty_json")


class FileExporter(BaseExporter):
    """Write items to one local file; safe to share between worker threads.

    ``json`` and ``pretty_json`` keep a valid JSON array on disk after every
    write: each record overwrites the closing bracket and appends a new one.
    ``jsonlines`` and ``csv`` append.
    """

    def __init__(self, path: Path, fmt: str, append: bool = False, position: bool = True) -> None:
        if fmt not in FORMATS:
            raise ValueError(f"Unsupported output format: {fmt} (expected one of {FORMATS})")
        self.path = Path(path)
        self.format = fmt
        self.append = append
        self.position = position
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._counter = 0
        self._file: Optional[TextIO] = None
        self._array: Optional[BinaryIO] = None
        # byte offset of the array's closing bracket
        self._tail = 0
        self._csv_writer: Optional[csv.DictWriter] = None
        self._csv_header_written = False
        self._prepare()

    def _prepare(self) -> None:
        existing = self.append and self.path.exists() and self.path.stat().st_size > 0
        if self.format in JSON_FORMATS:
            self._prepare_array(existing)
            return
        if existing:
            with self.path.open("r", encoding="utf-8", newline="") as stream:
                self._counter = sum(1 for _ in stream)
            if self.format == "csv":
                # Header line is not an item.
                self._counter = max(self._counter - 1, 0)
        mode = "a" if self.append else "w"
        self._file = self.path.open(mode, encoding="utf-8", newline="")
        self._csv_header_written = bool(existing)

    def _prepare_array(self, existing: bool) -> None:
        if not existing:
            self._array = self.path.open("w+b")
            self._array.write(b"[]")
            self._array.flush()
            self._tail = 1
            return
        raw = self.path.read_bytes()
        loaded = json.loads(raw.decode("utf-8"))
        if not isinstance(loaded, list):
            raise ValueError(f"Cannot append to non-array JSON file: {self.path}")
        self._counter = len(loaded)
        self._tail = len(raw.rstrip()) - 1
        self._array = self.path.open("r+b")
        self._array.truncate(self._tail + 1)

    def _array_chunk(self, record: dict[str, Any], first: bool) -> bytes:
        if self.format == "pretty_json":
            body = textwrap.indent(json.dumps(record, ensure_ascii=False, indent=2, default=str), "  ")
            text = ("\n" if first else ",\n") + body + "\n]"
        else:
            body = json.dumps(record, ensure_ascii=False, default=str)
            text = ("" if first else ", ") + body + "]"
        return text.encode("utf-8")

    def write(self, item: dict) -> None:
        with self._lock:
            first = self._counter == 0
            self._counter += 1
            record = dict(item)
            if self.position:
                record["position"] = self._counter
            if self._array is not None:
                self._array.seek(self._tail)
                self._array.write(self._array_chunk(record, first))
                self._array.flush()
                self._tail = self._array.tell() - 1
            elif self.format == "jsonlines":
                self._file.write(json.dumps(record, ensure_ascii=False, default=str))
                self._file.write("\n")
            else:
                if not self._csv_writer:
                    self._csv_writer = csv.DictWriter(self._file, fieldnames=list(record.keys()))
                    if not self._csv_header_written:
                        self._csv_writer.writeheader()
                        self._csv_header_written = True
                self._csv_writer.writerow(record)

    def flush(self) -> None:
        with self._lock:
            for stream in (self._file, self._array):
                if stream is not None and not stream.closed:
                    stream.flush()

    def close(self) -> None:
        with self._lock:
            for stream in (self._file, self._array):
                if stream is not None and not stream.closed:
                    stream.close()


__all__ = ["FORMATS", "FileExporter"]
