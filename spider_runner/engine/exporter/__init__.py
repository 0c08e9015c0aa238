"""Output writer SPI and implementations."""

from .base import BaseExporter
from .file_exporter import FORMATS, FileExporter

__all__ = ["BaseExporter", "FORMATS", "FileExporter"]
