"""Persistence sinks."""

from .base import BaseSink
from .file_exporter import FileSink, keyword_filename

__all__ = ["BaseSink", "FileSink", "keyword_filename"]
