import sys
from pathlib import Path
from typing import Optional, TextIO

from .fetcher import ResponseRecord

SUMMARY_FORMAT = "{url},{location},status: {status},size: {size},words: {words},lines: {lines},type: {type}"


class Reporter:
    """Writes result lines to stdout, one complete line per call."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    def _emit(self, line: str):
        self.stream.write(line + "\n")
        self.stream.flush()

    def summary(self, url: str, record: ResponseRecord):
        self._emit(SUMMARY_FORMAT.format(
            url=url,
            location=record.location,
            status=record.status_code,
            size=record.size,
            words=record.word_count,
            lines=record.line_count,
            type=record.content_type,
        ))

    def error(self, url: str, error: Exception):
        self._emit(SUMMARY_FORMAT.format(
            url=url, location=error, status=0, size=0, words=0, lines=0, type="error",
        ))

    def saved(self, body_path: Path, url: str, status_code: int):
        self._emit(f"{body_path}: {url} {status_code}")
