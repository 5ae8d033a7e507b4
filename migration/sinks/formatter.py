"""
Serialize a record to exactly one delimited output line
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional
import csv
import io

from schemas.job import SinkConfig


class LineFormatter:
    """
    Field order comes from ``SinkConfig.fields`` when set, otherwise from the
    record itself. Values containing the delimiter or quotes are quoted by the
    csv module; embedded line breaks are flattened to spaces so one record
    always maps to one physical line.
    """

    def __init__(self, config: SinkConfig):
        self.fields: Optional[List[str]] = list(config.fields) if config.fields else None
        self.null_value = config.null_value
        self.line_ending = config.line_ending
        self._buffer = io.StringIO()
        self._writer = csv.writer(
            self._buffer,
            delimiter=config.delimiter,
            lineterminator=config.line_ending,
            quoting=csv.QUOTE_MINIMAL,
        )

    def format_value(self, value: Any) -> str:
        if value is None:
            return self.null_value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return format(value, "f")
        text = str(value)
        if "\n" in text or "\r" in text:
            text = " ".join(text.splitlines())
        return text

    def format(self, record: Mapping[str, Any]) -> str:
        fields = self.fields if self.fields is not None else list(record.keys())
        self._buffer.seek(0)
        self._buffer.truncate()
        self._writer.writerow([self.format_value(record.get(f)) for f in fields])
        return self._buffer.getvalue()

    def frame_line(self, text: str) -> str:
        """Header / footer lines are written verbatim."""
        return text + self.line_ending

    def footer(self, label: str, count: int) -> str:
        return self.frame_line(f"{label}: {int(count)}")
