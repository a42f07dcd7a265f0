"""Library for formatting command output."""

import json
import sys
from abc import ABC, abstractmethod
from collections.abc import Generator
from typing import Any, TextIO

import yaml

PADDING = 4

OUTPUT_CHOICES = ["yaml", "json"]


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Yield rows padded so that columns line up."""
    data = [headers] + rows
    if not headers:
        return
    widths = [
        max(len(str(row[i])) for row in data) + PADDING for i in range(len(headers))
    ]
    for row in data:
        yield "".join(f"{str(value):{width}}" for value, width in zip(row, widths))


class TableFormatter:
    """A formatter that prints human readable columns."""

    def __init__(self, keys: list[str]) -> None:
        """Initialize the TableFormatter with the keys to print, in order."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the rows, or nothing at all when there are no rows."""
        if not data:
            return
        rows = [
            ["" if row.get(key) is None else str(row[key]) for key in self._keys]
            for row in data
        ]
        yield from format_columns([key.upper() for key in self._keys], rows)

    def print(self, data: list[dict[str, Any]], file: TextIO | None = None) -> None:
        for line in self.format(data):
            print(line, file=file or sys.stdout)


class DocumentFormatter(ABC):
    """A formatter that prints a list of documents."""

    @abstractmethod
    def format(self, docs: list[dict[str, Any]]) -> str:
        """Return the documents as text."""

    def print(self, docs: list[dict[str, Any]], file: TextIO | None = None) -> None:
        print(self.format(docs), end="", file=file or sys.stdout)


class YamlFormatter(DocumentFormatter):
    """A formatter that prints a yaml stream with one document per object."""

    def format(self, docs: list[dict[str, Any]]) -> str:
        return yaml.dump_all(docs, sort_keys=False, explicit_start=True)


class JsonFormatter(DocumentFormatter):
    """A formatter that prints a json list of objects."""

    def format(self, docs: list[dict[str, Any]]) -> str:
        return json.dumps(docs, indent=4, sort_keys=False) + "\n"


def document_formatter(output: str) -> DocumentFormatter:
    """Return the formatter for an `--output` choice."""
    if output == "yaml":
        return YamlFormatter()
    if output == "json":
        return JsonFormatter()
    raise ValueError(f"Unknown output format: {output}")
