"""Output formatters for GridStream pages and extracts."""

from gridstream.formatters.base import Formatter, FormatterRegistry, registry
from gridstream.formatters.csv import CSVFormatter
from gridstream.formatters.json import JSONFormatter
from gridstream.formatters.table import TableFormatter

__all__ = [
    "CSVFormatter",
    "Formatter",
    "FormatterRegistry",
    "JSONFormatter",
    "TableFormatter",
    "registry",
]
