"""Reporting utilities for annflow."""

from .artifacts import write_manifest, write_parameters
from .metrics import CsvSink, JsonlSink
from .plots import PlotAdapter
from .summary import compute_auc, summarize, write_summary

__all__ = [
    "CsvSink",
    "JsonlSink",
    "PlotAdapter",
    "compute_auc",
    "summarize",
    "write_manifest",
    "write_parameters",
    "write_summary",
]
