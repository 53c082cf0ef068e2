"""
Diagnostics, runtime guards, and the incremental result cache.
"""

from .guards import RuntimeGuard
from .report import (
    Severity,
    Diagnostic,
    ConstraintReport,
    InversionReport,
    FunctionReport,
    UnitReport,
)
from .cache import ResultCache, encode_report, decode_report

__all__ = [
    "RuntimeGuard",
    "Severity",
    "Diagnostic",
    "ConstraintReport",
    "InversionReport",
    "FunctionReport",
    "UnitReport",
    "ResultCache",
    "encode_report",
    "decode_report",
]
