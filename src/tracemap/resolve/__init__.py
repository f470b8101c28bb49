"""Resolve runtime locations (stack frames) back to indexed source files."""

from tracemap.resolve.frames import StackFrame, parse_frame, parse_stack
from tracemap.resolve.resolver import ReverseResolver, enclosing_symbol

__all__ = [
    "ReverseResolver",
    "StackFrame",
    "enclosing_symbol",
    "parse_frame",
    "parse_stack",
]
