# FILE: scribe/actions/__init__.py
"""Action pipeline: extract, patch, type-check, apply and commit."""

from .response_processor import dry_run_search_replace, process_full_response_actions
from .tag_parser import extract, extract_with_warnings

__all__ = [
    "extract",
    "extract_with_warnings",
    "dry_run_search_replace",
    "process_full_response_actions",
]
