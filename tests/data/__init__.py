"""
Test Data Package
================

Sample LaTeX documents for the render service tests.
"""

from .sample_documents import (
    MINIMAL_DOCUMENT,
    TWO_PAGE_DOCUMENT,
    MALFORMED_DOCUMENT,
    SLOW_DOCUMENT,
    SILENT_DOCUMENT,
)

__all__ = [
    'MINIMAL_DOCUMENT',
    'TWO_PAGE_DOCUMENT',
    'MALFORMED_DOCUMENT',
    'SLOW_DOCUMENT',
    'SILENT_DOCUMENT',
]
