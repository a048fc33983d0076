"""
LaTeX Render Service
====================

An HTTP service that converts LaTeX source documents into PNG images by
driving pdflatex, pdfcrop and pdftoppm inside an ephemeral workspace.

This package provides:
- FastAPI endpoints for synchronous rendering and liveness checks
- An admission gate bounding concurrent renders
- A three-stage render pipeline with a shared per-render deadline
"""

__version__ = "1.0.0"
