"""
Rendering
=========

LaTeX to PNG rendering through the external toolchain.

Components:
- admission: Non-blocking gate bounding concurrent renders
- workspace: Per-render temporary directories
- stages: Subprocess execution under a shared deadline
- pipeline: Typeset, crop and rasterize orchestration
"""
