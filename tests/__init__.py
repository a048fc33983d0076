"""
Test Suite
==========

Tests for the LaTeX render service, mirroring the latex_render/ package.

Test Categories:
- unit: Settings, admission gate, workspaces, stage runner and pipeline
- integration: HTTP API against a fake toolchain, and against the real
  TeX and Poppler tools when installed (marked ``toolchain``)
"""
