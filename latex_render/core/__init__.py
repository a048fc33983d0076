"""
Core Business Logic
===================

Render pipeline: admission control, workspaces, stage execution and
orchestration of the external toolchain.
"""
