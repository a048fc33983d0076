"""
Data Models
===========

Pydantic models for API responses and render metadata.
"""
