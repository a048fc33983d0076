"""
Configuration Management
=======================

Environment-based configuration using Pydantic Settings.

Components:
- settings: Process-wide settings loaded once at startup
- logging: Structured logging configuration
"""
