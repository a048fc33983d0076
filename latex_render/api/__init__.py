"""
FastAPI REST Endpoints
======================

REST API endpoints for HTTP access to the render pipeline.

Endpoints:
- POST /render-latex: Synchronous LaTeX to PNG conversion
- GET /healthz: Liveness probe
- GET /health: Capacity and version information
"""
