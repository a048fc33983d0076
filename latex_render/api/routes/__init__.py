"""
API Routes
==========

Routers for the render and health endpoints.
"""
