"""Campus Library - Services Package

This package contains service modules for external integrations:
- ImageKit signed-upload authentication and upload transport
- HTTP client abstraction
"""
