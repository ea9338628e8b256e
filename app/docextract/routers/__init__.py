"""
Routers package for FastAPI endpoints.

Organized by pipeline stage:
- upload: File upload and indexing
- ask: Structured-data extraction
- export: Excel export of extracted tables
"""

from . import ask, export, upload

__all__ = ["ask", "export", "upload"]
