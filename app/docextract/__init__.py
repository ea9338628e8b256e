"""
PDF Table Extraction Backend Application.

A FastAPI service that uploads PDF documents to OpenAI file storage,
indexes them in a vector store, extracts structured data (tables,
title-block fields, notes) with a vision-capable model and exports the
extracted tables as an Excel workbook.
"""

__version__ = "1.0.0"
