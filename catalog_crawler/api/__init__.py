"""
Catalog REST API Module

- Batch price updates
- Variant price history

All endpoints require authentication.
"""
