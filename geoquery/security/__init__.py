"""
Security utilities for the query engine.
"""

from geoquery.security.pii_redactor import PIIRedactionFilter, redact_pii

__all__ = [
    "PIIRedactionFilter",
    "redact_pii",
]
