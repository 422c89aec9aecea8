"""Ingestion layer.

This package converts feed observations and store payloads into
normalized domain records.
"""

__all__: list[str] = []
