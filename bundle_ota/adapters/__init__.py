"""Adapter package for external I/O implementations.

Purpose:
    Concrete implementations of the domain ports: the feed manifest over
    HTTP, archive download/extraction and the JSON version record.

Dependencies:
    ``requests`` for HTTP, ``pydantic`` for manifest validation, ``zipfile``
    and filesystem APIs for archives and records.
"""
