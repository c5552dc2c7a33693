"""Use-case layer for the bundle update workflow.

Each module coordinates domain objects and ports without performing transport
I/O directly.
"""
