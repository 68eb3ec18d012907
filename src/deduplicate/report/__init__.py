"""Output of a scan.

This package contains:
- sink: DuplicateRecord and the result sinks (file, console) records are written to
"""
