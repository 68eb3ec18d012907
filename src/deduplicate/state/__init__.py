"""Persisted state of a scan.

This package contains:
- paths: SessionPaths, the locations of the state files
- work_list: WorkListStore and WorkListReader for the list of files to scan
- checkpoint: CheckpointStore for the lock file holding the resume offset
- settings: Settings read from deduplicate.toml
"""
