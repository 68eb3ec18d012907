"""Tests for persisted scan state.

Test Files and Coverage:
========================

| Test File           | Test Classes        | Tested Constructs                | Tested Functionalities                   |
|---------------------|---------------------|----------------------------------|------------------------------------------|
| test_work_list.py   | WorkListStoreTest   | WorkListStore, WorkListReader    | Generation, offsets, offset validation   |
| test_checkpoint.py  | CheckpointStoreTest | CheckpointStore                  | Read/write, malformed lock files         |
| test_settings.py    | SettingsTest        | Settings                         | TOML loading, dotted keys                |
|                     | SessionPathsTest    | SessionPaths                     | State file locations                     |
"""
