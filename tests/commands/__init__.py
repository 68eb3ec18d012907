"""Tests for command implementation modules.

Test Files and Coverage:
========================

| Test File        | Test Classes                 | Tested Constructs              | Tested Functionalities                          |
|------------------|------------------------------|--------------------------------|-------------------------------------------------|
| test_scan.py     | HashSchedulerTest            | HashScheduler, ScanSession     | Classification order, flow control, failures    |
|                  | HashSchedulerAbortTest       | HashScheduler                  | Cancellation, safe offsets, resume offsets      |
| test_resume.py   | ResumeControllerTest         | ResumeController               | Cleanup, checkpointing, signal handling         |
"""
