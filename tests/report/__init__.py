"""Tests for report module.

Test Files and Coverage:
========================

| Test File      | Test Classes           | Tested Constructs    | Tested Functionalities                 |
|----------------|------------------------|----------------------|----------------------------------------|
| test_sink.py   | DuplicateRecordTest    | DuplicateRecord      | Line format, parsing, default name     |
|                | FileResultSinkTest     | FileResultSink       | Scoping, appending, flushing           |
|                | ConsoleResultSinkTest  | ConsoleResultSink    | Printing to a stream                   |
"""
