from .deduplicator import Deduplicator, ScanOptions, ScanResult
from .errors import DeduplicateError, SetupError, TransientFileError, HashError, ScanInterrupted
from .index.dedup_index import DedupIndex, Classification
from .report.sink import DuplicateRecord, ResultSink, FileResultSink, ConsoleResultSink
from .state.settings import Settings
from .utils.processor import Processor
