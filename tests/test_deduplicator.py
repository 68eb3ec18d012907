import os
import signal
import tempfile
import unittest
from pathlib import Path

from deduplicate import Deduplicator, ScanOptions
from deduplicate.errors import HashError, ScanInterrupted, SetupError
from deduplicate.report.sink import FileResultSink
from deduplicate.state.checkpoint import CheckpointStore
from deduplicate.state.work_list import WorkListStore
from deduplicate.utils.signals import TERMINATION_SIGNALS

from .test_utils import CollectingSink, RecordingDigest, compute_md5, make_files, write_work_list


class DeduplicatorTest(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self._tmpdir.name)
        self.tree = self.root / 'tree'
        self.state = self.root / 'state'
        self.tree.mkdir()
        self.state.mkdir()

    def tearDown(self):
        self._tmpdir.cleanup()

    def _deduplicator(self, calculate_digest=compute_md5, **options) -> Deduplicator:
        return Deduplicator(self.tree, calculate_digest, self.state, ScanOptions(**options))

    def test_full_scan(self):
        make_files(self.tree, {
            'a.jpg': b'x',
            'sub/b.jpg': b'x',
            'sub/c.jpg': b'y',
            'd.txt': b'x',
            'e.jpg': b'z',
        })
        deduplicator = self._deduplicator(extensions=('.jpg',))
        sink = CollectingSink()

        result = deduplicator.process(sink)

        self.assertFalse(result.resumed)
        self.assertEqual(4, result.listed)
        self.assertEqual(4, result.classified)
        self.assertEqual(3, result.distinct)
        self.assertEqual(1, result.duplicates)
        self.assertEqual(1, len(sink.records))
        self.assertEqual({'a.jpg', 'b.jpg'}, set(sink.pairs[0]))
        self.assertFalse(deduplicator.paths.work_list.exists())
        self.assertFalse(deduplicator.paths.checkpoint.exists())

    def test_original_is_first_in_list_order(self):
        make_files(self.tree, {name: b'same' for name in ('p', 'q', 'r', 's')})
        sink = CollectingSink()

        self._deduplicator(concurrency=4).process(sink)

        originals = {record.original for record in sink.records}
        self.assertEqual(1, len(originals))
        self.assertEqual(3, len(sink.records))
        self.assertNotIn(originals.pop(), {record.duplicate for record in sink.records})

    def test_rerun_on_unchanged_tree_is_idempotent(self):
        """Two complete runs over the same tree report the same duplicate groups."""
        make_files(self.tree, {
            'a': b'x', 'sub/b': b'x', 'sub/deep/c': b'x',
            'd': b'y', 'sub/e': b'y',
            'f': b'z',
        })

        def duplicate_groups(sink: CollectingSink) -> set[frozenset[Path]]:
            groups: dict[Path, set[Path]] = {}
            for record in sink.records:
                groups.setdefault(record.original, {record.original}).add(record.duplicate)
            return {frozenset(group) for group in groups.values()}

        runs = []
        for _ in range(2):
            sink = CollectingSink()
            result = self._deduplicator(concurrency=3).process(sink)
            self.assertFalse(result.resumed)
            runs.append((result, sink))

        (first, first_sink), (second, second_sink) = runs
        self.assertEqual(3, len(first_sink.records))
        self.assertEqual(len(first_sink.records), len(second_sink.records))
        self.assertEqual(duplicate_groups(first_sink), duplicate_groups(second_sink))
        self.assertEqual(first, second)

    def test_resume_from_checkpoint(self):
        files = make_files(self.tree, {'a': b'x', 'b': b'y', 'c': b'x', 'd': b'x'})
        deduplicator = self._deduplicator()
        offsets = write_work_list(deduplicator.paths.work_list, [files[name] for name in 'abcd'])
        CheckpointStore(deduplicator.paths).write(offsets[1])
        asked = []
        sink = CollectingSink()

        result = deduplicator.process(sink, should_resume=lambda path: asked.append(path) or True)

        self.assertEqual([deduplicator.paths.work_list], asked)
        self.assertTrue(result.resumed)
        self.assertEqual(offsets[1], result.start_offset)
        self.assertIsNone(result.listed)
        self.assertEqual(2, result.classified)
        # a was hashed before the checkpoint, so c becomes the original of d
        self.assertEqual([('c', 'd')], sink.pairs)
        self.assertFalse(deduplicator.paths.work_list.exists())
        self.assertFalse(deduplicator.paths.checkpoint.exists())

    def test_resume_at_end_of_list(self):
        files = make_files(self.tree, {'a': b'x', 'b': b'x'})
        deduplicator = self._deduplicator()
        offsets = write_work_list(deduplicator.paths.work_list, [files['a'], files['b']])
        CheckpointStore(deduplicator.paths).write(offsets[-1])
        sink = CollectingSink()

        result = deduplicator.process(sink)

        self.assertEqual(0, result.classified)
        self.assertEqual([], sink.lines)
        self.assertFalse(deduplicator.paths.work_list.exists())

    def test_restart_discards_previous_list(self):
        files = make_files(self.tree, {'a': b'x', 'b': b'x'})
        deduplicator = self._deduplicator()
        offsets = write_work_list(deduplicator.paths.work_list, [files['a'], files['b']])
        CheckpointStore(deduplicator.paths).write(offsets[-1])
        sink = CollectingSink()

        result = deduplicator.process(sink, should_resume=lambda path: False)

        self.assertFalse(result.resumed)
        self.assertEqual(2, result.listed)
        self.assertEqual(1, result.duplicates)

    def test_lock_without_work_list(self):
        deduplicator = self._deduplicator()
        CheckpointStore(deduplicator.paths).write(0)

        with self.assertRaises(SetupError):
            deduplicator.process(CollectingSink())

        self.assertTrue(deduplicator.paths.checkpoint.exists())

    def test_resume_without_lock(self):
        files = make_files(self.tree, {'a': b'x'})
        deduplicator = self._deduplicator()
        write_work_list(deduplicator.paths.work_list, [files['a']])

        with self.assertRaises(SetupError):
            deduplicator.process(CollectingSink(), should_resume=lambda path: True)

        self.assertTrue(deduplicator.paths.work_list.exists())

    def test_checkpoint_inside_a_line(self):
        files = make_files(self.tree, {'a': b'x', 'b': b'x'})
        deduplicator = self._deduplicator()
        offsets = write_work_list(deduplicator.paths.work_list, [files['a'], files['b']])
        CheckpointStore(deduplicator.paths).write(offsets[0] + 1)

        with self.assertRaises(SetupError):
            deduplicator.process(CollectingSink())

    def test_interrupted_by_signal(self):
        """A termination signal stops the scan and leaves a resumable checkpoint."""
        make_files(self.tree, {name: bytes([i]) for i, name in enumerate('abcdef')})
        previous = {signum: signal.getsignal(signum) for signum in TERMINATION_SIGNALS}
        digest = RecordingDigest(hooks={'d': lambda path: os.kill(os.getpid(), signal.SIGTERM)})
        deduplicator = self._deduplicator(digest, concurrency=1)

        with self.assertRaises(ScanInterrupted) as cm:
            deduplicator.process(CollectingSink())

        self.assertEqual(signal.SIGTERM, cm.exception.signum)
        self.assertTrue(deduplicator.paths.work_list.exists())
        offset = CheckpointStore(deduplicator.paths).read()
        self.assertLess(offset, deduplicator.paths.work_list.stat().st_size)
        for signum in TERMINATION_SIGNALS:
            self.assertEqual(previous[signum], signal.getsignal(signum))

        with WorkListStore(deduplicator.paths).open_for_read() as reader:
            items = list(reader)
        remaining = [item.path for item in items if item.start_offset >= offset]
        self.assertIn(self.tree / 'd', remaining)
        # Lines before the checkpoint were all classified by the interrupted run
        self.assertEqual([item.path for item in items if item.start_offset < offset],
                         digest.completed[:len(items) - len(remaining)])

        resumed_digest = RecordingDigest()
        result = self._deduplicator(resumed_digest, concurrency=1).process(
            CollectingSink(), should_resume=lambda path: True)

        self.assertTrue(result.resumed)
        self.assertEqual(offset, result.start_offset)
        # Every line from the checkpoint on is hashed exactly once, nothing before it
        self.assertEqual(remaining, resumed_digest.started)
        self.assertEqual(len(remaining), result.classified)
        self.assertFalse(deduplicator.paths.work_list.exists())
        self.assertFalse(deduplicator.paths.checkpoint.exists())

    def test_hash_failure_saves_progress(self):
        make_files(self.tree, {'a': b'x', 'b': b'y', 'c': b'z'})
        digest = RecordingDigest(failures={'b': PermissionError(13, 'Permission denied')})
        deduplicator = self._deduplicator(digest, concurrency=1)

        with self.assertRaises(HashError) as cm:
            deduplicator.process(CollectingSink())

        self.assertEqual('b', cm.exception.path.name)
        self.assertTrue(deduplicator.paths.work_list.exists())
        self.assertTrue(deduplicator.paths.checkpoint.exists())

    def test_hash_failure_isolated(self):
        make_files(self.tree, {'a': b'x', 'b': b'x', 'c': b'x'})
        digest = RecordingDigest(failures={'b': PermissionError(13, 'Permission denied')})

        result = self._deduplicator(digest, isolate_errors=True).process(CollectingSink())

        self.assertEqual(1, result.failed)
        self.assertEqual(2, result.classified)
        self.assertEqual(1, result.duplicates)

    def test_missing_root_leaves_no_work_list(self):
        deduplicator = Deduplicator(self.root / 'missing', compute_md5, self.state)

        with self.assertRaises(FileNotFoundError):
            deduplicator.process(CollectingSink())

        self.assertFalse(deduplicator.paths.work_list.exists())
        self.assertFalse(deduplicator.paths.checkpoint.exists())

    def test_state_and_result_files_are_not_listed(self):
        """State and result files inside the scanned tree are never compared."""
        make_files(self.tree, {'a': b'dup', 'results.txt': b'dup'})
        sink = FileResultSink(self.tree / 'results.txt')
        deduplicator = Deduplicator(self.tree, compute_md5, self.tree)

        result = deduplicator.process(sink, excluded_paths=[sink.path])

        self.assertEqual(1, result.listed)
        self.assertEqual(0, result.duplicates)
        self.assertEqual('dup', sink.path.read_text())
        self.assertFalse(deduplicator.paths.work_list.exists())


if __name__ == '__main__':
    unittest.main()
