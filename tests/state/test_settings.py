import tempfile
import unittest
from pathlib import Path

from deduplicate.state.paths import SETTINGS_NAME, SessionPaths
from deduplicate.state.settings import (
    SETTING_CONCURRENCY,
    SETTING_LOGGING_LEVEL,
    SETTING_TYPES,
    Settings,
)


class SettingsTest(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self._tmpdir.name)

    def tearDown(self):
        self._tmpdir.cleanup()

    def test_missing_file_returns_defaults(self):
        settings = Settings(self.root)

        self.assertEqual(self.root / SETTINGS_NAME, settings.path)
        self.assertIsNone(settings.get(SETTING_CONCURRENCY))
        self.assertEqual(7, settings.get(SETTING_CONCURRENCY, 7))

    def test_dotted_keys(self):
        (self.root / SETTINGS_NAME).write_text(
            '[scan]\n'
            'concurrency = 4\n'
            'types = [".jpg", ".png"]\n'
            '\n'
            '[logging]\n'
            'level = "DEBUG"\n'
        )

        settings = Settings(self.root)

        self.assertEqual(4, settings.get(SETTING_CONCURRENCY))
        self.assertEqual(['.jpg', '.png'], settings.get(SETTING_TYPES))
        self.assertEqual('DEBUG', settings.get(SETTING_LOGGING_LEVEL))
        self.assertEqual({'level': 'DEBUG'}, settings.get('logging'))

    def test_non_table_intermediate_returns_default(self):
        (self.root / SETTINGS_NAME).write_text('scan = 3\n')

        self.assertEqual('x', Settings(self.root).get(SETTING_CONCURRENCY, 'x'))

    def test_explicit_settings_file(self):
        custom = self.root / 'custom.toml'
        custom.write_text('[scan]\nconcurrency = 2\n')

        settings = Settings(self.root, custom)

        self.assertEqual(custom, settings.path)
        self.assertEqual(2, settings.get(SETTING_CONCURRENCY))


class SessionPathsTest(unittest.TestCase):
    def test_paths_are_absolute_and_named(self):
        paths = SessionPaths.in_directory(Path('state'))

        self.assertTrue(paths.work_list.is_absolute())
        self.assertEqual('deduplicate-list', paths.work_list.name)
        self.assertEqual('deduplicate.lock', paths.checkpoint.name)
        self.assertEqual(paths.work_list.parent, paths.checkpoint.parent)
        self.assertEqual({paths.work_list, paths.checkpoint}, paths.all())


if __name__ == '__main__':
    unittest.main()
