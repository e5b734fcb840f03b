import logging
import shutil
import tempfile
import unittest
from dataclasses import replace
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config.settings import LoggingConfig, PathConfig, Settings
from query_doctor.utils.logging_config import ANALYSIS_LOG_FILE, setup_logging


class TestSetupLogging(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.root_logger = logging.getLogger()
        self.saved_handlers = list(self.root_logger.handlers)
        self.saved_level = self.root_logger.level

    def tearDown(self):
        for handler in list(self.root_logger.handlers):
            self.root_logger.removeHandler(handler)
            handler.close()
        for handler in self.saved_handlers:
            self.root_logger.addHandler(handler)
        self.root_logger.setLevel(self.saved_level)
        shutil.rmtree(self.tmp_dir)

    def settings(self, level='WARNING'):
        return replace(
            Settings.from_env(),
            paths=PathConfig(log_dir=Path(self.tmp_dir) / 'logs'),
            logging=LoggingConfig(level=level, format='%(levelname)s %(message)s'),
        )

    def test_console_and_file_handlers(self):
        root = setup_logging(self.settings())

        file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        console_handlers = [h for h in root.handlers if not isinstance(h, RotatingFileHandler)]

        self.assertEqual(len(file_handlers), 1)
        self.assertEqual(len(console_handlers), 1)
        self.assertEqual(console_handlers[0].level, logging.WARNING)
        self.assertEqual(Path(file_handlers[0].baseFilename).name, ANALYSIS_LOG_FILE)

    def test_file_uses_configured_format(self):
        setup_logging(self.settings())
        logging.getLogger('query_doctor.test').info("pipeline finished")
        for handler in self.root_logger.handlers:
            handler.flush()

        content = (Path(self.tmp_dir) / 'logs' / ANALYSIS_LOG_FILE).read_text(encoding='utf-8')
        self.assertIn('INFO pipeline finished', content)

    def test_repeated_setup_replaces_handlers(self):
        setup_logging(self.settings())
        root = setup_logging(self.settings())

        self.assertEqual(len(root.handlers), 2)

    def test_noisy_libraries_quietened(self):
        setup_logging(self.settings())

        self.assertEqual(logging.getLogger('sqlglot').level, logging.ERROR)


if __name__ == '__main__':
    unittest.main()
