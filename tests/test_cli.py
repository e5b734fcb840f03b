import argparse
import io
import json
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest.mock import patch

import main
from tests.fixtures import CARTESIAN_SQL, SHOP_SCHEMA


@patch('main.setup_logging')
class TestCli(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    def write(self, name, payload):
        path = os.path.join(self.tmp_dir, name)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f)
        return path

    def run_main(self, argv):
        output = io.StringIO()
        with redirect_stdout(output):
            code = main.main(argv)
        return code, output.getvalue()

    def test_analyze_json(self, _setup_logging):
        log = self.write('log.json', [
            {'sql': f"SELECT * FROM orders WHERE user_id = {n}", 'executionMS': 1} for n in range(6)
        ] + [{'sql': CARTESIAN_SQL, 'executionMS': 2}])
        schema = self.write('schema.json', SHOP_SCHEMA)

        code, output = self.run_main(['analyze', log, '--schema', schema, '--json'])
        report = json.loads(output)

        self.assertEqual(code, 0)
        self.assertEqual(report['statistics']['query_count'], 7)
        self.assertIn('cartesian_product', {issue['type'] for issue in report['issues']})

    def test_analyze_top(self, _setup_logging):
        log = self.write('log.json', [
            {'sql': 'SELECT * FROM orders', 'rowCount': 5000},
            {'sql': 'SELECT * FROM users', 'rowCount': 500},
        ])

        code, output = self.run_main(['analyze', log, '--json', '--top', '1'])

        self.assertEqual(code, 0)
        self.assertEqual(len(json.loads(output)['issues']), 1)

    def test_top_must_be_positive(self, _setup_logging):
        log = self.write('log.json', [{'sql': 'SELECT * FROM orders', 'rowCount': 5000}])

        for value in ('0', '-1'):
            with redirect_stderr(io.StringIO()):
                with self.assertRaises(SystemExit) as raised:
                    main.main(['analyze', log, '--top', value])
            self.assertEqual(raised.exception.code, 2)

    def test_positive_int(self, _setup_logging):
        self.assertEqual(main.positive_int('3'), 3)
        with self.assertRaises(argparse.ArgumentTypeError):
            main.positive_int('zero')

    def test_analyze_missing_file(self, _setup_logging):
        code, _ = self.run_main(['analyze', os.path.join(self.tmp_dir, 'absent.json')])

        self.assertEqual(code, 1)

    def test_normalize(self, _setup_logging):
        code, output = self.run_main(['normalize', 'SELECT * FROM orders WHERE user_id = 42'])

        self.assertEqual(code, 0)
        self.assertIn('SELECT * FROM ORDERS WHERE USER_ID = ?', output)
        self.assertIn('|orders|user_id', output)

    def test_config_json(self, _setup_logging):
        code, output = self.run_main(['config', '--json'])

        self.assertEqual(code, 0)
        self.assertIn('n_plus_one', json.loads(output))

    def test_no_command(self, _setup_logging):
        with redirect_stdout(io.StringIO()):
            self.assertEqual(main.main([]), 1)


if __name__ == '__main__':
    unittest.main()
