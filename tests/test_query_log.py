import json
import os
import shutil
import tempfile
import unittest

from query_doctor.models import QueryRecord
from query_doctor.utils.query_log import load_query_log, load_schema
from tests.fixtures import SHOP_SCHEMA


class TestLoadQueryLog(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    def write(self, name, payload):
        path = os.path.join(self.tmp_dir, name)
        with open(path, 'w', encoding='utf-8') as f:
            if isinstance(payload, str):
                f.write(payload)
            else:
                json.dump(payload, f)
        return path

    def test_profiler_spelling(self):
        path = self.write('log.json', [
            {
                'sql': 'SELECT * FROM orders WHERE user_id = ?',
                'executionMS': 1.5,
                'rowCount': 3,
                'backtrace': [{'file': '/app/src/Controller.py', 'line': '12', 'function': 'show', 'class': 'Controller'}],
            },
        ])

        records = load_query_log(path)

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].execution_time_ms, 1.5)
        self.assertEqual(records[0].row_count, 3)
        self.assertEqual(records[0].backtrace[0].line, 12)
        self.assertEqual(records[0].backtrace[0].class_name, 'Controller')

    def test_wrapped_list(self):
        path = self.write('log.json', {'queries': [{'sql': 'SELECT 1', 'execution_time_ms': 2}]})

        records = load_query_log(path)

        self.assertEqual(records[0].execution_time_ms, 2.0)
        self.assertIsNone(records[0].row_count)
        self.assertIsNone(records[0].backtrace)

    def test_missing_sql(self):
        path = self.write('log.json', [{'executionMS': 1}])

        with self.assertRaises(ValueError):
            load_query_log(path)

    def test_negative_time(self):
        path = self.write('log.json', [{'sql': 'SELECT 1', 'executionMS': -4}])

        with self.assertRaises(ValueError):
            load_query_log(path)

    def test_invalid_json(self):
        with self.assertRaises(ValueError):
            load_query_log(self.write('log.json', '{not json'))

    def test_wrong_shape(self):
        with self.assertRaises(ValueError):
            load_query_log(self.write('log.json', {'entries': []}))

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_query_log(os.path.join(self.tmp_dir, 'absent.json'))

    def test_load_schema(self):
        index = load_schema(self.write('schema.json', SHOP_SCHEMA))

        self.assertEqual(index.get('orders').entity_name, 'Order')

    def test_load_schema_invalid(self):
        with self.assertRaises(ValueError):
            load_schema(self.write('schema.json', [1, 2]))


class TestQueryRecord(unittest.TestCase):

    def test_round_trip_dict(self):
        record = QueryRecord.from_dict({'sql': 'SELECT 1', 'executionMS': 3})

        self.assertEqual(record.to_dict()['execution_time_ms'], 3.0)

    def test_immutable(self):
        record = QueryRecord(sql='SELECT 1')

        with self.assertRaises(AttributeError):
            record.sql = 'SELECT 2'


if __name__ == '__main__':
    unittest.main()
