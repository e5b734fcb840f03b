import unittest
from unittest.mock import Mock

from query_doctor.analyzers.base import AnalysisContext, Analyzer
from query_doctor.analyzers.hydration import HydrationAnalyzer
from query_doctor.analyzers.slow_query import SlowQueryAnalyzer
from query_doctor.models import BacktraceFrame, Severity
from query_doctor.orchestration.pipeline import QueryAnalysisPipeline
from query_doctor.utils.memory import MemoryGuard
from tests.fixtures import CARTESIAN_SQL, app_frame, query, shop_index, vendor_frame


class BrokenAnalyzer(Analyzer):
    name = 'broken'

    def analyze(self, queries):
        raise RuntimeError("analyzer exploded")
        yield


def guard(usage_bytes, limit_bytes=1000):
    return MemoryGuard(limit_bytes, 0.70, usage_probe=Mock(return_value=usage_bytes))


class TestPipelineRun(unittest.TestCase):
    """Full runs with the default analyzer set"""

    def test_default_analyzers_end_to_end(self):
        queries = [query(f"SELECT * FROM orders WHERE user_id = {n}") for n in range(1, 6)]
        queries.append(query(CARTESIAN_SQL, time_ms=20.0))

        pipeline = QueryAnalysisPipeline(metadata_index=shop_index())
        issues = pipeline.analyze(queries)
        types = {issue.issue_type for issue in issues}

        self.assertIn('n_plus_one', types)
        self.assertIn('cartesian_product', types)
        self.assertEqual(issues[0].severity, Severity.CRITICAL)

    def test_sorted_by_severity(self):
        pipeline = QueryAnalysisPipeline()
        issues = pipeline.analyze([
            query("SELECT * FROM orders", row_count=150),
            query("SELECT * FROM users", row_count=5000),
            query("SELECT * FROM comments", time_ms=150.0),
        ])

        weights = [issue.severity_weight for issue in issues]
        self.assertEqual(weights, sorted(weights, reverse=True))
        self.assertEqual(issues[0].severity, Severity.CRITICAL)

    def test_statistics(self):
        pipeline = QueryAnalysisPipeline()
        pipeline.analyze([
            query("SELECT * FROM orders", row_count=150),
            query("SELECT * FROM users", row_count=5000),
        ])

        stats = pipeline.get_statistics()

        self.assertEqual(stats['total'], 2)
        self.assertEqual(stats['critical'], 1)
        self.assertEqual(stats['warning'], 1)
        self.assertEqual(stats['info'], 0)
        self.assertEqual(stats['query_count'], 2)
        self.assertEqual(stats['skipped_analyzers'], 0)
        self.assertEqual(stats['failed_analyzers'], 0)

    def test_empty_log(self):
        pipeline = QueryAnalysisPipeline()

        self.assertEqual(pipeline.analyze([]), [])
        self.assertEqual(pipeline.get_statistics()['total'], 0)


class TestPipelineIsolation(unittest.TestCase):
    """Failures and memory pressure never abort the run"""

    def test_failing_analyzer_is_isolated(self):
        context = AnalysisContext()
        pipeline = QueryAnalysisPipeline(analyzers=[BrokenAnalyzer(context), HydrationAnalyzer(context)])

        with self.assertLogs('query_doctor.orchestration.pipeline', level='ERROR'):
            issues = pipeline.analyze([query("SELECT * FROM orders", row_count=500)])

        self.assertEqual(len(issues), 1)
        self.assertEqual(pipeline.get_statistics()['failed_analyzers'], 1)

    def test_memory_threshold_skips_all_analyzers(self):
        context = AnalysisContext()
        analyzers = [HydrationAnalyzer(context), SlowQueryAnalyzer(context)]
        pipeline = QueryAnalysisPipeline(analyzers=analyzers, memory_guard=guard(800))

        issues = pipeline.analyze([query("SELECT * FROM orders", time_ms=500.0, row_count=500)])

        self.assertEqual(issues, [])
        self.assertEqual(pipeline.get_statistics()['skipped_analyzers'], 2)

    def test_memory_threshold_stops_mid_analyzer(self):
        context = AnalysisContext()
        probe = Mock(side_effect=[100, 900, 900])
        memory_guard = MemoryGuard(1000, 0.70, usage_probe=probe)
        pipeline = QueryAnalysisPipeline(
            analyzers=[HydrationAnalyzer(context), SlowQueryAnalyzer(context)],
            memory_guard=memory_guard,
        )

        issues = pipeline.analyze([
            query("SELECT * FROM orders", row_count=500),
            query("SELECT * FROM users", row_count=600),
        ])

        # First issue kept, the rest of hydration and all of slow_query skipped
        self.assertEqual(len(issues), 1)
        self.assertEqual(pipeline.get_statistics()['skipped_analyzers'], 1)

    def test_below_threshold_runs_everything(self):
        context = AnalysisContext()
        pipeline = QueryAnalysisPipeline(analyzers=[HydrationAnalyzer(context)], memory_guard=guard(100))

        self.assertEqual(len(pipeline.analyze([query("SELECT * FROM orders", row_count=500)])), 1)

    def test_guard_without_limit_never_trips(self):
        self.assertFalse(MemoryGuard(None).is_exceeded())


class TestExcludedPaths(unittest.TestCase):

    def setUp(self):
        self.pipeline = QueryAnalysisPipeline(excluded_paths=['vendor/'])

    def test_vendor_only_backtrace_excluded(self):
        self.assertTrue(self.pipeline.is_excluded(query("SELECT 1", backtrace=(vendor_frame(),))))

    def test_mixed_backtrace_kept(self):
        self.assertFalse(self.pipeline.is_excluded(query("SELECT 1", backtrace=(vendor_frame(), app_frame()))))

    def test_no_file_frames_kept(self):
        self.assertFalse(self.pipeline.is_excluded(query("SELECT 1")))
        self.assertFalse(self.pipeline.is_excluded(
            query("SELECT 1", backtrace=(BacktraceFrame(function='main'),))
        ))

    def test_excluded_queries_not_analyzed(self):
        self.pipeline.analyze([
            query("SELECT * FROM orders", row_count=500, backtrace=(vendor_frame(),)),
            query("SELECT * FROM users", row_count=500),
        ])

        self.assertEqual(self.pipeline.get_statistics()['query_count'], 1)


class TestGroupedTimingsAndReset(unittest.TestCase):

    def test_grouped_queries_by_time(self):
        pipeline = QueryAnalysisPipeline()
        pipeline.analyze([
            query("SELECT * FROM orders WHERE id = 1", time_ms=10.0),
            query("SELECT * FROM orders WHERE id = 2", time_ms=30.0),
            query("SELECT * FROM users", time_ms=5.0),
        ])

        groups = pipeline.get_grouped_queries_by_time()

        self.assertEqual(len(groups), 2)
        self.assertEqual(groups[0]['count'], 2)
        self.assertEqual(groups[0]['total_time_ms'], 40.0)
        self.assertEqual(groups[0]['avg_time_ms'], 20.0)
        self.assertEqual(groups[0]['max_time_ms'], 30.0)
        self.assertEqual(groups[0]['min_time_ms'], 10.0)
        self.assertEqual(groups[0]['first_query'].sql, "SELECT * FROM orders WHERE id = 1")

    def test_reset_keeps_cache_by_default(self):
        pipeline = QueryAnalysisPipeline()
        pipeline.analyze([query("SELECT * FROM orders", row_count=500)])

        pipeline.reset()

        self.assertEqual(pipeline.get_statistics()['total'], 0)
        self.assertGreater(pipeline.cache.size(), 0)

        pipeline.reset(clear_cache=True)
        self.assertEqual(pipeline.cache.size(), 0)


if __name__ == '__main__':
    unittest.main()
