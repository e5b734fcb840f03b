"""
Query analysis pipeline.
Filters the query log, runs every analyzer under a memory watchdog,
then deduplicates and orders the issues.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Sequence

from query_doctor.analyzers import AnalysisContext, Analyzer, build_default_analyzers
from query_doctor.metadata.schema_index import MetadataIndex
from query_doctor.models import Issue, QueryRecord, Severity
from query_doctor.orchestration.deduplicator import IssueDeduplicator
from query_doctor.parsing.sql_extractor import SqlStructureExtractor
from query_doctor.utils.cache import SqlAnalysisCache
from query_doctor.utils.memory import MemoryGuard

logger = logging.getLogger(__name__)


class QueryAnalysisPipeline:
    """Main orchestration: query log → analyzers → deduplicated issues."""

    def __init__(
        self,
        metadata_index: Optional[MetadataIndex] = None,
        analyzers: Optional[Sequence[Analyzer]] = None,
        memory_guard: Optional[MemoryGuard] = None,
        deduplicator: Optional[IssueDeduplicator] = None,
        excluded_paths: Optional[Sequence[str]] = None,
        dialect: str = 'mysql',
        settings=None,
    ):
        """
        Args:
            metadata_index: Schema for collection/nullability checks; schema checks are skipped when None
            analyzers: Explicit analyzer list; built from ``settings`` when None
            memory_guard: Watchdog; built from ``settings`` (or disabled) when None
            deduplicator: Priority resolver; built from ``settings`` when None
            excluded_paths: Backtrace path fragments whose queries are ignored
            dialect: SQL dialect for the extractor
            settings: ``config.settings.Settings`` supplying every default above
        """
        if settings is not None:
            dialect = settings.sql.dialect
        self.cache = SqlAnalysisCache()
        self.context = AnalysisContext(
            extractor=SqlStructureExtractor(dialect=dialect, cache=self.cache),
            metadata_index=metadata_index,
        )

        if analyzers is None:
            analyzers = build_default_analyzers(self.context, settings)
        self.analyzers = list(analyzers)

        if memory_guard is None:
            if settings is not None:
                memory_guard = MemoryGuard(
                    settings.pipeline.memory_limit_bytes,
                    settings.pipeline.memory_threshold_fraction,
                )
            else:
                memory_guard = MemoryGuard(None)
        self.memory_guard = memory_guard

        if deduplicator is None:
            priorities = settings.deduplication.priorities if settings is not None else None
            deduplicator = IssueDeduplicator(priorities)
        self.deduplicator = deduplicator

        if excluded_paths is None:
            excluded_paths = settings.pipeline.excluded_paths if settings is not None else ['vendor/']
        self.excluded_paths = [path.replace('\\', '/') for path in excluded_paths]

        self.issues: List[Issue] = []
        self.query_count = 0
        self.skipped_analyzers = 0
        self.failed_analyzers = 0
        self._queries: List[QueryRecord] = []

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def analyze(self, queries: Iterable[QueryRecord]) -> List[Issue]:
        """
        Run every analyzer over ``queries`` and return the final issue list.

        Best effort: failing analyzers are logged and skipped, and memory
        pressure stops analysis early with the issues found so far.
        """
        self._queries = self.filter_queries(queries)
        self.query_count = len(self._queries)
        self.skipped_analyzers = 0
        self.failed_analyzers = 0

        logger.info(f"Analyzing {self.query_count} queries with {len(self.analyzers)} analyzers")

        raw_issues: List[Issue] = []
        for position, analyzer in enumerate(self.analyzers):
            if self.memory_guard.is_exceeded():
                self.skipped_analyzers = len(self.analyzers) - position
                logger.warning(
                    f"Memory threshold reached, skipping {self.skipped_analyzers} remaining analyzers"
                )
                break

            try:
                for issue in analyzer.analyze(self._queries):
                    raw_issues.append(issue)
                    if self.memory_guard.is_exceeded():
                        logger.warning(f"Memory threshold reached during {analyzer.name}, stopping early")
                        break
            except Exception as e:
                self.failed_analyzers += 1
                logger.error(f"Analyzer {analyzer.name} failed: {e}", exc_info=True)

        issues = self.deduplicator.deduplicate(raw_issues)
        # Stable sort keeps analyzer order within a severity
        issues.sort(key=lambda issue: issue.severity_weight, reverse=True)
        self.issues = issues

        stats = self.get_statistics()
        logger.info(
            f"Analysis complete: {stats['total']} issues "
            f"({stats['critical']} critical, {stats['warning']} warning, {stats['info']} info)"
        )
        return issues

    def filter_queries(self, queries: Iterable[QueryRecord]) -> List[QueryRecord]:
        """Drop queries issued only from excluded code paths."""
        return [query for query in queries if not self.is_excluded(query)]

    def is_excluded(self, query: QueryRecord) -> bool:
        """
        True when the backtrace has file frames and every one of them lies
        in an excluded path. Queries without file frames are kept.
        """
        if not self.excluded_paths or not query.backtrace:
            return False

        files = [frame.file.replace('\\', '/') for frame in query.backtrace if frame.file]
        if not files:
            return False

        return all(
            any(excluded in file for excluded in self.excluded_paths)
            for file in files
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict[str, int]:
        stats = {
            'total': len(self.issues),
            'skipped_analyzers': self.skipped_analyzers,
            'failed_analyzers': self.failed_analyzers,
            'query_count': self.query_count,
        }
        for severity in Severity.all():
            stats[severity] = sum(1 for issue in self.issues if issue.severity == severity)
        return stats

    def get_grouped_queries_by_time(self) -> List[Dict[str, Any]]:
        """
        Timing per normalized query shape of the last run.

        Each entry: ``normalized``, ``count``, ``total_time_ms``,
        ``avg_time_ms``, ``max_time_ms``, ``min_time_ms``, ``first_query``.
        Sorted by total time, slowest first.
        """
        groups: Dict[str, List[QueryRecord]] = OrderedDict()
        for query in self._queries:
            key = self.context.extractor.normalize_query(query.sql)
            groups.setdefault(key, []).append(query)

        report = []
        for normalized, group in groups.items():
            times = [query.execution_time_ms for query in group]
            total = sum(times)
            report.append({
                'normalized': normalized,
                'count': len(group),
                'total_time_ms': total,
                'avg_time_ms': total / len(group),
                'max_time_ms': max(times),
                'min_time_ms': min(times),
                'first_query': group[0],
            })

        report.sort(key=lambda entry: entry['total_time_ms'], reverse=True)
        return report

    def reset(self, clear_cache: bool = False) -> None:
        """
        Forget the last run. SQL caches are pure and survive unless
        ``clear_cache`` is set; the metadata index is cleared with them.
        """
        self.issues = []
        self._queries = []
        self.query_count = 0
        self.skipped_analyzers = 0
        self.failed_analyzers = 0

        if clear_cache:
            self.cache.reset()
            if self.context.metadata_index is not None:
                self.context.metadata_index.clear_cache()
