"""
Hydration Volume Analyzer
"""

import logging
from typing import Iterable, Iterator

from query_doctor.analyzers.base import AnalysisContext, Analyzer
from query_doctor.models import Issue, QueryRecord, Severity

logger = logging.getLogger(__name__)


class HydrationAnalyzer(Analyzer):
    """Flags queries returning, or allowed to return, more rows than the threshold."""

    name = 'hydration'

    def __init__(self, context: AnalysisContext, row_threshold: int = 100, critical_threshold: int = 1000):
        super().__init__(context)
        self.row_threshold = row_threshold
        self.critical_threshold = critical_threshold

    def analyze(self, queries: Iterable[QueryRecord]) -> Iterator[Issue]:
        for query in queries:
            if not self.extractor.is_select_query(query.sql):
                continue

            # Observed rows win over the LIMIT ceiling
            if query.row_count is not None:
                row_count, action = query.row_count, 'returned'
            else:
                row_count, action = self.extractor.get_limit_value(query.sql), 'fetches up to'
            if row_count is None or row_count <= self.row_threshold:
                continue

            severity = Severity.CRITICAL if row_count > self.critical_threshold else Severity.WARNING
            yield Issue(
                issue_type='hydration',
                title=f"Excessive Hydration: {row_count} rows",
                description=(
                    f"Query {action} {row_count} rows (threshold: {self.row_threshold}). "
                    f"Hydrating every row into a full object graph costs memory and CPU; "
                    f"read-only listings can use arrays, DTOs or partial objects, "
                    f"and large lists should be paginated."
                ),
                severity=severity,
                suggestion=self.context.suggestions.create_hydration(
                    row_count, self.row_threshold, query.sql, severity
                ),
                queries=[query],
                backtrace=query.backtrace,
            )
