"""
Slow Query Analyzer
"""

import logging
import re
from typing import Iterable, Iterator

from query_doctor.analyzers.base import AnalysisContext, Analyzer
from query_doctor.models import Issue, QueryRecord

logger = logging.getLogger(__name__)

# (pattern, hint) checked in order against the raw SQL
OPTIMIZATION_HINTS = [
    (re.compile(r'\(\s*SELECT\b', re.IGNORECASE), 'Subquery detected - consider rewriting as JOIN'),
    (re.compile(r'\bORDER\s+BY\b', re.IGNORECASE), 'Ensure ORDER BY columns are indexed'),
    (re.compile(r'\bGROUP\s+BY\b', re.IGNORECASE), 'Ensure GROUP BY columns are indexed'),
    (re.compile(r"\bLIKE\s+'%", re.IGNORECASE), 'Leading wildcard LIKE detected - cannot use index efficiently'),
    (re.compile(r'\bSELECT\s+DISTINCT\b', re.IGNORECASE), 'DISTINCT operation can be expensive'),
]

DEFAULT_HINT = 'Review query structure and add appropriate indexes.'


def suggest_optimizations(sql: str) -> str:
    hints = [hint for pattern, hint in OPTIMIZATION_HINTS if pattern.search(sql)]
    if not hints:
        return DEFAULT_HINT
    return '. '.join(hints) + '.'


class SlowQueryAnalyzer(Analyzer):
    """One issue per query slower than the threshold."""

    name = 'slow_query'

    def __init__(self, context: AnalysisContext, threshold_ms: float = 100.0):
        super().__init__(context)
        self.threshold_ms = threshold_ms

    def analyze(self, queries: Iterable[QueryRecord]) -> Iterator[Issue]:
        for query in queries:
            if query.execution_time_ms <= self.threshold_ms:
                continue

            suggestion = self.context.suggestions.create_query_optimization(
                code=query.sql,
                optimization=suggest_optimizations(query.sql),
                execution_time=query.execution_time_ms,
                threshold=self.threshold_ms,
            )
            yield Issue(
                issue_type='slow_query',
                title=f"Slow Query: {query.execution_time_ms:.2f}ms",
                description=(
                    f"Query execution time ({query.execution_time_ms:.2f}ms) "
                    f"exceeds threshold ({self.threshold_ms}ms)"
                ),
                severity=suggestion.severity,
                suggestion=suggestion,
                queries=[query],
                backtrace=query.backtrace,
            )
