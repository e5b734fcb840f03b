"""
JOIN Type Consistency Analyzer
JOIN types that contradict the rest of the query.
"""

import logging
from typing import Iterable, Iterator, Set

from query_doctor.analyzers.base import Analyzer
from query_doctor.models import Issue, JoinType, QueryRecord, Severity

logger = logging.getLogger(__name__)

# Aggregates whose result changes when the join drops or repeats rows
SENSITIVE_AGGREGATIONS = ('COUNT', 'SUM', 'AVG')


class JoinTypeConsistencyAnalyzer(Analyzer):

    name = 'join_type_consistency'

    def analyze(self, queries: Iterable[QueryRecord]) -> Iterator[Issue]:
        reported: Set[str] = set()

        for query in queries:
            if not self.extractor.is_select_query(query.sql):
                continue
            joins = self.extractor.extract_joins(query.sql)
            if not joins:
                continue

            for join in joins:
                if join.join_type != JoinType.LEFT:
                    continue
                field = self.extractor.find_is_not_null_field_on_alias(query.sql, join.reference)
                if field is None:
                    continue

                key = f"left_not_null|{join.table}|{join.reference}"
                if key in reported:
                    continue
                reported.add(key)

                yield Issue(
                    issue_type='join_type_consistency',
                    title='LEFT JOIN with IS NOT NULL Check',
                    description=(
                        f"LEFT JOIN on {join.table} ({join.reference}) is followed by "
                        f"{join.reference}.{field} IS NOT NULL in WHERE, which removes every "
                        f"row the outer join added. Use INNER JOIN to state the intent."
                    ),
                    severity=Severity.INFO,
                    suggestion=self.context.suggestions.create_left_join_with_not_null(
                        join.table, join.reference, field
                    ),
                    queries=[query],
                    backtrace=query.backtrace,
                )

            issue = self._check_aggregation_with_inner_join(query, joins, reported)
            if issue is not None:
                yield issue

    def _check_aggregation_with_inner_join(self, query: QueryRecord, joins, reported: Set[str]):
        aggregations = [
            name for name in self.extractor.extract_aggregation_functions(query.sql)
            if name in SENSITIVE_AGGREGATIONS
        ]
        if not aggregations:
            return None

        metadata_map = self.context.metadata_map()
        from_table = self.context.classifier.extract_from_table(query.sql, metadata_map)
        if from_table is None:
            return None

        for join in joins:
            if join.join_type != JoinType.INNER:
                continue
            if not self.context.classifier.is_collection_join(join, metadata_map, query.sql, from_table):
                continue

            key = f"aggregation|{aggregations[0]}|{join.table}"
            if key in reported:
                return None
            reported.add(key)

            return Issue(
                issue_type='join_type_consistency',
                title=f"{aggregations[0]} with INNER JOIN May Cause Incorrect Results",
                description=(
                    f"{', '.join(aggregations)} is computed over an INNER JOIN on the "
                    f"collection {join.table}. Parents without children are dropped and "
                    f"parents with several children are counted once per child."
                ),
                severity=Severity.WARNING,
                suggestion=self.context.suggestions.create_aggregation_with_inner_join(
                    aggregations[0], join.table, join.reference
                ),
                queries=[query],
                backtrace=query.backtrace,
            )
        return None
