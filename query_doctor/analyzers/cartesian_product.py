"""
Cartesian Product Analyzer
Flags SELECTs that LEFT JOIN two or more collections at once.
"""

import logging
from typing import Iterable, Iterator, List, Set

from query_doctor.analyzers.base import Analyzer
from query_doctor.models import Issue, JoinDescriptor, JoinType, QueryRecord, Severity

logger = logging.getLogger(__name__)

MIN_LEFT_JOINS = 2
MIN_COLLECTION_JOINS = 2


class CartesianProductAnalyzer(Analyzer):
    """Each extra collection join multiplies the rows hydrated for the parent."""

    name = 'cartesian_product'

    def analyze(self, queries: Iterable[QueryRecord]) -> Iterator[Issue]:
        metadata_map = self.context.metadata_map()
        if not metadata_map:
            logger.debug("No metadata available, skipping cartesian product analysis")
            return

        reported: Set[str] = set()
        for query in queries:
            if not self.extractor.is_select_query(query.sql):
                continue

            left_joins = [
                join for join in self.extractor.extract_joins(query.sql)
                if join.join_type == JoinType.LEFT
            ]
            if len(left_joins) < MIN_LEFT_JOINS:
                continue

            from_table = self.context.classifier.extract_from_table(query.sql, metadata_map)
            if from_table is None:
                continue

            collection_joins = self._collection_joins(query.sql, left_joins, from_table)
            if len(collection_joins) < MIN_COLLECTION_JOINS:
                continue

            tables = sorted(join.table for join in collection_joins)
            key = ','.join(tables)
            if key in reported:
                continue
            reported.add(key)

            yield self._create_issue(query, collection_joins, tables)

    def _collection_joins(
        self, sql: str, joins: List[JoinDescriptor], from_table: str
    ) -> List[JoinDescriptor]:
        metadata_map = self.context.metadata_map()
        return [
            join for join in joins
            if self.context.classifier.is_collection_join(join, metadata_map, sql, from_table)
        ]

    def _create_issue(
        self, query: QueryRecord, collection_joins: List[JoinDescriptor], tables: List[str]
    ) -> Issue:
        count = len(collection_joins)
        description = (
            f"Query joins {count} collections ({', '.join(tables)}) in a single statement. "
            f"Every parent row is repeated once per combination of child rows, so the result "
            f"grows as O(n^{count}) and each duplicate has to be hydrated and discarded. "
            f"Load each collection in its own query instead."
        )

        return Issue(
            issue_type='cartesian_product',
            title=f"Cartesian Product: {count} Collection JOINs Causing O(n^{count}) Hydration",
            description=description,
            severity=Severity.CRITICAL,
            suggestion=self.context.suggestions.create_multi_step_hydration(
                join_count=count,
                tables=tables,
                sql=query.sql,
            ),
            queries=[query],
            backtrace=query.backtrace,
        )
