"""
JOIN Optimization Analyzer
Three independent checks per SELECT: too many JOINs, LEFT JOIN on a
required relation, and JOINs whose alias is never used.
"""

import logging
from typing import Iterable, Iterator, Optional, Set

from query_doctor.analyzers.base import AnalysisContext, Analyzer
from query_doctor.metadata.collection_joins import CollectionJoinClassifier
from query_doctor.metadata.schema_index import MetadataMap, lookup_table
from query_doctor.models import Issue, JoinDescriptor, JoinType, QueryRecord, Severity

logger = logging.getLogger(__name__)


class JoinOptimizationAnalyzer(Analyzer):

    name = 'join_optimization'

    def __init__(self, context: AnalysisContext, max_joins_recommended: int = 5, max_joins_critical: int = 8):
        super().__init__(context)
        self.max_joins_recommended = max_joins_recommended
        self.max_joins_critical = max_joins_critical

    def analyze(self, queries: Iterable[QueryRecord]) -> Iterator[Issue]:
        metadata_map = self.context.metadata_map()
        reported: Set[str] = set()

        for query in queries:
            if not self.extractor.is_select_query(query.sql):
                continue

            joins = self.extractor.extract_joins(query.sql)
            if not joins:
                continue

            candidates = [self._check_too_many_joins(query, joins)]
            if metadata_map:
                candidates.extend(self._check_left_joins_on_not_null(query, joins, metadata_map))
            candidates.extend(self._check_unused_joins(query, joins))

            for issue, table in (candidate for candidate in candidates if candidate is not None):
                key = f"{issue.title}|{table}"
                if key in reported:
                    continue
                reported.add(key)
                yield issue

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_too_many_joins(self, query: QueryRecord, joins):
        join_count = len(joins)
        if join_count <= self.max_joins_recommended:
            return None

        severity = Severity.CRITICAL if join_count > self.max_joins_critical else Severity.WARNING
        main_table = self.extractor.extract_main_table(query.sql)
        table = main_table.table if main_table else joins[0].table

        issue = Issue(
            issue_type='join_optimization',
            title=f"Too Many JOINs in Single Query ({join_count} tables)",
            description=(
                f"Query on {table} performs {join_count} JOINs (recommended maximum: "
                f"{self.max_joins_recommended}). Large joins make the optimizer's plan "
                f"fragile and multiply the rows transferred and hydrated."
            ),
            severity=severity,
            suggestion=self.context.suggestions.create_too_many_joins(
                join_count, self.max_joins_recommended, query.sql, severity
            ),
            queries=[query],
            backtrace=query.backtrace,
        )
        return issue, table

    def _check_left_joins_on_not_null(self, query: QueryRecord, joins, metadata_map: MetadataMap):
        from_table = self.context.classifier.extract_from_table(query.sql, metadata_map)
        if from_table is None:
            return []

        found = []
        for join in joins:
            if join.join_type != JoinType.LEFT:
                continue
            if lookup_table(metadata_map, join.table) is None:
                continue
            if self.context.classifier.is_collection_join(join, metadata_map, query.sql, from_table):
                continue

            column = self._required_join_column(query.sql, join, metadata_map, from_table)
            if column is None:
                continue

            issue = Issue(
                issue_type='join_optimization',
                title='Suboptimal LEFT JOIN on NOT NULL Relation',
                description=(
                    f"LEFT JOIN on {join.table} ({join.reference}) follows the foreign key "
                    f"{column}, which is declared NOT NULL. A matching row always exists, "
                    f"so an INNER JOIN returns the same rows and gives the optimizer more freedom."
                ),
                severity=Severity.CRITICAL,
                suggestion=self.context.suggestions.create_left_join_on_not_null(
                    join.table, join.reference, column, query.sql
                ),
                queries=[query],
                backtrace=query.backtrace,
            )
            found.append((issue, join.table))
        return found

    def _required_join_column(
        self, sql: str, join: JoinDescriptor, metadata_map: MetadataMap, from_table: str
    ) -> Optional[str]:
        """NOT NULL foreign key on the parent side that points at the joined table"""
        join_names = CollectionJoinClassifier.join_qualifiers(join)
        aliases = self.extractor.alias_map(sql)

        for condition in join.conditions:
            (other_qualifier, other_column), _ = CollectionJoinClassifier.orient(condition, join_names)
            other_table = aliases.get((other_qualifier or '').lower(), from_table)
            other_metadata = lookup_table(metadata_map, other_table)
            if other_metadata is None:
                continue

            association = other_metadata.find_association_by_join_column(other_column)
            if association is None or association.is_collection:
                continue
            if association.target_table.lower() == join.table.lower() and not association.nullable:
                return other_column
        return None

    def _check_unused_joins(self, query: QueryRecord, joins):
        found = []
        for join in joins:
            if self.extractor.is_alias_used_in_query(query.sql, join.reference):
                continue

            issue = Issue(
                issue_type='join_optimization',
                title='Unused JOIN Detected',
                description=(
                    f"Table {join.table} is joined as {join.reference} but none of its columns "
                    f"are selected or filtered on. The JOIN costs a lookup per row and, "
                    f"for collections, duplicates parent rows."
                ),
                severity=Severity.WARNING,
                suggestion=self.context.suggestions.create_unused_join(join.table, join.reference, query.sql),
                queries=[query],
                backtrace=query.backtrace,
            )
            found.append((issue, join.table))
        return found
