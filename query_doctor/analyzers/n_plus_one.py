"""
N+1 Query Analyzer
Groups SELECTs by aggregation key and reports groups repeated often enough
to indicate one lazy load per parent row.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from query_doctor.analyzers.base import AnalysisContext, Analyzer, extract_trigger_location, is_vendor_code
from query_doctor.metadata.schema_index import lookup_table, table_to_entity_name
from query_doctor.models import Issue, NPlusOnePattern, QueryRecord, Severity, Suggestion

logger = logging.getLogger(__name__)

# Low total time across many queries still scales badly with production data
LOW_EXECUTION_TIME_MS = 100.0
SCALING_WARNING_COUNT = 10


@dataclass(frozen=True)
class NPlusOneType:
    kind: str  # proxy, collection, unknown
    has_limit: bool = False

    @property
    def label(self) -> str:
        if self.kind == 'proxy':
            return 'Proxy N+1 (ManyToOne/OneToOne)'
        if self.kind == 'collection':
            if self.has_limit:
                return 'Collection N+1 with partial access'
            return 'Collection N+1 (OneToMany/ManyToMany)'
        return 'N+1 Query'


class NPlusOneAnalyzer(Analyzer):
    """Detect repeated lazy loads of proxies and collections."""

    name = 'n_plus_one'

    def __init__(
        self,
        context: AnalysisContext,
        threshold: int = 5,
        proxy_multiplier: float = 1.3,
        warning_count: int = 10,
        critical_count: int = 20,
        warning_time_ms: float = 500.0,
        critical_time_ms: float = 1000.0,
    ):
        super().__init__(context)
        self.threshold = threshold
        self.proxy_multiplier = proxy_multiplier
        self.warning_count = warning_count
        self.critical_count = critical_count
        self.warning_time_ms = warning_time_ms
        self.critical_time_ms = critical_time_ms

    def analyze(self, queries: Iterable[QueryRecord]) -> Iterator[Issue]:
        for pattern, group in self.group_queries(queries).items():
            if len(group) < self.threshold:
                continue

            first = group[0]
            total_time = sum(query.execution_time_ms for query in group)
            detected = self.detect_type(first.sql)
            trigger_location = extract_trigger_location(first.backtrace)

            yield Issue(
                issue_type='n_plus_one',
                title=f"N+1 Query Detected: {len(group)} queries ({detected.kind})",
                description=self._build_description(len(group), total_time, pattern, first, detected),
                severity=self.calculate_severity(len(group), total_time, detected.kind),
                suggestion=self._generate_suggestion(first.sql, detected, len(group), trigger_location),
                queries=list(group),
                backtrace=first.backtrace,
            )

    def group_queries(self, queries: Iterable[QueryRecord]) -> Dict[str, List[QueryRecord]]:
        """SELECT queries by aggregation key, insertion order preserved"""
        groups: Dict[str, List[QueryRecord]] = OrderedDict()
        for query in queries:
            if not self.extractor.is_select_query(query.sql):
                continue
            key = self.context.aggregation_keys.create_aggregation_key(query.sql)
            groups.setdefault(key, []).append(query)
        return groups

    def detect_type(self, sql: str) -> NPlusOneType:
        if self.extractor.detect_partial_collection_load(sql):
            return NPlusOneType('collection', has_limit=True)
        if self.extractor.detect_lazy_loading_pattern(sql) is not None:
            return NPlusOneType('proxy')
        if self.extractor.detect_n_plus_one_pattern(sql) is not None:
            return NPlusOneType('collection')
        return NPlusOneType('unknown')

    def calculate_severity(self, count: int, total_time: float, kind: str) -> str:
        multiplier = self.proxy_multiplier if kind == 'proxy' else 1.0
        adjusted_count = int(count * multiplier)

        if adjusted_count >= self.critical_count or total_time > self.critical_time_ms:
            return Severity.CRITICAL
        if adjusted_count >= self.warning_count or total_time > self.warning_time_ms:
            return Severity.WARNING
        return Severity.INFO

    def _build_description(
        self,
        count: int,
        total_time: float,
        pattern: str,
        first: QueryRecord,
        detected: NPlusOneType,
    ) -> str:
        lines = [
            f"{detected.label}: Found {count} similar queries with total execution time "
            f"of {total_time:.2f}ms. Pattern: {pattern}"
        ]

        if detected.kind == 'proxy':
            lines.append(
                "Proxy initialization in loop detected - consider batch fetching "
                "or a fetch join for better performance."
            )
        elif detected.kind == 'collection' and detected.has_limit:
            lines.append(
                "Partial collection access detected (LIMIT in query) - "
                "loading only the needed slice would be ideal here."
            )

        if count > SCALING_WARNING_COUNT and total_time < LOW_EXECUTION_TIME_MS:
            lines.append(
                "Low execution time in development may increase significantly in production "
                "with more data due to database contention, locks, and network latency."
            )

        if is_vendor_code(first.backtrace):
            lines.append(
                "Triggered by vendor code - may require configuration change "
                "or eager loading in your queries."
            )

        return '\n'.join(lines)

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def _generate_suggestion(
        self,
        sql: str,
        detected: NPlusOneType,
        query_count: int,
        trigger_location: Optional[str],
    ) -> Optional[Suggestion]:
        pattern = self.extractor.detect_n_plus_one_pattern(sql)
        if pattern is None:
            pattern = self.extractor.detect_n_plus_one_from_join(sql)
        if pattern is not None:
            return self._suggestion_from_pattern(pattern, detected, query_count, trigger_location)

        # Loading entities by id in a loop, no relation column to name
        if detected.kind == 'proxy':
            table = self.extractor.detect_lazy_loading_pattern(sql)
            if table is not None:
                return self.context.suggestions.create_batch_fetch(
                    entity=self._table_to_entity(table),
                    relation='relation',
                    query_count=query_count,
                    trigger_location=trigger_location,
                )
        return None

    def _suggestion_from_pattern(
        self,
        pattern: NPlusOnePattern,
        detected: NPlusOneType,
        query_count: int,
        trigger_location: Optional[str],
    ) -> Suggestion:
        suggestions = self.context.suggestions
        entity = self._table_to_entity(pattern.table)
        relation = _to_camel_case(pattern.relation_base)

        if detected.kind == 'collection' and not detected.has_limit:
            owner = self.resolve_collection_owner(pattern.table, pattern.foreign_key)
            if owner is not None:
                return suggestions.create_collection_eager_loading(
                    parent_entity=owner['parent_entity'],
                    collection_field=owner['collection_field'],
                    child_entity=owner['child_entity'],
                    query_count=query_count,
                    trigger_location=trigger_location,
                )

        if detected.kind == 'proxy':
            return suggestions.create_batch_fetch(entity, relation, query_count, trigger_location)
        if detected.kind == 'collection' and detected.has_limit:
            return suggestions.create_extra_lazy(entity, relation, query_count, True, trigger_location)
        return suggestions.create_eager_loading(entity, relation, query_count, trigger_location)

    def resolve_collection_owner(self, child_table: str, foreign_key: str) -> Optional[Dict[str, str]]:
        """
        Find the parent collection filled by ``child_table.foreign_key``.

        The child's to-one association on that column names its target; the
        target's association mapped by that field is the collection.
        """
        metadata_map = self.context.metadata_map()
        child = lookup_table(metadata_map, child_table)
        if child is None:
            return None

        owning = child.find_association_by_join_column(foreign_key)
        if owning is None or owning.is_collection:
            return None

        parent = lookup_table(metadata_map, owning.target_table)
        if parent is None:
            return None

        for association in parent.associations:
            if association.mapped_by == owning.field_name and association.target_table.lower() == child_table.lower():
                return {
                    'parent_entity': parent.entity_name,
                    'collection_field': association.field_name,
                    'child_entity': child.entity_name,
                }
        return None

    def _table_to_entity(self, table: str) -> str:
        metadata = lookup_table(self.context.metadata_map(), table)
        return metadata.entity_name if metadata else table_to_entity_name(table)


def _to_camel_case(value: str) -> str:
    """``billing_address`` -> ``billingAddress``"""
    parts = [part for part in value.split('_') if part]
    if not parts:
        return value
    return parts[0][:1].lower() + parts[0][1:] + ''.join(part[:1].upper() + part[1:] for part in parts[1:])
