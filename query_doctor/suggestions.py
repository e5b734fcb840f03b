"""
Suggestion Factory
Builds structured remediation payloads (template id + context).
Rendering the templates to text or markup happens outside this package.
"""

from typing import Any, Dict, List, Optional

from query_doctor.models import Severity, Suggestion


class SuggestionFactory:
    """One constructor per remediation the analyzers can recommend."""

    def create_from_template(
        self,
        template: str,
        context: Dict[str, Any],
        severity: str,
        title: str,
        tags: Optional[List[str]] = None,
    ) -> Suggestion:
        return Suggestion(
            template=template,
            context=context,
            severity=severity,
            title=title,
            tags=tags or [],
        )

    # ------------------------------------------------------------------
    # N+1
    # ------------------------------------------------------------------

    def create_batch_fetch(
        self,
        entity: str,
        relation: str,
        query_count: int,
        trigger_location: Optional[str] = None,
    ) -> Suggestion:
        return self.create_from_template(
            template='batch_fetch',
            context={
                'entity': entity,
                'relation': relation,
                'query_count': query_count,
                'trigger_location': trigger_location,
            },
            severity=Severity.WARNING,
            title=f"Batch-load {entity}.{relation} instead of one query per proxy",
            tags=['performance', 'n+1', 'proxy'],
        )

    def create_eager_loading(
        self,
        entity: str,
        relation: str,
        query_count: int,
        trigger_location: Optional[str] = None,
    ) -> Suggestion:
        return self.create_from_template(
            template='eager_loading',
            context={
                'entity': entity,
                'relation': relation,
                'query_count': query_count,
                'trigger_location': trigger_location,
            },
            severity=Severity.WARNING,
            title=f"Eager load {entity}.{relation} with a JOIN",
            tags=['performance', 'n+1'],
        )

    def create_collection_eager_loading(
        self,
        parent_entity: str,
        collection_field: str,
        child_entity: str,
        query_count: int,
        trigger_location: Optional[str] = None,
    ) -> Suggestion:
        return self.create_from_template(
            template='collection_eager_loading',
            context={
                'parent_entity': parent_entity,
                'collection_field': collection_field,
                'child_entity': child_entity,
                'query_count': query_count,
                'trigger_location': trigger_location,
            },
            severity=Severity.WARNING,
            title=f"Fetch {parent_entity}.{collection_field} together with the {parent_entity} list",
            tags=['performance', 'n+1', 'collection'],
        )

    def create_extra_lazy(
        self,
        entity: str,
        relation: str,
        query_count: int,
        has_limit: bool,
        trigger_location: Optional[str] = None,
    ) -> Suggestion:
        return self.create_from_template(
            template='extra_lazy',
            context={
                'entity': entity,
                'relation': relation,
                'query_count': query_count,
                'has_limit': has_limit,
                'trigger_location': trigger_location,
            },
            severity=Severity.INFO,
            title=f"Load only the needed slice of {entity}.{relation}",
            tags=['performance', 'n+1', 'collection'],
        )

    # ------------------------------------------------------------------
    # Query shape
    # ------------------------------------------------------------------

    def create_multi_step_hydration(self, join_count: int, tables: List[str], sql: str) -> Suggestion:
        return self.create_from_template(
            template='multi_step_hydration',
            context={
                'join_count': join_count,
                'tables': tables,
                'sql': sql[:200],
            },
            severity=Severity.CRITICAL,
            title='Load each collection in its own query',
            tags=['performance', 'cartesian-product', 'join'],
        )

    def create_too_many_joins(self, join_count: int, max_recommended: int, sql: str, severity: str) -> Suggestion:
        return self.create_from_template(
            template='join_too_many',
            context={
                'join_count': join_count,
                'max_recommended': max_recommended,
                'sql': sql[:200],
            },
            severity=severity,
            title=f"Split the {join_count + 1}-table query or denormalize",
            tags=['performance', 'join'],
        )

    def create_left_join_on_not_null(self, table: str, alias: str, column: str, sql: str) -> Suggestion:
        return self.create_from_template(
            template='join_left_on_not_null',
            context={
                'table': table,
                'alias': alias,
                'column': column,
                'sql': sql[:200],
            },
            severity=Severity.CRITICAL,
            title=f"Use INNER JOIN for the required relation to {table}",
            tags=['performance', 'join'],
        )

    def create_unused_join(self, table: str, alias: str, sql: str) -> Suggestion:
        return self.create_from_template(
            template='join_unused',
            context={
                'table': table,
                'alias': alias,
                'sql': sql[:200],
            },
            severity=Severity.WARNING,
            title=f"Remove the unused JOIN on {table}",
            tags=['performance', 'join'],
        )

    def create_left_join_with_not_null(self, table: str, alias: str, field: str) -> Suggestion:
        return self.create_from_template(
            template='left_join_with_not_null',
            context={
                'table': table,
                'alias': alias,
                'field': field,
            },
            severity=Severity.INFO,
            title=f"Replace LEFT JOIN {table} with INNER JOIN",
            tags=['correctness', 'join'],
        )

    def create_aggregation_with_inner_join(self, aggregation: str, table: str, alias: str) -> Suggestion:
        return self.create_from_template(
            template='aggregation_with_inner_join',
            context={
                'aggregation': aggregation,
                'table': table,
                'alias': alias,
            },
            severity=Severity.WARNING,
            title=f"Check {aggregation}() over the INNER JOIN on {table}",
            tags=['correctness', 'join', 'aggregation'],
        )

    def create_hydration(self, row_count: int, threshold: int, sql: str, severity: str) -> Suggestion:
        return self.create_from_template(
            template='dto_hydration',
            context={
                'row_count': row_count,
                'threshold': threshold,
                'sql': sql,
                'options': ['array_hydration', 'dto_hydration', 'partial_objects', 'pagination'],
            },
            severity=severity,
            title='Hydrate large result sets as arrays or DTOs, or paginate',
            tags=['performance', 'hydration', 'memory'],
        )

    def create_query_optimization(
        self,
        code: str,
        optimization: str,
        execution_time: float,
        threshold: float,
    ) -> Suggestion:
        severity = Severity.CRITICAL if execution_time > threshold * 5 else Severity.WARNING
        return self.create_from_template(
            template='query_optimization',
            context={
                'sql': code,
                'optimization': optimization,
                'execution_time_ms': execution_time,
                'threshold_ms': threshold,
            },
            severity=severity,
            title='Optimize slow query',
            tags=['performance', 'slow-query'],
        )

    # ------------------------------------------------------------------
    # Security
    # ------------------------------------------------------------------

    def create_dql_injection(self, query: str, vulnerable_parameters: List[str], risk_level: str) -> Suggestion:
        severity = Severity.CRITICAL if risk_level == 'critical' else Severity.WARNING
        return self.create_from_template(
            template='dql_injection',
            context={
                'query': query,
                'vulnerable_parameters': vulnerable_parameters,
                'risk_level': risk_level,
            },
            severity=severity,
            title='Bind user input as query parameters',
            tags=['security', 'injection'],
        )
