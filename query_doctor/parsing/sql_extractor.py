"""
SQL Structural Extractor
Parses raw SQL with sqlglot into tables, aliases, JOINs and predicate shapes.
Unparseable SQL degrades to empty results instead of raising.
"""

import logging
import re
from typing import Dict, List, Optional

import sqlglot
from sqlglot import exp

from query_doctor.models import (
    JoinCondition,
    JoinDescriptor,
    JoinType,
    NPlusOnePattern,
    TableReference,
)
from query_doctor.parsing.sql_normalizer import SqlNormalizer
from query_doctor.utils.cache import SqlAnalysisCache

logger = logging.getLogger(__name__)

_SELECT_PREFIX = re.compile(r'^\s*\(*\s*SELECT\b', re.IGNORECASE)
_LIMIT_FALLBACK = re.compile(r'\bLIMIT\s+(?:\d+\s*,\s*)?(\d+)', re.IGNORECASE)
_AGGREGATE_FALLBACK = re.compile(r'\b(COUNT|SUM|AVG|MIN|MAX|GROUP_CONCAT)\s*\(', re.IGNORECASE)

# Values a lazy-load query compares a key column against
_BOUND_VALUES = (exp.Placeholder, exp.Parameter, exp.Literal)


def _is_bound_value(node: exp.Expression) -> bool:
    if isinstance(node, exp.Neg):
        node = node.this
    return isinstance(node, _BOUND_VALUES)


def _conjuncts(node: Optional[exp.Expression]) -> List[exp.Expression]:
    """Flatten ``a AND (b AND c)`` into ``[a, b, c]``"""
    if node is None:
        return []
    node = node.unnest()
    if isinstance(node, exp.And):
        return _conjuncts(node.left) + _conjuncts(node.right)
    return [node]


def _column_reference(column: exp.Column) -> str:
    return f"{column.table}.{column.name}" if column.table else column.name


class SqlStructureExtractor:
    """
    Structural queries over a single SQL string.

    Parsed trees are cached per raw SQL string when a cache is given; the
    same cache instance should be shared by every analyzer of a run.
    """

    def __init__(self, dialect: str = 'mysql', cache: Optional[SqlAnalysisCache] = None):
        self.dialect = dialect
        self.cache = cache if cache is not None else SqlAnalysisCache()
        self.normalizer = SqlNormalizer(dialect=dialect, cache=self.cache)

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse(self, sql: str) -> Optional[exp.Expression]:
        """Parse SQL into a sqlglot tree, None when the text is not valid SQL."""
        return self.cache.get_or_compute('ast', sql, lambda: self._parse(sql))

    def _parse(self, sql: str) -> Optional[exp.Expression]:
        try:
            return sqlglot.parse_one(sql, read=self.dialect)
        except Exception as e:
            logger.debug(f"Could not parse SQL ({e}): {sql[:120]}")
            return None

    def _select(self, sql: str) -> Optional[exp.Select]:
        parsed = self.parse(sql)
        return parsed if isinstance(parsed, exp.Select) else None

    @staticmethod
    def _clause(select: exp.Select, clause_type: type) -> List[exp.Expression]:
        """Direct children of ``select`` of the given type (no subqueries)"""
        return [child for child in select.iter_expressions() if isinstance(child, clause_type)]

    # ------------------------------------------------------------------
    # Tables and joins
    # ------------------------------------------------------------------

    def is_select_query(self, sql: str) -> bool:
        parsed = self.parse(sql)
        if parsed is None:
            return bool(_SELECT_PREFIX.match(sql))
        return isinstance(parsed, (exp.Select, exp.Union))

    def extract_main_table(self, sql: str) -> Optional[TableReference]:
        """FROM table of a SELECT with its alias, None when absent or not a plain table"""
        select = self._select(sql)
        if select is None:
            return None

        for from_clause in self._clause(select, exp.From):
            table = from_clause.this
            if isinstance(table, exp.Table) and table.name:
                return TableReference(table=table.name, alias=table.alias or None, source='from')
        return None

    def extract_joins(self, sql: str) -> List[JoinDescriptor]:
        """
        JOINs of a SELECT statement.

        ``LEFT OUTER`` becomes ``LEFT``, a bare ``JOIN`` becomes ``INNER``.
        Joins onto subqueries are skipped. Non-SELECT statements and
        unparseable SQL yield an empty list.
        """
        return self.cache.get_or_compute('joins', sql, lambda: self._extract_joins(sql))

    def _extract_joins(self, sql: str) -> List[JoinDescriptor]:
        select = self._select(sql)
        if select is None:
            return []

        joins = []
        for join in self._clause(select, exp.Join):
            table = join.this
            if not isinstance(table, exp.Table) or not table.name:
                continue

            on_clause = join.args.get('on')
            joins.append(JoinDescriptor(
                join_type=self._join_type(join),
                table=table.name,
                alias=table.alias or None,
                conditions=tuple(self._column_pairs(on_clause)),
                on_sql=on_clause.sql(dialect=self.dialect) if on_clause is not None else None,
            ))
        return joins

    @staticmethod
    def _join_type(join: exp.Join) -> str:
        side = (join.side or '').upper()
        kind = (join.kind or '').upper()

        if side in (JoinType.LEFT, JoinType.RIGHT, JoinType.FULL):
            return side
        if kind == JoinType.CROSS:
            return JoinType.CROSS
        return JoinType.INNER

    @staticmethod
    def _column_pairs(on_clause: Optional[exp.Expression]) -> List[JoinCondition]:
        """Every ``column = column`` equality inside an ON clause"""
        if on_clause is None:
            return []

        pairs = []
        for equality in on_clause.find_all(exp.EQ):
            left, right = equality.left, equality.right
            if isinstance(left, exp.Column) and isinstance(right, exp.Column):
                pairs.append(JoinCondition(_column_reference(left), _column_reference(right)))
        return pairs

    def extract_all_tables(self, sql: str) -> List[TableReference]:
        tables = []
        main_table = self.extract_main_table(sql)
        if main_table is not None:
            tables.append(main_table)
        for join in self.extract_joins(sql):
            tables.append(TableReference(table=join.table, alias=join.alias, source='join'))
        return tables

    def has_join(self, sql: str) -> bool:
        return self.count_joins(sql) > 0

    def count_joins(self, sql: str) -> int:
        return len(self.extract_joins(sql))

    def extract_join_on_conditions(self, sql: str, alias: str) -> List[JoinCondition]:
        """ON-clause column pairs of the JOIN referred to as ``alias``"""
        for join in self.extract_joins(sql):
            if join.reference.lower() == alias.lower():
                return list(join.conditions)
        return []

    def alias_map(self, sql: str) -> Dict[str, str]:
        """Lowercased alias (or bare table name) -> table name, FROM and JOINs"""
        mapping = {}
        for reference in self.extract_all_tables(sql):
            mapping[reference.table.lower()] = reference.table
            if reference.alias:
                mapping[reference.alias.lower()] = reference.table
        return mapping

    def is_alias_used_in_query(self, sql: str, alias: str) -> bool:
        """
        Whether ``alias`` is referenced outside its own JOIN ... ON clause.

        An unqualified ``SELECT *`` counts as a reference to every table.
        Unparseable SQL is reported as used, so no unused-join issue is raised.
        """
        select = self._select(sql)
        if select is None:
            return True

        if any(isinstance(projection, exp.Star) for projection in select.expressions):
            return True

        target = alias.lower()
        own_join = None
        for join in self._clause(select, exp.Join):
            if isinstance(join.this, exp.Table) and (join.this.alias_or_name or '').lower() == target:
                own_join = join
                break

        for column in select.find_all(exp.Column):
            if (column.table or '').lower() != target:
                continue
            if own_join is not None and column.find_ancestor(exp.Join) is own_join:
                continue
            return True
        return False

    # ------------------------------------------------------------------
    # Clauses and functions
    # ------------------------------------------------------------------

    def normalize_query(self, sql: str) -> str:
        return self.normalizer.normalize(sql)

    def get_limit_value(self, sql: str) -> Optional[int]:
        """Row limit of a SELECT, None when there is no numeric LIMIT"""
        parsed = self.parse(sql)
        if parsed is None:
            match = _LIMIT_FALLBACK.search(sql)
            return int(match.group(1)) if match else None

        if not isinstance(parsed, exp.Select):
            return None

        for limit in self._clause(parsed, exp.Limit):
            value = limit.expression
            if isinstance(value, exp.Literal) and value.is_int:
                return int(value.this)
        return None

    def extract_aggregation_functions(self, sql: str) -> List[str]:
        """Aggregate function names in order of appearance, e.g. ``['COUNT', 'SUM']``"""
        parsed = self.parse(sql)
        if parsed is None:
            names = [match.upper() for match in _AGGREGATE_FALLBACK.findall(sql)]
        else:
            names = [node.sql_name().upper() for node in parsed.find_all(exp.AggFunc)]

        unique = []
        for name in names:
            if name not in unique:
                unique.append(name)
        return unique

    def find_is_not_null_field_on_alias(self, sql: str, alias: str) -> Optional[str]:
        """Column of ``alias`` tested with ``IS NOT NULL`` in the WHERE clause"""
        select = self._select(sql)
        if select is None:
            return None

        target = alias.lower()
        for where in self._clause(select, exp.Where):
            for negation in where.find_all(exp.Not):
                check = negation.this
                if not isinstance(check, exp.Is) or not isinstance(check.expression, exp.Null):
                    continue
                column = check.this
                if isinstance(column, exp.Column) and (column.table or '').lower() == target:
                    return column.name
        return None

    # ------------------------------------------------------------------
    # Lazy-load shapes
    # ------------------------------------------------------------------

    def _where_key_predicates(self, select: exp.Select) -> List[exp.Column]:
        """Columns compared for equality with a bound value in the top-level WHERE"""
        columns = []
        for where in self._clause(select, exp.Where):
            for predicate in _conjuncts(where.this):
                if not isinstance(predicate, exp.EQ):
                    continue
                left, right = predicate.left, predicate.right
                if isinstance(right, exp.Column) and _is_bound_value(left):
                    left, right = right, left
                if isinstance(left, exp.Column) and _is_bound_value(right):
                    columns.append(left)
        return columns

    def _resolve_table(self, sql: str, qualifier: Optional[str], default: str) -> str:
        if not qualifier:
            return default
        return self.alias_map(sql).get(qualifier.lower(), default)

    def detect_n_plus_one_pattern(self, sql: str) -> Optional[NPlusOnePattern]:
        """
        Relation identity of a query filtering on one foreign key column.

        ``SELECT ... FROM orders o WHERE o.user_id = ?`` gives
        ``NPlusOnePattern(table='orders', foreign_key='user_id')``.
        """
        select = self._select(sql)
        main_table = self.extract_main_table(sql)
        if select is None or main_table is None:
            return None

        for column in self._where_key_predicates(select):
            if column.name.lower().endswith('_id'):
                table = self._resolve_table(sql, column.table, main_table.table)
                return NPlusOnePattern(table=table, foreign_key=column.name)
        return None

    def detect_n_plus_one_from_join(self, sql: str) -> Optional[NPlusOnePattern]:
        """
        Relation identity carried by a JOIN condition bound to a parameter.

        ``... JOIN post_tag pt ON pt.tag_id = t.id AND pt.post_id = ?`` gives
        ``NPlusOnePattern(table='post_tag', foreign_key='post_id')``.
        """
        select = self._select(sql)
        if select is None:
            return None

        for join in self._clause(select, exp.Join):
            table = join.this
            if not isinstance(table, exp.Table):
                continue
            for predicate in _conjuncts(join.args.get('on')):
                if not isinstance(predicate, exp.EQ):
                    continue
                left, right = predicate.left, predicate.right
                if isinstance(right, exp.Column) and _is_bound_value(left):
                    left, right = right, left
                if (isinstance(left, exp.Column) and _is_bound_value(right)
                        and left.name.lower().endswith('_id')):
                    return NPlusOnePattern(
                        table=self._resolve_table(sql, left.table, table.name),
                        foreign_key=left.name,
                    )
        return None

    def detect_lazy_loading_pattern(self, sql: str) -> Optional[str]:
        """
        Table of a single-entity load by primary key (``WHERE t0.id = ?``).

        Returns None when the query also filters on a foreign key.
        """
        select = self._select(sql)
        main_table = self.extract_main_table(sql)
        if select is None or main_table is None:
            return None

        columns = self._where_key_predicates(select)
        if any(column.name.lower().endswith('_id') for column in columns):
            return None

        for column in columns:
            if column.name.lower() != 'id':
                continue
            table = self._resolve_table(sql, column.table, main_table.table)
            if table == main_table.table:
                return table
        return None

    def detect_partial_collection_load(self, sql: str) -> bool:
        """Foreign-key filtered load with a LIMIT (e.g. ``slice()`` on a collection)"""
        return self.detect_n_plus_one_pattern(sql) is not None and self.get_limit_value(sql) is not None
