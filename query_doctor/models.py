"""
Data Models - query records, SQL structure descriptors and issues
Immutable inputs, plain-dataclass outputs
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


class Severity:
    """Issue severity levels, ordered INFO < WARNING < CRITICAL"""
    INFO = 'info'
    WARNING = 'warning'
    CRITICAL = 'critical'

    WEIGHTS = {
        CRITICAL: 3,
        WARNING: 2,
        INFO: 1,
    }

    @classmethod
    def weight(cls, severity: str) -> int:
        return cls.WEIGHTS.get(severity, 0)

    @classmethod
    def all(cls) -> Tuple[str, str, str]:
        return (cls.CRITICAL, cls.WARNING, cls.INFO)


class JoinType:
    """Normalized JOIN subtypes"""
    INNER = 'INNER'
    LEFT = 'LEFT'
    RIGHT = 'RIGHT'
    FULL = 'FULL'
    CROSS = 'CROSS'


@dataclass(frozen=True)
class BacktraceFrame:
    """One call-site frame captured with a query"""
    file: Optional[str] = None
    line: Optional[int] = None
    function: Optional[str] = None
    class_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BacktraceFrame':
        try:
            line = int(data['line']) if data.get('line') is not None else None
        except (TypeError, ValueError):
            line = None

        return cls(
            file=data.get('file') or None,
            line=line,
            function=data.get('function') or None,
            class_name=data.get('class') or data.get('class_name') or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file': self.file,
            'line': self.line,
            'function': self.function,
            'class': self.class_name,
        }


@dataclass(frozen=True)
class QueryRecord:
    """One executed statement, validated once at ingestion"""
    sql: str
    execution_time_ms: float = 0.0
    row_count: Optional[int] = None
    backtrace: Optional[Tuple[BacktraceFrame, ...]] = None

    def __post_init__(self):
        if not isinstance(self.sql, str):
            raise ValueError(f"Query SQL must be a string, got {type(self.sql).__name__}")
        if self.execution_time_ms < 0:
            raise ValueError(f"Execution time cannot be negative: {self.execution_time_ms}")
        if self.row_count is not None and self.row_count < 0:
            raise ValueError(f"Row count cannot be negative: {self.row_count}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QueryRecord':
        """
        Build a record from a raw log entry.

        Accepts both ``executionMS``/``rowCount`` (profiler export) and
        ``execution_time_ms``/``row_count`` spellings.

        Raises:
            ValueError: If the entry has no SQL or carries invalid numbers
        """
        sql = data.get('sql')
        if not isinstance(sql, str) or not sql.strip():
            raise ValueError("Query log entry is missing 'sql'")

        time_ms = data.get('execution_time_ms', data.get('executionMS', 0.0))
        row_count = data.get('row_count', data.get('rowCount'))

        backtrace = data.get('backtrace')
        frames = None
        if isinstance(backtrace, list):
            frames = tuple(
                BacktraceFrame.from_dict(frame) for frame in backtrace if isinstance(frame, dict)
            )

        try:
            return cls(
                sql=sql,
                execution_time_ms=float(time_ms or 0.0),
                row_count=int(row_count) if row_count is not None else None,
                backtrace=frames,
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid query log entry: {e}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sql': self.sql,
            'execution_time_ms': self.execution_time_ms,
            'row_count': self.row_count,
            'backtrace': [frame.to_dict() for frame in self.backtrace] if self.backtrace else None,
        }


@dataclass(frozen=True)
class JoinCondition:
    """Column pair from an ON clause, e.g. ``u.id = o.user_id``"""
    left: str
    right: str

    @staticmethod
    def split(reference: str) -> Tuple[Optional[str], str]:
        """Split ``alias.column`` into ``(alias, column)``"""
        if '.' in reference:
            qualifier, column = reference.rsplit('.', 1)
            return qualifier, column
        return None, reference


@dataclass(frozen=True)
class JoinDescriptor:
    """A JOIN of a SELECT statement"""
    join_type: str
    table: str
    alias: Optional[str] = None
    conditions: Tuple[JoinCondition, ...] = ()
    on_sql: Optional[str] = None

    @property
    def reference(self) -> str:
        """Name the query uses to refer to the joined table"""
        return self.alias or self.table

    @property
    def on_columns(self) -> List[str]:
        """Bare column names appearing in the ON conditions"""
        columns = []
        for condition in self.conditions:
            for side in (condition.left, condition.right):
                columns.append(JoinCondition.split(side)[1])
        return columns


@dataclass(frozen=True)
class TableReference:
    """A table referenced by FROM or JOIN"""
    table: str
    alias: Optional[str] = None
    source: str = 'from'  # from, join


@dataclass(frozen=True)
class NPlusOnePattern:
    """Relation identity of a lazy-load shaped query"""
    table: str
    foreign_key: str

    @property
    def relation_base(self) -> str:
        """Foreign key column without its ``_id`` suffix"""
        if self.foreign_key.lower().endswith('_id'):
            return self.foreign_key[:-3]
        return self.foreign_key


@dataclass
class Suggestion:
    """Structured remediation payload, rendered by an external renderer"""
    template: str
    context: Dict[str, Any]
    severity: str
    title: str
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'template': self.template,
            'title': self.title,
            'severity': self.severity,
            'tags': list(self.tags),
            'context': dict(self.context),
        }


@dataclass
class Issue:
    """A diagnosed problem produced by an analyzer"""
    issue_type: str
    title: str
    description: str
    severity: str
    suggestion: Optional[Suggestion] = None
    queries: List[QueryRecord] = field(default_factory=list)
    backtrace: Optional[Tuple[BacktraceFrame, ...]] = None

    def __post_init__(self):
        if self.severity not in Severity.WEIGHTS:
            raise ValueError(f"Unknown severity: {self.severity}")

        # Same record passed twice (not merely equal records) is kept once
        seen = set()
        unique = []
        for query in self.queries:
            if id(query) not in seen:
                seen.add(id(query))
                unique.append(query)
        self.queries = unique

    @property
    def severity_weight(self) -> int:
        return Severity.weight(self.severity)

    @property
    def first_sql(self) -> str:
        return self.queries[0].sql if self.queries else ''

    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL

    def get_summary(self) -> str:
        return f"[{self.severity.upper()}] {self.title}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.issue_type,
            'title': self.title,
            'description': self.description,
            'severity': self.severity,
            'suggestion': self.suggestion.to_dict() if self.suggestion else None,
            'queries': [query.to_dict() for query in self.queries],
            'backtrace': [frame.to_dict() for frame in self.backtrace] if self.backtrace else None,
        }
