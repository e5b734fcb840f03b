"""
SQL normalization for query grouping.
Replaces literals with placeholders so that queries differing only in
parameter values share one canonical form.
"""

import logging
import re
from typing import Optional

import sqlglot
from sqlglot import exp

from query_doctor.utils.cache import SqlAnalysisCache

logger = logging.getLogger(__name__)

_STRING_SINGLE = re.compile(r"'(?:[^'\\]|\\.|'')*'")
_STRING_DOUBLE = re.compile(r'"(?:[^"\\]|\\.)*"')
_HEX_OR_BIT = re.compile(r"\b(?:0x[0-9a-f]+|0b[01]+|[xb]'[0-9a-f]*')(?!\w)", re.IGNORECASE)
_NUMBER = re.compile(r'(?<![\w.])-?\d+(?:\.\d+)?(?![\w.])')
_IN_LIST = re.compile(r'\bIN\s*\([^()]*\)', re.IGNORECASE)
_WHITESPACE = re.compile(r'\s+')

# Constant value nodes, including hex, bit and byte strings
_LITERAL_NODES = (exp.Literal, exp.HexString, exp.BitString, exp.ByteString, exp.RawString, exp.National)


def _replace_literal(node: exp.Expression) -> exp.Expression:
    """sqlglot transform: literal values become ``?``, IN lists become ``IN (?)``"""
    if isinstance(node, exp.In) and node.expressions:
        return exp.In(this=node.this.copy(), expressions=[exp.Placeholder()])
    if isinstance(node, exp.Neg) and isinstance(node.this, _LITERAL_NODES):
        return exp.Placeholder()
    if isinstance(node, _LITERAL_NODES):
        return exp.Placeholder()
    return node


class SqlNormalizer:
    """Canonicalize SQL with sqlglot, falling back to regex for unparseable text."""

    def __init__(self, dialect: str = 'mysql', cache: Optional[SqlAnalysisCache] = None):
        self.dialect = dialect
        self.cache = cache

    def normalize(self, sql: str) -> str:
        """
        Canonical form of ``sql``: literals as ``?``, ``IN (?)``, single spaces, uppercase.

        Deterministic and idempotent; never raises.
        """
        if self.cache is not None:
            return self.cache.get_or_compute('normalized', sql, lambda: self._normalize(sql))
        return self._normalize(sql)

    def _normalize(self, sql: str) -> str:
        try:
            parsed = sqlglot.parse_one(sql, read=self.dialect)
        except Exception as e:
            logger.debug(f"Parser normalization failed, using regex fallback: {e}")
            return self.normalize_with_regex(sql)

        # Statements sqlglot only tokenizes come back as opaque commands
        if parsed is None or isinstance(parsed, exp.Command):
            return self.normalize_with_regex(sql)

        try:
            generated = parsed.transform(_replace_literal).sql(dialect=self.dialect)
        except Exception as e:
            logger.debug(f"SQL generation failed, using regex fallback: {e}")
            return self.normalize_with_regex(sql)

        return _WHITESPACE.sub(' ', generated).strip().upper()

    @staticmethod
    def normalize_with_regex(sql: str) -> str:
        """Literal substitution without a grammar, for malformed SQL"""
        normalized = _HEX_OR_BIT.sub('?', sql)
        normalized = _STRING_SINGLE.sub('?', normalized)
        normalized = _STRING_DOUBLE.sub('?', normalized)
        normalized = _NUMBER.sub('?', normalized)
        normalized = _IN_LIST.sub('IN (?)', normalized)
        return _WHITESPACE.sub(' ', normalized).strip().upper()
