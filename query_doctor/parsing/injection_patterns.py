"""
SQL injection heuristics.

Plain regular expressions over the raw SQL text: injected or malformed SQL
often does not parse, so no grammar is involved. Every function here is
pure and stateless.
"""

import re
from dataclasses import dataclass, field
from typing import List, NamedTuple, Pattern


class InjectionIndicator(NamedTuple):
    key: str
    pattern: Pattern
    weight: int
    description: str


INJECTION_INDICATORS: List[InjectionIndicator] = [
    InjectionIndicator(
        'numeric_in_quotes',
        re.compile(r"""['"][^'"]*\d+[^'"]*['"]"""),
        1,
        'Numeric value in quotes (possible concatenation)',
    ),
    InjectionIndicator(
        'injection_keywords',
        re.compile(r"'.*(?:UNION|OR\s+1\s*=\s*1|AND\s+1\s*=\s*1|--|\#|/\*).*'", re.IGNORECASE),
        3,
        'SQL injection keywords detected in string',
    ),
    InjectionIndicator(
        'comment_syntax',
        re.compile(r"""['"].*(?:--|\#|/\*).*['"]"""),
        2,
        'SQL comment syntax in string value',
    ),
    InjectionIndicator(
        'consecutive_quotes',
        re.compile(r"""'{2,}|("){2,}"""),
        1,
        'Consecutive quotes detected',
    ),
    InjectionIndicator(
        'unparameterized_like',
        re.compile(r"""LIKE\s+['"][^?:]*%[^?:]*['"]""", re.IGNORECASE),
        1,
        'LIKE clause without parameter',
    ),
    InjectionIndicator(
        'literal_in_where',
        re.compile(r"WHERE\s+[^=]+\s*=\s*'[^'?:]+'", re.IGNORECASE),
        2,
        'WHERE clause with literal string instead of parameter',
    ),
    InjectionIndicator(
        'multiple_literal_conditions',
        re.compile(r"(?:WHERE|AND|OR)\s+[^=]+\s*=\s*'[^']*'\s+(?:OR|AND)\s+", re.IGNORECASE),
        3,
        'Multiple conditions with literal strings (possible injection)',
    ),
]


@dataclass
class InjectionRisk:
    """Score of one query: sum of matched indicator weights"""
    risk_level: int = 0
    indicators: List[str] = field(default_factory=list)

    @property
    def is_suspicious(self) -> bool:
        return self.risk_level > 0


def detect_injection_risk(sql: str) -> InjectionRisk:
    """Score ``sql`` against every indicator; each indicator counts at most once."""
    risk = InjectionRisk()
    for indicator in INJECTION_INDICATORS:
        if indicator.pattern.search(sql):
            risk.risk_level += indicator.weight
            risk.indicators.append(indicator.description)
    return risk
