"""
Injection-Risk Analyzer
Aggregates per-query injection scores into at most two issues per run.
"""

import logging
from typing import Iterable, Iterator, List

from query_doctor.analyzers.base import AnalysisContext, Analyzer
from query_doctor.models import Issue, QueryRecord, Severity
from query_doctor.parsing.injection_patterns import detect_injection_risk

logger = logging.getLogger(__name__)

MAX_ATTACHED_QUERIES = 10


class InjectionRiskAnalyzer(Analyzer):

    name = 'injection_risk'

    def __init__(self, context: AnalysisContext, critical_risk: int = 3, high_risk: int = 2):
        super().__init__(context)
        self.critical_risk = critical_risk
        self.high_risk = high_risk

    def analyze(self, queries: Iterable[QueryRecord]) -> Iterator[Issue]:
        critical: List[QueryRecord] = []
        high: List[QueryRecord] = []
        critical_indicators: List[str] = []
        high_indicators: List[str] = []

        for query in queries:
            risk = detect_injection_risk(query.sql)
            if risk.risk_level >= self.critical_risk:
                critical.append(query)
                _merge(critical_indicators, risk.indicators)
            elif risk.risk_level >= self.high_risk:
                high.append(query)
                _merge(high_indicators, risk.indicators)

        if critical:
            logger.warning(f"{len(critical)} queries with critical injection risk")
            yield Issue(
                issue_type='injection_risk',
                title=f"Security Vulnerability: {len(critical)} queries with SQL injection risks",
                description=(
                    f"Detected {len(critical)} queries with CRITICAL injection risk. "
                    f"Indicators: {', '.join(critical_indicators)}. "
                    f"Always use parameterized queries and never concatenate user input into SQL."
                ),
                severity=Severity.CRITICAL,
                suggestion=self.context.suggestions.create_dql_injection(
                    critical[0].sql, critical_indicators, 'critical'
                ),
                queries=critical[:MAX_ATTACHED_QUERIES],
                backtrace=critical[0].backtrace,
            )

        if high:
            yield Issue(
                issue_type='injection_risk',
                title=f"Security Warning: {len(high)} queries with potential injection risks",
                description=(
                    f"Detected {len(high)} queries with HIGH injection risk. "
                    f"Indicators: {', '.join(high_indicators)}. "
                    f"Review these queries and ensure proper parameter binding."
                ),
                severity=Severity.WARNING,
                suggestion=self.context.suggestions.create_dql_injection(
                    high[0].sql, high_indicators, 'high'
                ),
                queries=high[:MAX_ATTACHED_QUERIES],
                backtrace=high[0].backtrace,
            )


def _merge(target: List[str], values: Iterable[str]) -> None:
    for value in values:
        if value not in target:
            target.append(value)
