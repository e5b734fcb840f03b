"""
Pattern analyzers.

The analyzer set is closed and ordered; ``build_default_analyzers`` is the
single place where it is assembled.
"""

import logging
from typing import List

from query_doctor.analyzers.base import AnalysisContext, Analyzer
from query_doctor.analyzers.cartesian_product import CartesianProductAnalyzer
from query_doctor.analyzers.hydration import HydrationAnalyzer
from query_doctor.analyzers.injection_risk import InjectionRiskAnalyzer
from query_doctor.analyzers.join_optimization import JoinOptimizationAnalyzer
from query_doctor.analyzers.join_type_consistency import JoinTypeConsistencyAnalyzer
from query_doctor.analyzers.n_plus_one import NPlusOneAnalyzer
from query_doctor.analyzers.slow_query import SlowQueryAnalyzer

logger = logging.getLogger(__name__)


def build_default_analyzers(context: AnalysisContext, settings=None) -> List[Analyzer]:
    """
    Instantiate the analyzers in run order.

    Args:
        context: Shared extractor, metadata index and suggestion factory
        settings: ``config.settings.Settings``; analyzer defaults when None

    Returns:
        Analyzers, restricted to ``settings.pipeline.enabled_analyzers`` when set
    """
    if settings is None:
        analyzers = [
            NPlusOneAnalyzer(context),
            CartesianProductAnalyzer(context),
            JoinOptimizationAnalyzer(context),
            JoinTypeConsistencyAnalyzer(context),
            HydrationAnalyzer(context),
            SlowQueryAnalyzer(context),
            InjectionRiskAnalyzer(context),
        ]
        return analyzers

    n_plus_one = settings.n_plus_one
    analyzers = [
        NPlusOneAnalyzer(
            context,
            threshold=n_plus_one.threshold,
            proxy_multiplier=n_plus_one.proxy_multiplier,
            warning_count=n_plus_one.warning_count,
            critical_count=n_plus_one.critical_count,
            warning_time_ms=n_plus_one.warning_time_ms,
            critical_time_ms=n_plus_one.critical_time_ms,
        ),
        CartesianProductAnalyzer(context),
        JoinOptimizationAnalyzer(
            context,
            max_joins_recommended=settings.joins.max_joins_recommended,
            max_joins_critical=settings.joins.max_joins_critical,
        ),
        JoinTypeConsistencyAnalyzer(context),
        HydrationAnalyzer(
            context,
            row_threshold=settings.hydration.row_threshold,
            critical_threshold=settings.hydration.critical_threshold,
        ),
        SlowQueryAnalyzer(context, threshold_ms=settings.slow_query.threshold_ms),
        InjectionRiskAnalyzer(
            context,
            critical_risk=settings.injection.critical_risk,
            high_risk=settings.injection.high_risk,
        ),
    ]

    enabled = settings.pipeline.enabled_analyzers
    if enabled:
        unknown = set(enabled) - {analyzer.name for analyzer in analyzers}
        if unknown:
            logger.warning(f"Unknown analyzers in ENABLED_ANALYZERS: {', '.join(sorted(unknown))}")
        analyzers = [analyzer for analyzer in analyzers if analyzer.name in enabled]

    return analyzers


__all__ = [
    'AnalysisContext',
    'Analyzer',
    'CartesianProductAnalyzer',
    'HydrationAnalyzer',
    'InjectionRiskAnalyzer',
    'JoinOptimizationAnalyzer',
    'JoinTypeConsistencyAnalyzer',
    'NPlusOneAnalyzer',
    'SlowQueryAnalyzer',
    'build_default_analyzers',
]
