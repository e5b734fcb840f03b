"""
SQL parsing: structural extraction, normalization, aggregation keys and
injection heuristics.
"""

from query_doctor.parsing.aggregation import AggregationKeyBuilder
from query_doctor.parsing.injection_patterns import InjectionRisk, detect_injection_risk
from query_doctor.parsing.sql_extractor import SqlStructureExtractor
from query_doctor.parsing.sql_normalizer import SqlNormalizer

__all__ = [
    'AggregationKeyBuilder',
    'InjectionRisk',
    'detect_injection_risk',
    'SqlStructureExtractor',
    'SqlNormalizer',
]
