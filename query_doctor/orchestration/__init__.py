"""
Orchestration Module
Analysis pipeline and issue deduplication
"""

from query_doctor.orchestration.deduplicator import DEFAULT_ISSUE_PRIORITIES, IssueDeduplicator
from query_doctor.orchestration.pipeline import QueryAnalysisPipeline

__all__ = [
    'DEFAULT_ISSUE_PRIORITIES',
    'IssueDeduplicator',
    'QueryAnalysisPipeline',
]
