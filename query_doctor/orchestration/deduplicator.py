"""
Issue Deduplicator / Priority Resolver
Groups issues describing the same problem and keeps one per group, so a
root cause (N+1) hides its symptoms (slow query on the same statement).
"""

import hashlib
import logging
import re
from collections import OrderedDict
from typing import Dict, List, Mapping, Optional

from query_doctor.models import Issue

logger = logging.getLogger(__name__)

_REPEATED_COUNT = re.compile(r'(\d+)\s+(?:queries?|executions?)', re.IGNORECASE)
_ENTITY_IN_TEXT = re.compile(r'''(?:entity|class)\s+["']?([A-Z]\w+)["']?''', re.IGNORECASE)
_TABLE_IN_TITLE = re.compile(r'''(?:table|FROM|JOIN)\s+["`]?(\w+)["`]?''', re.IGNORECASE)
_TABLE_IN_SQL = re.compile(r'FROM\s+(\w+)', re.IGNORECASE)
_SQL_LITERALS = re.compile(r"\?|\d+|'[^']*'")
_WHITESPACE = re.compile(r'\s+')

# Title keyword -> priority; root causes outrank the symptoms they produce
DEFAULT_ISSUE_PRIORITIES: Dict[str, int] = {
    'N+1 Query': 100,
    'Missing Index': 90,
    'Lazy Loading': 80,
    'Slow Query': 70,
    'Unused JOIN': 60,
    'Frequent Query': 50,
    'Query Caching': 40,
    'ORDER BY without LIMIT': 30,
    'findAll()': 20,
}


class IssueDeduplicator:
    """
    Two steps: group by a signature derived from title, description and
    SQL; then pick one issue per group by keyword priority, then severity.
    """

    def __init__(self, priorities: Optional[Mapping[str, int]] = None):
        self.priorities = dict(priorities if priorities is not None else DEFAULT_ISSUE_PRIORITIES)

    def deduplicate(self, issues: List[Issue]) -> List[Issue]:
        if not issues:
            return []

        groups: Dict[str, List[Issue]] = OrderedDict()
        for issue in issues:
            groups.setdefault(self.signature(issue), []).append(issue)

        kept = [self.select_best(group) for group in groups.values()]
        if len(kept) < len(issues):
            logger.debug(f"Deduplicated {len(issues)} issues into {len(kept)}")
        return kept

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def signature(self, issue: Issue) -> str:
        """
        Signature tried in order: repeated query (count + entity), table
        performance / table query (entity), normalized SQL hash, then a
        title + entity hash.
        """
        title = issue.title
        entity = self.extract_entity(issue)

        count = _REPEATED_COUNT.search(title)
        if count and entity:
            return f"repeated_query:{entity}:{count.group(1)}"

        if entity and ('Index' in title or 'index' in title):
            return f"table_performance:{entity}"
        if entity and ('ORDER BY' in title or 'findAll' in title):
            return f"table_query:{entity}"

        if issue.first_sql:
            return 'sql:' + _md5(self.normalize_sql(issue.first_sql))

        return 'generic:' + _md5(f"{title}:{entity or ''}")

    @staticmethod
    def extract_entity(issue: Issue) -> Optional[str]:
        for text in (issue.title, issue.description):
            match = _ENTITY_IN_TEXT.search(text or '')
            if match:
                return match.group(1)

        match = _TABLE_IN_TITLE.search(issue.title)
        if match:
            return match.group(1)

        if issue.first_sql:
            match = _TABLE_IN_SQL.search(issue.first_sql)
            if match:
                return match.group(1)
        return None

    @staticmethod
    def normalize_sql(sql: str) -> str:
        """Literal-free, whitespace-collapsed, lowercase SQL for hashing"""
        normalized = _SQL_LITERALS.sub('?', sql)
        return _WHITESPACE.sub(' ', normalized).strip().lower()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def priority(self, issue: Issue) -> int:
        """Weight of the first priority keyword found in the title, 0 if none"""
        for keyword, weight in self.priorities.items():
            if keyword in issue.title:
                return weight
        return 0

    def select_best(self, group: List[Issue]) -> Issue:
        """Highest priority wins, then highest severity; earlier issue wins ties."""
        best = group[0]
        for issue in group[1:]:
            if self.priority(issue) > self.priority(best):
                best = issue
            elif (self.priority(issue) == self.priority(best)
                  and issue.severity_weight > best.severity_weight):
                best = issue
        return best


def _md5(text: str) -> str:
    return hashlib.md5(text.encode('utf-8')).hexdigest()
