"""
Aggregation keys for repeated-query detection.
"""

from query_doctor.parsing.sql_extractor import SqlStructureExtractor


class AggregationKeyBuilder:
    """
    Group key = normalized SQL, plus ``|table|foreign_key`` when the query
    has a lazy-load shape.

    The relation suffix keeps ``User->orders`` and ``User->comments`` loads
    in separate groups even when their normalized text is alike.
    """

    def __init__(self, extractor: SqlStructureExtractor):
        self.extractor = extractor

    def create_aggregation_key(self, sql: str) -> str:
        return self.extractor.cache.get_or_compute('aggregation_key', sql, lambda: self._build(sql))

    def _build(self, sql: str) -> str:
        normalized = self.extractor.normalize_query(sql)

        pattern = self.extractor.detect_n_plus_one_pattern(sql)
        if pattern is None:
            pattern = self.extractor.detect_n_plus_one_from_join(sql)
        if pattern is None:
            return normalized

        return f"{normalized}|{pattern.table}|{pattern.foreign_key}"
