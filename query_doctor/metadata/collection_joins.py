"""
Collection-Join Classifier
Decides whether a JOIN reaches the "many" side of a relationship.
"""

import logging
from typing import Optional, Set, Tuple

from query_doctor.metadata.schema_index import MetadataMap, can_be_collection, lookup_table
from query_doctor.models import JoinCondition, JoinDescriptor
from query_doctor.parsing.sql_extractor import SqlStructureExtractor

logger = logging.getLogger(__name__)


class CollectionJoinClassifier:
    """
    Two-tier classification: ON-clause key voting first, declared
    association cardinality when the votes are tied or absent.
    """

    def __init__(self, extractor: SqlStructureExtractor):
        self.extractor = extractor

    def extract_from_table(self, sql: str, metadata_map: MetadataMap) -> Optional[str]:
        """Main FROM table, only when the metadata index knows it"""
        main_table = self.extractor.extract_main_table(sql)
        if main_table is None or lookup_table(metadata_map, main_table.table) is None:
            return None
        return main_table.table

    def is_collection_join(
        self,
        join: JoinDescriptor,
        metadata_map: MetadataMap,
        sql: str,
        from_table: str,
    ) -> bool:
        if lookup_table(metadata_map, from_table) is None:
            return False
        join_metadata = lookup_table(metadata_map, join.table)
        if join_metadata is None:
            return False

        if not join.conditions:
            return can_be_collection(join.table, metadata_map)

        join_names = self.join_qualifiers(join)
        aliases = self.extractor.alias_map(sql)

        collection_votes = 0
        reference_votes = 0
        for condition in join.conditions:
            (other_qualifier, other_column), join_column = self.orient(condition, join_names)

            # Chained joins compare against the table they hang off, not FROM
            other_table = aliases.get((other_qualifier or '').lower(), from_table)
            other_metadata = lookup_table(metadata_map, other_table)
            if other_metadata is None:
                continue

            other_is_key = other_metadata.is_identifier(other_column)
            join_is_key = join_metadata.is_identifier(join_column)

            if other_is_key and not join_is_key:
                collection_votes += 1
            elif join_is_key and not other_is_key:
                reference_votes += 1

        if collection_votes > 0 and reference_votes == 0:
            return True
        if reference_votes > 0 and collection_votes == 0:
            return False

        logger.debug(
            f"Inconclusive key votes for JOIN {join.table} "
            f"({collection_votes}/{reference_votes}), using declared cardinality"
        )
        return can_be_collection(join.table, metadata_map)

    @staticmethod
    def join_qualifiers(join: JoinDescriptor) -> Set[str]:
        """Qualifiers naming the joined side; an aliased table is only reachable by its alias"""
        if join.alias:
            return {join.alias.lower()}
        return {join.table.lower()}

    @staticmethod
    def orient(
        condition: JoinCondition, join_names: Set[str]
    ) -> Tuple[Tuple[Optional[str], str], str]:
        """Return ``((other_qualifier, other_column), join_column)`` for an ON pair"""
        left_qualifier, left_column = JoinCondition.split(condition.left)
        right_qualifier, right_column = JoinCondition.split(condition.right)

        if left_qualifier and left_qualifier.lower() in join_names:
            return (right_qualifier, right_column), left_column
        # Unqualified or unknown qualifiers: left is the parent side, right the joined side
        return (left_qualifier, left_column), right_column
