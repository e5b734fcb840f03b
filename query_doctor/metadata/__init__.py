"""
Metadata Module
Schema descriptors per table and collection-join classification
"""

from query_doctor.metadata.collection_joins import CollectionJoinClassifier
from query_doctor.metadata.schema_index import (
    Association,
    Cardinality,
    MetadataIndex,
    TableMetadata,
    can_be_collection,
)

__all__ = [
    'Association',
    'Cardinality',
    'CollectionJoinClassifier',
    'MetadataIndex',
    'TableMetadata',
    'can_be_collection',
]
