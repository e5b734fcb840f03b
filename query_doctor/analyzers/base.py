"""
Analyzer interface and per-run collaborators shared by every analyzer.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Sequence

from query_doctor.metadata.collection_joins import CollectionJoinClassifier
from query_doctor.metadata.schema_index import MetadataIndex, MetadataMap
from query_doctor.models import BacktraceFrame, Issue, QueryRecord
from query_doctor.parsing.aggregation import AggregationKeyBuilder
from query_doctor.parsing.sql_extractor import SqlStructureExtractor
from query_doctor.suggestions import SuggestionFactory

VENDOR_MARKER = '/vendor/'


@dataclass
class AnalysisContext:
    """
    Collaborators of one analysis run.

    The extractor (and its cache) and the metadata index are shared
    read-only by all analyzers; ``metadata_index`` may be None when no
    schema is available, in which case schema-based checks are skipped.
    """
    extractor: SqlStructureExtractor = field(default_factory=SqlStructureExtractor)
    metadata_index: Optional[MetadataIndex] = None
    suggestions: SuggestionFactory = field(default_factory=SuggestionFactory)

    def __post_init__(self):
        self.classifier = CollectionJoinClassifier(self.extractor)
        self.aggregation_keys = AggregationKeyBuilder(self.extractor)

    def metadata_map(self) -> MetadataMap:
        if self.metadata_index is None:
            return {}
        return self.metadata_index.build_metadata_map()


class Analyzer:
    """Base class: ``analyze`` lazily yields issues for a query stream."""

    name = 'analyzer'

    def __init__(self, context: AnalysisContext):
        self.context = context

    @property
    def extractor(self) -> SqlStructureExtractor:
        return self.context.extractor

    def analyze(self, queries: Iterable[QueryRecord]) -> Iterator[Issue]:
        raise NotImplementedError


# ============================================================================
# BACKTRACE HELPERS
# ============================================================================

def first_application_frame_index(
    frames: Sequence[BacktraceFrame], vendor_marker: str = VENDOR_MARKER
) -> Optional[int]:
    for index, frame in enumerate(frames):
        if frame.file and vendor_marker not in frame.file.replace('\\', '/'):
            return index
    return None


def extract_trigger_location(backtrace: Optional[Sequence[BacktraceFrame]]) -> Optional[str]:
    """``Caller::function() in file.py:42`` for the first frame outside vendor code"""
    if not backtrace:
        return None

    index = first_application_frame_index(backtrace)
    if index is None:
        return None

    frame = backtrace[index]
    short_file = frame.file.replace('\\', '/').rsplit('/', 1)[-1]
    location = f"{short_file}:{frame.line}" if frame.line is not None else short_file

    caller = None
    if index + 1 < len(backtrace):
        caller_frame = backtrace[index + 1]
        function = caller_frame.function
        if function and '{closure}' in function:
            function = '{closure}'
        if function and caller_frame.class_name:
            short_class = caller_frame.class_name.replace('\\', '.').rsplit('.', 1)[-1]
            caller = f"{short_class}::{function}()"
        elif function:
            caller = f"{function}()"

    return f"{caller} in {location}" if caller else location


def is_vendor_code(backtrace: Optional[Sequence[BacktraceFrame]]) -> bool:
    if not backtrace:
        return False
    return any(frame.file and VENDOR_MARKER in frame.file.replace('\\', '/') for frame in backtrace)
