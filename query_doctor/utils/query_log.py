"""
Query log and schema file loading.
Raw JSON is validated once here and turned into immutable records.
"""

import json
import logging
from pathlib import Path
from typing import Any, List, Union

from query_doctor.metadata.schema_index import MetadataIndex
from query_doctor.models import QueryRecord

logger = logging.getLogger(__name__)


def _read_json(path: Union[str, Path]) -> Any:
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"{path} is not valid JSON: {e}")


def load_query_log(path: Union[str, Path]) -> List[QueryRecord]:
    """
    Load executed queries from a JSON file.

    Accepts a list of entries or an object with a ``queries`` list.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file or one of its entries is malformed
    """
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get('queries')
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of queries or an object with a 'queries' list")

    records = []
    for position, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ValueError(f"{path}: query #{position} is not an object")
        try:
            records.append(QueryRecord.from_dict(entry))
        except ValueError as e:
            raise ValueError(f"{path}: query #{position}: {e}")

    logger.info(f"Loaded {len(records)} queries from {path}")
    return records


def load_schema(path: Union[str, Path]) -> MetadataIndex:
    """
    Load a JSON schema description into a metadata index.

    The file is parsed eagerly so malformed schemas fail before analysis.
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected an object with a 'tables' list")

    index = MetadataIndex.from_dict(data)
    metadata_map = index.build_metadata_map()
    logger.info(f"Loaded schema for {len(metadata_map)} tables from {path}")
    return index
