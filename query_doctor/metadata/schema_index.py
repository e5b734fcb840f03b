"""
Relational Metadata Index
Maps physical table names to identifier columns and associations.
Built lazily from SQLAlchemy mappers, SQLAlchemy Core metadata, a live
database or a JSON description, then shared read-only by all analyzers.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from sqlalchemy import MetaData, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import RelationshipDirection

logger = logging.getLogger(__name__)


class Cardinality:
    """Association cardinalities, seen from the owning table"""
    ONE_TO_ONE = 'one_to_one'
    ONE_TO_MANY = 'one_to_many'
    MANY_TO_ONE = 'many_to_one'
    MANY_TO_MANY = 'many_to_many'

    ALL = (ONE_TO_ONE, ONE_TO_MANY, MANY_TO_ONE, MANY_TO_MANY)
    COLLECTIONS = (ONE_TO_MANY, MANY_TO_MANY)


@dataclass(frozen=True)
class Association:
    """One side of a relationship between two tables"""
    field_name: str
    target_table: str
    cardinality: str
    nullable: bool = True
    join_columns: Tuple[str, ...] = ()  # set on the side holding the foreign key
    cascade: FrozenSet[str] = frozenset()
    orphan_removal: bool = False
    mapped_by: Optional[str] = None

    @property
    def is_collection(self) -> bool:
        return self.cardinality in Cardinality.COLLECTIONS

    @property
    def is_owning_side(self) -> bool:
        return bool(self.join_columns)


@dataclass
class TableMetadata:
    """Schema descriptor of one physical table"""
    table_name: str
    entity_name: str
    identifier_columns: FrozenSet[str] = frozenset()
    associations: List[Association] = field(default_factory=list)
    columns: Dict[str, bool] = field(default_factory=dict)  # column -> nullable

    def is_identifier(self, column: str) -> bool:
        return column.lower() in {name.lower() for name in self.identifier_columns}

    def find_association_by_join_column(self, column: str) -> Optional[Association]:
        for association in self.associations:
            if column.lower() in (name.lower() for name in association.join_columns):
                return association
        return None

    def find_association(self, field_name: str) -> Optional[Association]:
        for association in self.associations:
            if association.field_name == field_name:
                return association
        return None


MetadataMap = Dict[str, TableMetadata]


def lookup_table(metadata_map: MetadataMap, table_name: Optional[str]) -> Optional[TableMetadata]:
    """Case-insensitive lookup; None stands for "no metadata for this table"."""
    if not table_name:
        return None
    return metadata_map.get(table_name.lower())


def table_to_entity_name(table_name: str) -> str:
    """``app_user_profile`` -> ``UserProfile``"""
    stripped = re.sub(r'^(tbl_|app_)', '', table_name)
    return ''.join(part[:1].upper() + part[1:] for part in stripped.split('_') if part)


def _field_from_column(column_name: str) -> str:
    """``author_id`` -> ``author``"""
    if column_name.lower().endswith('_id') and len(column_name) > 3:
        return column_name[:-3]
    return column_name


# ============================================================================
# SOURCES
# ============================================================================

def _tables_from_mappers(mappers: Iterable[Any]) -> List[TableMetadata]:
    """Read declarative mappers; broken relationships are skipped, not fatal."""
    tables = []
    for mapper in sorted(mappers, key=lambda m: m.class_.__name__):
        try:
            table = mapper.local_table
            associations = []
            for relationship in mapper.relationships:
                try:
                    associations.append(_association_from_relationship(relationship))
                except Exception as e:
                    logger.debug(
                        f"Skipping relationship {mapper.class_.__name__}.{relationship.key}: {e}"
                    )

            tables.append(TableMetadata(
                table_name=table.name,
                entity_name=mapper.class_.__name__,
                identifier_columns=frozenset(column.name for column in mapper.primary_key),
                associations=associations,
                columns={column.name: bool(column.nullable) for column in table.columns},
            ))
        except Exception as e:
            logger.warning(f"Skipping mapper {getattr(mapper, 'class_', mapper)}: {e}")
    return tables


def _association_from_relationship(relationship: Any) -> Association:
    target_table = relationship.mapper.local_table.name
    local_columns = sorted(relationship.local_columns, key=lambda column: column.name)
    direction = relationship.direction

    join_columns: Tuple[str, ...] = ()
    nullable = True
    if direction is RelationshipDirection.MANYTOMANY:
        cardinality = Cardinality.MANY_TO_MANY
    elif direction is RelationshipDirection.ONETOMANY:
        cardinality = Cardinality.ONE_TO_MANY if relationship.uselist else Cardinality.ONE_TO_ONE
    else:
        unique = any(column.unique for column in local_columns)
        cardinality = Cardinality.ONE_TO_ONE if unique else Cardinality.MANY_TO_ONE
        join_columns = tuple(column.name for column in local_columns)
        nullable = all(column.nullable for column in local_columns)

    return Association(
        field_name=relationship.key,
        target_table=target_table,
        cardinality=cardinality,
        nullable=nullable,
        join_columns=join_columns,
        cascade=frozenset(relationship.cascade),
        orphan_removal=bool(relationship.cascade.delete_orphan),
        mapped_by=relationship.back_populates or None,
    )


def _tables_from_core(metadata: MetaData) -> List[TableMetadata]:
    """
    Derive associations from foreign keys.

    The table holding a foreign key gets MANY_TO_ONE (ONE_TO_ONE when the
    column is unique), the referenced table gets the inverse ONE_TO_MANY,
    and the two ends of a pure join table get MANY_TO_MANY.
    """
    tables: Dict[str, TableMetadata] = {}
    inverse: Dict[str, List[Association]] = defaultdict(list)

    for table in metadata.sorted_tables:
        primary_key = {column.name for column in table.primary_key.columns}
        associations = []
        fk_targets: Dict[str, str] = {}

        for foreign_key in sorted(table.foreign_keys, key=lambda fk: fk.parent.name):
            column = foreign_key.parent
            try:
                target = foreign_key.column.table
            except SQLAlchemyError as e:
                logger.debug(f"Skipping foreign key {table.name}.{column.name}: {e}")
                continue

            fk_targets[column.name] = target.name
            unique = bool(column.unique) or primary_key == {column.name}
            relation = _field_from_column(column.name)

            associations.append(Association(
                field_name=relation,
                target_table=target.name,
                cardinality=Cardinality.ONE_TO_ONE if unique else Cardinality.MANY_TO_ONE,
                nullable=bool(column.nullable),
                join_columns=(column.name,),
            ))
            inverse[target.name].append(Association(
                field_name=table.name,
                target_table=table.name,
                cardinality=Cardinality.ONE_TO_ONE if unique else Cardinality.ONE_TO_MANY,
                mapped_by=relation,
            ))

        # Join table: every column is part of the key and points at one of two tables
        targets = set(fk_targets.values())
        all_columns = {column.name for column in table.columns}
        if len(targets) == 2 and len(primary_key) >= 2 and all_columns == primary_key == set(fk_targets):
            first, second = sorted(targets)
            inverse[first].append(Association(
                field_name=second, target_table=second, cardinality=Cardinality.MANY_TO_MANY,
            ))
            inverse[second].append(Association(
                field_name=first, target_table=first, cardinality=Cardinality.MANY_TO_MANY,
            ))

        tables[table.name] = TableMetadata(
            table_name=table.name,
            entity_name=table_to_entity_name(table.name),
            identifier_columns=frozenset(primary_key),
            associations=associations,
            columns={column.name: bool(column.nullable) for column in table.columns},
        )

    for table_name, associations in inverse.items():
        if table_name in tables:
            tables[table_name].associations.extend(associations)

    return list(tables.values())


def _tables_from_dict(data: Dict[str, Any]) -> List[TableMetadata]:
    """
    Parse a JSON schema description.

    Raises:
        ValueError: If a table has no name or an association is malformed
    """
    entries = data.get('tables') if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ValueError("Schema description must contain a 'tables' list")

    tables = []
    for entry in entries:
        name = entry.get('name') if isinstance(entry, dict) else None
        if not name:
            raise ValueError(f"Schema table entry without a name: {entry!r}")

        columns = entry.get('columns') or {}
        if isinstance(columns, list):
            if not all(isinstance(column, dict) and column.get('name') for column in columns):
                raise ValueError(f"Table '{name}': every column entry needs a 'name'")
            columns = {column['name']: column.get('nullable', True) for column in columns}
        elif not isinstance(columns, dict):
            raise ValueError(f"Table '{name}': 'columns' must be a list or an object")
        else:
            columns = {
                column: (spec.get('nullable', True) if isinstance(spec, dict) else bool(spec))
                for column, spec in columns.items()
            }

        associations = []
        raw_associations = entry.get('associations') or []
        if not isinstance(raw_associations, list):
            raise ValueError(f"Table '{name}': 'associations' must be a list")

        for raw in raw_associations:
            if not isinstance(raw, dict):
                raise ValueError(f"Table '{name}': association must be an object, got {raw!r}")
            cardinality = str(raw.get('cardinality', raw.get('type', ''))).lower()
            target = raw.get('target') or raw.get('target_table')
            if cardinality not in Cardinality.ALL:
                raise ValueError(f"Table '{name}': unknown cardinality '{cardinality}'")
            if not target:
                raise ValueError(f"Table '{name}': association without a target table")

            associations.append(Association(
                field_name=raw.get('field') or target,
                target_table=target,
                cardinality=cardinality,
                nullable=bool(raw.get('nullable', True)),
                join_columns=tuple(raw.get('join_columns') or ()),
                cascade=frozenset(raw.get('cascade') or ()),
                orphan_removal=bool(raw.get('orphan_removal', False)),
                mapped_by=raw.get('mapped_by'),
            ))

        tables.append(TableMetadata(
            table_name=name,
            entity_name=entry.get('entity') or table_to_entity_name(name),
            identifier_columns=frozenset(entry.get('identifiers') or ['id']),
            associations=associations,
            columns=columns,
        ))
    return tables


# ============================================================================
# INDEX
# ============================================================================

class MetadataIndex:
    """
    Lazily built, memoized table-name index of schema descriptors.

    The loader runs on first use only; clear_cache() forces a rebuild.
    """

    def __init__(self, loader: Callable[[], Iterable[TableMetadata]]):
        self._loader = loader
        self._metadata_map: Optional[MetadataMap] = None

    @classmethod
    def from_tables(cls, tables: Iterable[TableMetadata]) -> 'MetadataIndex':
        tables = list(tables)
        return cls(lambda: tables)

    @classmethod
    def from_declarative(cls, base: Any) -> 'MetadataIndex':
        """From a declarative base class or a ``registry``"""
        registry = getattr(base, 'registry', base)

        def load() -> List[TableMetadata]:
            # Relationship directions exist only once mappers are configured
            registry.configure()
            return _tables_from_mappers(registry.mappers)

        return cls(load)

    @classmethod
    def from_metadata(cls, metadata: MetaData) -> 'MetadataIndex':
        return cls(lambda: _tables_from_core(metadata))

    @classmethod
    def from_engine(cls, engine: Union[Engine, str], schema: Optional[str] = None) -> 'MetadataIndex':
        """
        Reflect a live database.

        Raises:
            ConnectionError: If the database cannot be reflected
        """
        try:
            if isinstance(engine, str):
                engine = create_engine(engine, pool_pre_ping=True, echo=False)
            metadata = MetaData()
            metadata.reflect(bind=engine, schema=schema)
        except SQLAlchemyError as e:
            raise ConnectionError(f"Failed to reflect database schema: {str(e)}")

        logger.info(f"Reflected {len(metadata.tables)} tables")
        return cls.from_metadata(metadata)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MetadataIndex':
        return cls.from_tables(_tables_from_dict(data))

    def build_metadata_map(self) -> MetadataMap:
        if self._metadata_map is None:
            metadata_map = {}
            for table in self._loader():
                metadata_map[table.table_name.lower()] = table
            self._metadata_map = metadata_map
            logger.debug(f"Metadata index built: {len(metadata_map)} tables")
        return self._metadata_map

    def get(self, table_name: Optional[str]) -> Optional[TableMetadata]:
        return lookup_table(self.build_metadata_map(), table_name)

    def can_be_collection(self, table_name: str, metadata_map: Optional[MetadataMap] = None) -> bool:
        return can_be_collection(table_name, metadata_map if metadata_map is not None else self.build_metadata_map())

    def entity_for_table(self, table_name: str) -> str:
        metadata = self.get(table_name)
        return metadata.entity_name if metadata else table_to_entity_name(table_name)

    def clear_cache(self) -> None:
        self._metadata_map = None


def can_be_collection(table_name: str, metadata_map: MetadataMap) -> bool:
    """True when any association targeting ``table_name`` is ONE_TO_MANY or MANY_TO_MANY"""
    target = table_name.lower()
    for metadata in metadata_map.values():
        for association in metadata.associations:
            if association.target_table.lower() == target and association.is_collection:
                return True
    return False
