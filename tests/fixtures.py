"""Shared schema and query-log fixtures"""

from query_doctor.metadata.schema_index import MetadataIndex
from query_doctor.models import BacktraceFrame, QueryRecord

SHOP_SCHEMA = {
    'tables': [
        {
            'name': 'users',
            'entity': 'User',
            'identifiers': ['id'],
            'columns': {'id': False, 'name': True, 'profile_id': False},
            'associations': [
                {'field': 'orders', 'target': 'orders', 'cardinality': 'one_to_many', 'mapped_by': 'user'},
                {'field': 'comments', 'target': 'comments', 'cardinality': 'one_to_many', 'mapped_by': 'author'},
                {
                    'field': 'profile', 'target': 'profiles', 'cardinality': 'many_to_one',
                    'nullable': False, 'join_columns': ['profile_id'],
                },
            ],
        },
        {
            'name': 'orders',
            'entity': 'Order',
            'identifiers': ['id'],
            'columns': {'id': False, 'user_id': False, 'total': True},
            'associations': [
                {
                    'field': 'user', 'target': 'users', 'cardinality': 'many_to_one',
                    'nullable': False, 'join_columns': ['user_id'],
                },
            ],
        },
        {
            'name': 'comments',
            'entity': 'Comment',
            'identifiers': ['id'],
            'columns': {'id': False, 'user_id': True, 'body': True},
            'associations': [
                {
                    'field': 'author', 'target': 'users', 'cardinality': 'many_to_one',
                    'nullable': True, 'join_columns': ['user_id'],
                },
            ],
        },
        {
            'name': 'profiles',
            'entity': 'Profile',
            'identifiers': ['id'],
            'columns': {'id': False, 'bio': True},
            'associations': [],
        },
    ]
}

CARTESIAN_SQL = (
    "SELECT u.*, o.id, c.id FROM users u "
    "LEFT JOIN orders o ON u.id = o.user_id "
    "LEFT JOIN comments c ON u.id = c.user_id"
)

MIXED_JOINS_SQL = (
    "SELECT u.*, o.id, p.bio FROM users u "
    "LEFT JOIN orders o ON u.id = o.user_id "
    "LEFT JOIN profiles p ON u.profile_id = p.id"
)


def shop_index() -> MetadataIndex:
    return MetadataIndex.from_dict(SHOP_SCHEMA)


def app_frame(name: str = 'OrderController', line: int = 42) -> BacktraceFrame:
    return BacktraceFrame(file=f'/srv/app/src/{name}.py', line=line, function='index', class_name=name)


def vendor_frame() -> BacktraceFrame:
    return BacktraceFrame(file='/srv/app/vendor/orm/loader.py', line=10, function='load', class_name='Loader')


def query(sql: str, time_ms: float = 1.0, row_count=None, backtrace=None) -> QueryRecord:
    return QueryRecord(sql=sql, execution_time_ms=time_ms, row_count=row_count, backtrace=backtrace)
