import unittest

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from query_doctor.metadata.schema_index import (
    Cardinality,
    MetadataIndex,
    can_be_collection,
    table_to_entity_name,
)
from tests.fixtures import shop_index


class Base(DeclarativeBase):
    pass


class Author(Base):
    __tablename__ = 'authors'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    books: Mapped[list['Book']] = relationship(back_populates='author', cascade='all, delete-orphan')


class Book(Base):
    __tablename__ = 'books'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    author_id: Mapped[int] = mapped_column(ForeignKey('authors.id'), nullable=False)
    author: Mapped['Author'] = relationship(back_populates='books')


class TestDictSource(unittest.TestCase):
    """JSON schema descriptions"""

    def test_build_map(self):
        metadata_map = shop_index().build_metadata_map()

        self.assertEqual(set(metadata_map), {'users', 'orders', 'comments', 'profiles'})
        self.assertEqual(metadata_map['users'].entity_name, 'User')
        self.assertTrue(metadata_map['orders'].is_identifier('ID'))

    def test_association_fields(self):
        orders = shop_index().get('orders')
        association = orders.find_association_by_join_column('user_id')

        self.assertEqual(association.field_name, 'user')
        self.assertEqual(association.cardinality, Cardinality.MANY_TO_ONE)
        self.assertFalse(association.nullable)
        self.assertTrue(association.is_owning_side)

    def test_lookup_is_case_insensitive(self):
        self.assertIsNotNone(shop_index().get('USERS'))
        self.assertIsNone(shop_index().get('missing'))

    def test_memoized_until_cleared(self):
        index = shop_index()

        first = index.build_metadata_map()
        self.assertIs(index.build_metadata_map(), first)

        index.clear_cache()
        self.assertIsNot(index.build_metadata_map(), first)

    def test_invalid_cardinality(self):
        data = {'tables': [{'name': 't', 'associations': [{'target': 'x', 'cardinality': 'lots'}]}]}

        with self.assertRaises(ValueError):
            MetadataIndex.from_dict(data)

    def test_missing_tables_list(self):
        with self.assertRaises(ValueError):
            MetadataIndex.from_dict({'schema': []})

    def test_column_without_name(self):
        data = {'tables': [{'name': 'users', 'columns': [{'name': 'id'}, {'nullable': True}]}]}

        with self.assertRaises(ValueError):
            MetadataIndex.from_dict(data)

    def test_association_not_an_object(self):
        data = {'tables': [{'name': 'users', 'associations': ['orders']}]}

        with self.assertRaises(ValueError):
            MetadataIndex.from_dict(data)

    def test_associations_not_a_list(self):
        data = {'tables': [{'name': 'users', 'associations': {'target': 'orders'}}]}

        with self.assertRaises(ValueError):
            MetadataIndex.from_dict(data)

    def test_default_identifier_and_entity(self):
        index = MetadataIndex.from_dict({'tables': [{'name': 'app_order_line'}]})
        table = index.get('app_order_line')

        self.assertEqual(table.identifier_columns, frozenset({'id'}))
        self.assertEqual(table.entity_name, 'OrderLine')


class TestCanBeCollection(unittest.TestCase):

    def test_collection_targets(self):
        metadata_map = shop_index().build_metadata_map()

        self.assertTrue(can_be_collection('orders', metadata_map))
        self.assertTrue(can_be_collection('comments', metadata_map))
        self.assertFalse(can_be_collection('profiles', metadata_map))
        self.assertFalse(can_be_collection('users', metadata_map))

    def test_unknown_table(self):
        self.assertFalse(can_be_collection('ghosts', shop_index().build_metadata_map()))


class TestCoreSource(unittest.TestCase):
    """SQLAlchemy Core MetaData"""

    def setUp(self):
        metadata = MetaData()
        Table('users', metadata, Column('id', Integer, primary_key=True))
        Table(
            'orders', metadata,
            Column('id', Integer, primary_key=True),
            Column('user_id', Integer, ForeignKey('users.id'), nullable=False),
        )
        Table('tags', metadata, Column('id', Integer, primary_key=True))
        Table(
            'order_tags', metadata,
            Column('order_id', Integer, ForeignKey('orders.id'), primary_key=True),
            Column('tag_id', Integer, ForeignKey('tags.id'), primary_key=True),
        )
        self.metadata_map = MetadataIndex.from_metadata(metadata).build_metadata_map()

    def test_foreign_key_side(self):
        association = self.metadata_map['orders'].find_association_by_join_column('user_id')

        self.assertEqual(association.target_table, 'users')
        self.assertEqual(association.cardinality, Cardinality.MANY_TO_ONE)
        self.assertFalse(association.nullable)

    def test_inverse_side(self):
        inverse = [a for a in self.metadata_map['users'].associations if a.target_table == 'orders']

        self.assertEqual(len(inverse), 1)
        self.assertEqual(inverse[0].cardinality, Cardinality.ONE_TO_MANY)
        self.assertEqual(inverse[0].mapped_by, 'user')

    def test_join_table_gives_many_to_many(self):
        to_tags = [a for a in self.metadata_map['orders'].associations if a.target_table == 'tags']

        self.assertEqual(len(to_tags), 1)
        self.assertEqual(to_tags[0].cardinality, Cardinality.MANY_TO_MANY)
        self.assertTrue(can_be_collection('tags', self.metadata_map))


class TestDeclarativeSource(unittest.TestCase):
    """SQLAlchemy ORM mappers"""

    def setUp(self):
        self.metadata_map = MetadataIndex.from_declarative(Base).build_metadata_map()

    def test_entities(self):
        self.assertEqual(self.metadata_map['authors'].entity_name, 'Author')
        self.assertEqual(self.metadata_map['books'].entity_name, 'Book')

    def test_one_to_many(self):
        books = self.metadata_map['authors'].find_association('books')

        self.assertEqual(books.cardinality, Cardinality.ONE_TO_MANY)
        self.assertEqual(books.target_table, 'books')
        self.assertEqual(books.mapped_by, 'author')
        self.assertTrue(books.orphan_removal)

    def test_many_to_one(self):
        author = self.metadata_map['books'].find_association('author')

        self.assertEqual(author.cardinality, Cardinality.MANY_TO_ONE)
        self.assertEqual(author.join_columns, ('author_id',))
        self.assertFalse(author.nullable)


class TestEntityNames(unittest.TestCase):

    def test_table_to_entity_name(self):
        self.assertEqual(table_to_entity_name('user_profile'), 'UserProfile')
        self.assertEqual(table_to_entity_name('tbl_orders'), 'Orders')


if __name__ == '__main__':
    unittest.main()
