import unittest

from query_doctor.models import JoinCondition, JoinType
from query_doctor.parsing.sql_extractor import SqlStructureExtractor


class TestJoinExtraction(unittest.TestCase):
    """JOIN, table and alias extraction"""

    def setUp(self):
        self.extractor = SqlStructureExtractor()

    def test_left_join_with_alias(self):
        joins = self.extractor.extract_joins(
            "SELECT * FROM users u LEFT JOIN orders o ON u.id = o.user_id"
        )

        self.assertEqual(len(joins), 1)
        self.assertEqual(joins[0].join_type, JoinType.LEFT)
        self.assertEqual(joins[0].table, 'orders')
        self.assertEqual(joins[0].alias, 'o')
        self.assertEqual(joins[0].conditions, (JoinCondition('u.id', 'o.user_id'),))

    def test_join_without_alias(self):
        joins = self.extractor.extract_joins(
            "SELECT * FROM users u JOIN orders ON u.id = orders.user_id"
        )

        self.assertEqual(len(joins), 1)
        self.assertIsNone(joins[0].alias)
        self.assertEqual(joins[0].reference, 'orders')

    def test_join_type_normalization(self):
        left_outer = self.extractor.extract_joins(
            "SELECT * FROM users u LEFT OUTER JOIN orders o ON u.id = o.user_id"
        )
        bare = self.extractor.extract_joins(
            "SELECT * FROM users u JOIN orders o ON u.id = o.user_id"
        )

        self.assertEqual(left_outer[0].join_type, JoinType.LEFT)
        self.assertEqual(bare[0].join_type, JoinType.INNER)

    def test_multiple_joins_in_order(self):
        sql = (
            "SELECT * FROM users u "
            "INNER JOIN orders o ON u.id = o.user_id "
            "LEFT JOIN comments c ON c.user_id = u.id"
        )

        joins = self.extractor.extract_joins(sql)

        self.assertEqual([join.table for join in joins], ['orders', 'comments'])
        self.assertEqual(self.extractor.count_joins(sql), 2)
        self.assertTrue(self.extractor.has_join(sql))

    def test_main_table_and_all_tables(self):
        sql = "SELECT * FROM users u LEFT JOIN orders o ON u.id = o.user_id"

        main_table = self.extractor.extract_main_table(sql)
        tables = self.extractor.extract_all_tables(sql)

        self.assertEqual(main_table.table, 'users')
        self.assertEqual(main_table.alias, 'u')
        self.assertEqual([(t.table, t.source) for t in tables], [('users', 'from'), ('orders', 'join')])

    def test_alias_map(self):
        aliases = self.extractor.alias_map(
            "SELECT * FROM users u LEFT JOIN orders o ON u.id = o.user_id"
        )

        self.assertEqual(aliases['u'], 'users')
        self.assertEqual(aliases['o'], 'orders')
        self.assertEqual(aliases['orders'], 'orders')

    def test_non_select_has_no_joins(self):
        self.assertEqual(self.extractor.extract_joins("UPDATE users SET name = 'x' WHERE id = 1"), [])
        self.assertIsNone(self.extractor.extract_main_table("DELETE FROM users WHERE id = 1"))

    def test_garbage_returns_empty(self):
        garbage = "this is )( definitely not ' sql"

        self.assertEqual(self.extractor.extract_joins(garbage), [])
        self.assertEqual(self.extractor.extract_all_tables(garbage), [])
        self.assertFalse(self.extractor.has_join(garbage))

    def test_results_are_cached(self):
        sql = "SELECT * FROM users u LEFT JOIN orders o ON u.id = o.user_id"

        first = self.extractor.extract_joins(sql)
        second = self.extractor.extract_joins(sql)

        self.assertIs(first, second)
        self.assertGreater(self.extractor.cache.hits, 0)


class TestClauseExtraction(unittest.TestCase):
    """LIMIT, aggregates, IS NOT NULL and alias usage"""

    def setUp(self):
        self.extractor = SqlStructureExtractor()

    def test_limit_value(self):
        self.assertEqual(self.extractor.get_limit_value("SELECT * FROM orders LIMIT 50"), 50)
        self.assertIsNone(self.extractor.get_limit_value("SELECT * FROM orders"))

    def test_aggregation_functions(self):
        functions = self.extractor.extract_aggregation_functions(
            "SELECT COUNT(o.id), SUM(o.total), COUNT(*) FROM orders o"
        )

        self.assertEqual(functions, ['COUNT', 'SUM'])

    def test_is_not_null_field_on_alias(self):
        sql = (
            "SELECT u.* FROM users u LEFT JOIN orders o ON u.id = o.user_id "
            "WHERE o.id IS NOT NULL"
        )

        self.assertEqual(self.extractor.find_is_not_null_field_on_alias(sql, 'o'), 'id')
        self.assertIsNone(self.extractor.find_is_not_null_field_on_alias(sql, 'u'))

    def test_is_null_is_not_reported(self):
        sql = "SELECT u.* FROM users u LEFT JOIN orders o ON u.id = o.user_id WHERE o.id IS NULL"

        self.assertIsNone(self.extractor.find_is_not_null_field_on_alias(sql, 'o'))

    def test_alias_used_only_in_own_join_is_unused(self):
        sql = "SELECT u.name FROM users u LEFT JOIN orders o ON u.id = o.user_id"

        self.assertFalse(self.extractor.is_alias_used_in_query(sql, 'o'))
        self.assertTrue(self.extractor.is_alias_used_in_query(sql, 'u'))

    def test_alias_used_in_where(self):
        sql = "SELECT u.name FROM users u JOIN orders o ON u.id = o.user_id WHERE o.total > 10"

        self.assertTrue(self.extractor.is_alias_used_in_query(sql, 'o'))

    def test_star_uses_every_alias(self):
        sql = "SELECT * FROM users u LEFT JOIN orders o ON u.id = o.user_id"

        self.assertTrue(self.extractor.is_alias_used_in_query(sql, 'o'))

    def test_is_select_query(self):
        self.assertTrue(self.extractor.is_select_query("SELECT 1"))
        self.assertTrue(self.extractor.is_select_query("select * from users"))
        self.assertFalse(self.extractor.is_select_query("UPDATE users SET name = 'x'"))


class TestLazyLoadShapes(unittest.TestCase):
    """Foreign-key and primary-key lookups"""

    def setUp(self):
        self.extractor = SqlStructureExtractor()

    def test_foreign_key_pattern(self):
        pattern = self.extractor.detect_n_plus_one_pattern("SELECT * FROM orders o WHERE o.user_id = ?")

        self.assertEqual(pattern.table, 'orders')
        self.assertEqual(pattern.foreign_key, 'user_id')
        self.assertEqual(pattern.relation_base, 'user')

    def test_foreign_key_pattern_with_literal(self):
        pattern = self.extractor.detect_n_plus_one_pattern("SELECT * FROM orders WHERE user_id = 7")

        self.assertEqual(pattern.table, 'orders')

    def test_no_pattern_without_foreign_key(self):
        self.assertIsNone(self.extractor.detect_n_plus_one_pattern("SELECT * FROM orders WHERE total = 5"))

    def test_pattern_from_join(self):
        sql = (
            "SELECT t.* FROM tags t "
            "INNER JOIN post_tag pt ON pt.tag_id = t.id AND pt.post_id = ?"
        )

        pattern = self.extractor.detect_n_plus_one_from_join(sql)

        self.assertEqual(pattern.table, 'post_tag')
        self.assertEqual(pattern.foreign_key, 'post_id')

    def test_lazy_loading_by_primary_key(self):
        self.assertEqual(
            self.extractor.detect_lazy_loading_pattern("SELECT * FROM users t0 WHERE t0.id = ?"),
            'users',
        )
        self.assertIsNone(
            self.extractor.detect_lazy_loading_pattern("SELECT * FROM orders WHERE id = ? AND user_id = ?")
        )

    def test_partial_collection_load(self):
        self.assertTrue(
            self.extractor.detect_partial_collection_load("SELECT * FROM orders WHERE user_id = ? LIMIT 5")
        )
        self.assertFalse(
            self.extractor.detect_partial_collection_load("SELECT * FROM orders WHERE user_id = ?")
        )


if __name__ == '__main__':
    unittest.main()
