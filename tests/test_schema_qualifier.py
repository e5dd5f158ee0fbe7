import pytest

from accesslift.services.query_conversion.converters.schema_qualifier import (
    qualify_functions,
    qualify_tables,
    unqualify_update_targets,
)


class TestQualifyTables:

    @pytest.mark.parametrize('sql, expected', [
        ('SELECT * FROM orders', 'SELECT * FROM app."orders" orders'),
        ('SELECT o.id FROM orders o WHERE o.id = 1', 'SELECT o.id FROM app."orders" o WHERE o.id = 1'),
        ('SELECT * FROM orders AS o', 'SELECT * FROM app."orders" AS o'),
        ('SELECT * FROM orders WHERE id = 1', 'SELECT * FROM app."orders" orders WHERE id = 1'),
        ('SELECT * FROM "order details"', 'SELECT * FROM app."order_details" order_details'),
        ('SELECT * FROM "order"', 'SELECT * FROM app."order" "order"'),
    ])
    def test_single_source(self, sql, expected):
        assert qualify_tables(sql, 'app') == expected

    def test_joins(self):
        assert qualify_tables('SELECT * FROM a INNER JOIN b ON a.id = b.id', 'app') == \
            'SELECT * FROM app."a" a INNER JOIN app."b" b ON a.id = b.id'

    def test_comma_list(self):
        assert qualify_tables('SELECT * FROM a, b, c WHERE a.id = b.id', 'app') == \
            'SELECT * FROM app."a" a, app."b" b, app."c" c WHERE a.id = b.id'

    def test_state_relation_is_not_touched(self):
        sql = "SELECT * FROM t CROSS JOIN shared.session_state ss1 WHERE ss1.table_name = 'x'"
        assert qualify_tables(sql, 'app', 'shared.session_state') == \
            "SELECT * FROM app.\"t\" t CROSS JOIN shared.session_state ss1 WHERE ss1.table_name = 'x'"

    def test_unqualified_state_relation_is_not_touched(self):
        assert qualify_tables('SELECT * FROM session_state ss1', 'app', 'session_state') == \
            'SELECT * FROM session_state ss1'

    def test_already_qualified_names_are_kept(self):
        assert qualify_tables('SELECT * FROM other.t', 'app') == 'SELECT * FROM other.t'

    def test_insert_target_has_no_alias(self):
        assert qualify_tables('INSERT INTO archive (a) SELECT a FROM orders', 'app') == \
            'INSERT INTO app."archive" (a) SELECT a FROM app."orders" orders'

    @pytest.mark.parametrize('expression', [
        'EXTRACT(YEAR FROM d)',
        'SUBSTRING(code FROM start_pos)',
        'SUBSTRING(code FROM start_pos FOR 2)',
        "TRIM(BOTH ' ' FROM name)",
        'OVERLAY(code PLACING x FROM start_pos)',
    ])
    def test_from_inside_function_is_not_a_table(self, expression):
        assert qualify_tables(f'SELECT {expression} FROM t', 'app') == \
            f'SELECT {expression} FROM app."t" t'

    def test_subquery_source(self):
        assert qualify_tables('SELECT * FROM (SELECT id FROM t) x', 'app') == \
            'SELECT * FROM (SELECT id FROM app."t" t) x'

    def test_literals_are_ignored(self):
        assert qualify_tables("SELECT 'from x' AS a FROM t", 'app') == \
            "SELECT 'from x' AS a FROM app.\"t\" t"


class TestUpdateTargets:

    def test_qualifier_is_removed_from_set_targets(self):
        sql = 'UPDATE app."orders" orders SET orders.status = 1, orders."qty" = 2 WHERE id = 2'
        assert unqualify_update_targets(sql) == \
            'UPDATE app."orders" orders SET status = 1, "qty" = 2 WHERE id = 2'

    def test_other_statements_are_unchanged(self):
        sql = 'SELECT t.a = 1 FROM t'
        assert unqualify_update_targets(sql) == sql


class TestQualifyFunctions:

    def test_user_function_is_qualified(self):
        assert qualify_functions('SELECT MyCalc(a), COUNT(*), COALESCE(a, 0) FROM t', 'app') == \
            'SELECT "app"."mycalc"(a), COUNT(*), COALESCE(a, 0) FROM t'

    def test_custom_aggregates_are_qualified(self):
        assert qualify_functions('SELECT first_agg(x) FROM t', 'app') == 'SELECT "app"."first_agg"(x) FROM t'

    def test_keywords_and_casts_are_left_alone(self):
        sql = "SELECT CAST(a AS numeric(10,2)), b::varchar(20) FROM t WHERE c IN (1, 2) AND EXISTS (SELECT 1)"
        assert qualify_functions(sql, 'app') == sql

    def test_is_idempotent(self):
        once = qualify_functions('SELECT MyCalc(a) FROM t', 'app')
        assert qualify_functions(once, 'app') == once
