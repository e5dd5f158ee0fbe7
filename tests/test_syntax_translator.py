from accesslift.services.query_conversion.converters.syntax_translator import (
    append_row_limit,
    canonicalize_literals,
    cast_state_comparisons,
    convert_bracket_identifiers,
    convert_date_literals,
    convert_like_patterns,
    convert_operators,
    convert_string_literals,
    extract_row_limit,
    normalize_keywords,
    translate_syntax,
)


class TestRowLimit:

    def test_top_is_removed_and_returned(self):
        warnings = []
        assert extract_row_limit('SELECT TOP 10 * FROM t', warnings) == ('SELECT * FROM t', 10)
        assert warnings == []

    def test_top_after_distinct(self):
        sql, limit = extract_row_limit('SELECT DISTINCT TOP 5 name FROM t', [])
        assert sql == 'SELECT DISTINCT name FROM t'
        assert limit == 5

    def test_top_in_subquery_becomes_inline_limit(self):
        sql, limit = extract_row_limit('SELECT * FROM (SELECT TOP 5 id FROM t ORDER BY id) AS x', [])
        assert sql == 'SELECT * FROM (SELECT id FROM t ORDER BY id LIMIT 5) AS x'
        assert limit is None

    def test_top_percent_is_dropped_with_warning(self):
        warnings = []
        sql, limit = extract_row_limit('SELECT TOP 10 PERCENT * FROM t', warnings)
        assert sql == 'SELECT * FROM t'
        assert limit is None
        assert warnings[0].startswith('TOP 10 PERCENT')

    def test_append_row_limit(self):
        assert append_row_limit('SELECT 1 ;', 3) == 'SELECT 1 LIMIT 3'
        assert append_row_limit('SELECT 1', None) == 'SELECT 1'


class TestLiterals:

    def test_distinctrow(self):
        assert normalize_keywords('SELECT DISTINCTROW a FROM t') == 'SELECT DISTINCT a FROM t'

    def test_booleans_and_current_date(self):
        assert canonicalize_literals('WHERE a = True AND b = FALSE AND d < Date()') == \
            'WHERE a = true AND b = false AND d < CURRENT_DATE'

    def test_now_is_not_rewritten_inside_strings(self):
        assert canonicalize_literals("SELECT 'Now()', Now()") == "SELECT 'Now()', CURRENT_TIMESTAMP"

    def test_us_date_literal(self):
        assert convert_date_literals('d = #1/15/2024#') == "d = '2024-01-15'::date"

    def test_iso_datetime_literal(self):
        assert convert_date_literals('#2024-03-05 14:30#') == "'2024-03-05 14:30'::timestamp"

    def test_twelve_hour_clock(self):
        assert convert_date_literals('#1/2/2024 2:05 PM#') == "'2024-01-02 14:05'::timestamp"

    def test_two_digit_year(self):
        assert convert_date_literals('#12/31/99#') == "'1999-12-31'::date"

    def test_time_literal(self):
        assert convert_date_literals('#08:15:00#') == "'08:15:00'::time"

    def test_concatenation(self):
        assert convert_operators("[First] & ' ' & [Last]") == "[First] || ' ' || [Last]"

    def test_ampersand_in_string_is_kept(self):
        assert convert_operators("'A & B'") == "'A & B'"

    def test_double_quoted_strings(self):
        assert convert_string_literals('x = "Paris"') == "x = 'Paris'"
        assert convert_string_literals('x = "O\'Brien"') == "x = 'O''Brien'"


class TestPostReferenceSteps:

    def test_state_comparison_cast(self):
        assert cast_state_comparisons('WHERE (id = ss1.value)') == 'WHERE (id::text = ss1.value)'
        assert cast_state_comparisons('WHERE [t].[c] <> ss2.value') == 'WHERE [t].[c]::text <> ss2.value'

    def test_state_comparison_cast_is_not_repeated(self):
        assert cast_state_comparisons('id::text = ss1.value') == 'id::text = ss1.value'

    def test_like_wildcards(self):
        assert convert_like_patterns("name LIKE 'A*' OR code LIKE 'X?1'") == \
            "name LIKE 'A%' OR code LIKE 'X_1'"

    def test_star_outside_like_is_kept(self):
        assert convert_like_patterns("SELECT '*' FROM t") == "SELECT '*' FROM t"

    def test_bracket_identifiers(self):
        assert convert_bracket_identifiers('[Order Details].[Unit Price]') == '"order_details"."unit_price"'

    def test_bracketed_parameters_become_bare(self):
        assert convert_bracket_identifiers('x > [p_min_qty]', {'p_min_qty'}) == 'x > p_min_qty'


class TestTranslateSyntax:

    def test_all_steps(self):
        warnings = []
        sql = 'SELECT TOP 3 [Name] FROM [Customers] WHERE [City] = "Paris" AND [Name] LIKE "A*"'
        assert translate_syntax(sql, warnings) == \
            'SELECT "name" FROM "customers" WHERE "city" = \'Paris\' AND "name" LIKE \'A%\' LIMIT 3'
        assert warnings == []

    def test_reference_hook_runs_between_steps(self):
        seen = []

        def _resolve(sql):
            seen.append(sql)
            return sql.replace('[Forms]![f]![c]', 'ss1.value')

        result = translate_syntax('SELECT a FROM t WHERE a = [Forms]![f]![c]', [], _resolve)
        assert seen == ['SELECT a FROM t WHERE a = [Forms]![f]![c]']
        assert result == 'SELECT a FROM t WHERE a::text = ss1.value'
