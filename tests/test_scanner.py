from accesslift.services.query_conversion.utils.naming import parameter_identifier, quote_literal, sanitize
from accesslift.services.query_conversion.utils.scanner import (
    enclosing_paren,
    find_matching_paren,
    find_top_level,
    literal_mask,
    split_top_level,
    split_top_level_segments,
    sub_outside_literals,
)


class TestSanitize:

    def test_lowercases_and_joins_words(self):
        assert sanitize('Order Details') == 'order_details'

    def test_drops_punctuation(self):
        assert sanitize('Qty/Unit #') == 'qtyunit_'

    def test_is_idempotent(self):
        for name in ('Order Details', 'qryMonthly Sales (2024)', 'tbl-Customers', '  a  b  '):
            assert sanitize(sanitize(name)) == sanitize(name)

    def test_parameter_identifier(self):
        assert parameter_identifier('[Start Date]') == 'p_start_date'

    def test_quote_literal_doubles_quotes(self):
        assert quote_literal("O'Brien") == "'O''Brien'"


class TestScanner:

    def test_matching_paren_skips_literals(self):
        text = "f(a, (b), ')')"
        assert find_matching_paren(text, 1) == len(text) - 1

    def test_matching_paren_requires_open_paren(self):
        assert find_matching_paren('abc', 0) == -1

    def test_enclosing_paren(self):
        text = 'f(a, g(b))'
        assert enclosing_paren(text, text.index('b')) == text.index('g(') + 1
        assert enclosing_paren(text, 0) == -1

    def test_split_top_level_respects_nesting_and_quotes(self):
        assert split_top_level("a, f(b, c), 'x,y', [d,e]") == ['a', 'f(b, c)', "'x,y'", '[d,e]']

    def test_split_top_level_empty(self):
        assert split_top_level('') == []

    def test_bracketed_quote_does_not_open_a_string(self):
        mask = literal_mask("[O'Brien] = 'x'")
        assert not any(mask[:9])
        assert all(mask[12:15])

    def test_brackets_masked_on_request(self):
        assert all(literal_mask('[a b]', brackets=True))

    def test_find_top_level_ignores_subqueries(self):
        sql = 'SELECT a FROM (SELECT b FROM t WHERE c = 1) x WHERE d = 2'
        match = find_top_level(sql, r'\bWHERE\b')
        assert match.start() == sql.rindex('WHERE')

    def test_union_segments(self):
        sql = 'SELECT a FROM t UNION ALL SELECT b FROM (SELECT c FROM u UNION SELECT d FROM v) w'
        spans = split_top_level_segments(sql)
        assert len(spans) == 2
        assert sql[spans[0][0]:spans[0][1]].strip() == 'SELECT a FROM t'

    def test_sub_outside_literals(self):
        assert sub_outside_literals(r'\bx\b', 'y', "x 'x' [x]") == "y 'x' [y]"
        assert sub_outside_literals(r'\bx\b', 'y', "x 'x' [x]", brackets=True) == "y 'x' [x]"

    def test_comments_are_opaque(self):
        assert sub_outside_literals(r'\bx\b', 'y', 'x /* x */ x -- x') == 'y /* x */ y -- x'
