import json

import pytest

from accesslift.services.query_conversion.models import ConversionResult, ObjectShape
from accesslift.services.query_conversion.utils.manual_review_logger import ManualReviewLogger, classify_warning
from accesslift.services.query_conversion.utils.result_formatter import create_query_result, create_result_dictionary


@pytest.mark.parametrize('message, issue_type', [
    ('Empty query text; nothing to convert', 'Empty_query'),
    ('Crosstab queries are unsupported: they need the tablefunc extension and a manual column list',
     'Unsupported_query_type'),
    ('Unsupported query type: Data Definition (code 96)', 'Unsupported_query_type'),
    ('Make-table query: could not find the INTO target table', 'Make_table_target'),
    ('functions stage failed: boom', 'Stage_failure'),
    ('Unresolved form reference Parent!orderid; substituted NULL', 'Unresolved_form_reference'),
    ('Could not infer the result columns; using RETURNS SETOF record, manual column definition needed',
     'Untyped_result_columns'),
    ('Generated SQL did not parse cleanly as postgresql: Expecting )', 'Generated_sql_parse'),
    ("Format pattern 'qq' has no known PostgreSQL equivalent; passed through to to_char unchanged", 'Unknown_format'),
    ('TOP 10 PERCENT has no direct PostgreSQL equivalent; row limit dropped', 'Dropped_row_limit'),
    ("DateAdd interval 'z' not recognised; treated as days", 'Unknown_interval'),
    ('Extractor note on parameters: unreadable', 'Extractor_note'),
    ('something new', 'Other'),
])
def test_classify_warning(message, issue_type):
    assert classify_warning(message) == issue_type


class TestManualReviewLogger:

    def test_write_log(self, tmp_path):
        review = ManualReviewLogger(str(tmp_path))
        review.log_conversion_warning('q1.json', 'q1', 'Unsupported query type: unknown (code 999)')
        review.log_conversion_warning('q2.json', 'q2', 'Unresolved form reference Form!x; substituted NULL', 'view')
        path = review.write_manual_review_log()

        with open(path, encoding='utf-8') as f:
            data = json.load(f)
        assert data['total_items_requiring_review'] == 2
        assert data['summary_by_severity'] == {'ERROR': 1, 'WARNING': 1}
        assert data['review_items'][1]['object_type'] == 'view'
        assert data['review_items'][1]['suggested_action'].startswith('Add the control')

    def test_nothing_to_write(self, tmp_path):
        assert ManualReviewLogger(str(tmp_path)).write_manual_review_log() is None

    def test_summary_report_lists_errors(self, tmp_path):
        review = ManualReviewLogger(str(tmp_path))
        review.log_conversion_warning('q1.json', 'q1', 'Empty query text; nothing to convert')
        report = review.create_summary_report()
        assert 'HIGH PRIORITY ITEMS (ERRORS):' in report
        assert 'q1.json::q1' in report


class TestResultFormatter:

    def test_query_result_and_summary(self):
        result = ConversionResult('q1', ObjectShape.VIEW, ['CREATE VIEW ...'], ['w'])
        entry = create_query_result('q1.json', 'success_with_warnings', 'Converted to view', result, 'out/q1.sql')
        assert entry['object_type'] == 'view'
        assert entry['statement_count'] == 1
        assert entry['warnings'] == ['w']

        summary = create_result_dictionary('success', 'done', {'files_processed': 1}, [entry], output_dir='out')
        assert summary['stats'] == {'files_processed': 1, 'files_successful': 1, 'files_failed': 0}
        assert summary['shape_summary'] == {'view': 1}
        assert summary['output_directory'] == 'out'
        assert 'source_directory' not in summary
