import os

from accesslift.config import _substitute_env
from accesslift.services.query_conversion.utils.directory_utils import create_run_directory
from accesslift.services.query_conversion.utils.parser_utils import validate_statement_body
from accesslift.services.query_conversion.utils.sql_preprocessing import prepare_query_text
from accesslift.utils.file_utils import find_query_files, read_json_file


class TestPrepareQueryText:

    def test_bom_line_endings_and_terminators(self):
        assert prepare_query_text('\ufeffSELECT a\r\nFROM t;;  \r\n') == 'SELECT a\nFROM t'

    def test_parameters_declaration_is_removed(self):
        assert prepare_query_text('PARAMETERS [Start Date] DateTime, x Long;\nSELECT * FROM t;') == 'SELECT * FROM t'

    def test_delete_star(self):
        assert prepare_query_text('DELETE [Order Lines].* FROM [Order Lines] WHERE x = 1') == \
            'DELETE FROM [Order Lines] WHERE x = 1'

    def test_none(self):
        assert prepare_query_text(None) == ''


class TestFiles:

    def test_find_query_files(self, tmp_path):
        for name in ('b.json', 'a.json', 'column_types.json', 'control_bindings.json',
                     'manual_review_required_20240101_000000.json', 'notes.txt'):
            (tmp_path / name).write_text('{}', encoding='utf-8')
        (tmp_path / 'logs').mkdir()
        (tmp_path / 'logs' / 'c.json').write_text('{}', encoding='utf-8')
        found = [os.path.basename(path) for path in find_query_files(str(tmp_path))]
        assert found == ['a.json', 'b.json']

    def test_read_json_with_bom(self, tmp_path):
        path = tmp_path / 'q.json'
        path.write_bytes('\ufeff{"a": 1}'.encode('utf-8'))
        assert read_json_file(path) == {'a': 1}

    def test_run_directory(self, tmp_path):
        run_dir = create_run_directory(tmp_path, prefix='queries', run_timestamp='20240101_120000')
        assert run_dir == tmp_path / 'queries_20240101_120000'
        assert run_dir.is_dir()


class TestConfig:

    def test_environment_substitution(self, monkeypatch):
        monkeypatch.setenv('ACCESSLIFT_TEST_DIR', '/data/out')
        assert _substitute_env('${ACCESSLIFT_TEST_DIR:-converted}') == '/data/out'
        monkeypatch.delenv('ACCESSLIFT_TEST_DIR')
        assert _substitute_env('${ACCESSLIFT_TEST_DIR:-converted}') == 'converted'
        assert _substitute_env(5) == 5


class TestValidation:

    def test_valid_body(self):
        assert validate_statement_body('SELECT a FROM app."t" t WHERE a > 1', 'postgresql') is None
