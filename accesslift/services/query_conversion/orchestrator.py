"""QueryConversionOrchestrator – batch driver for Access query conversion.

Responsibilities
----------------
1. Locate extracted query definitions (``*.json``, one record or a list of
   records per file) plus the optional ``column_types.json`` and
   ``control_bindings.json`` side files.
2. Prepare the output directory (``<base_dirs.output>/queries_<timestamp>``
   unless one is given).
3. Convert every query through :func:`pipeline.convert`.
4. Write ``<object_name>.sql`` per converted query, ``conversion_summary.json``
   and a ``manual_review_required_<timestamp>.json`` listing every warning.

All rewrite logic lives in the pipeline; the orchestrator only handles I/O,
logging and aggregation. A file that cannot be read or converted is
recorded as an error and the batch continues.
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from accesslift.utils.file_utils import find_query_files, read_json_file, write_file_content
from accesslift.utils.logger import release_run_handlers, setup_logger
from .control_mapping import build_column_types
from .converters.base_converter import ConversionSettings
from .converters.reference_resolver import normalize_bindings
from .models import ConversionResult, ObjectShape, QueryDescriptor
from .pipeline import QueryConversionPipeline
from .utils.directory_utils import create_run_directory
from .utils.manual_review_logger import ManualReviewLogger
from .utils.result_formatter import create_query_result, create_result_dictionary

COLUMN_TYPES_FILE = 'column_types.json'
CONTROL_BINDINGS_FILE = 'control_bindings.json'


class QueryConversionOrchestrator:

    def __init__(self, schema_name: str, *, settings: Optional[ConversionSettings] = None):
        self.logger = setup_logger("QueryConversionOrchestrator")
        self.schema_name = schema_name
        self.settings = settings or ConversionSettings.from_config()
        self.pipeline = QueryConversionPipeline(self.settings)
        self.manual_review_logger: Optional[ManualReviewLogger] = None

    def convert(self, source_dir: str, output_dir: Optional[str] = None) -> dict:
        source_files = find_query_files(source_dir)
        if not source_files:
            return create_result_dictionary(
                "error", "No query definition files found in the source directory.",
                {"files_processed": 0}, [], source_dir=source_dir,
            )

        run_dir = Path(output_dir) if output_dir else create_run_directory(prefix='queries')
        run_dir.mkdir(parents=True, exist_ok=True)
        run_logger = setup_logger("QueryConversionOrchestrator", run_dir=str(run_dir))
        self.manual_review_logger = ManualReviewLogger(output_dir=str(run_dir), logger=run_logger)

        try:
            column_types = self._load_column_types(source_dir)
            control_bindings = self._load_control_bindings(source_dir)
            run_logger.info(f"Converting {len(source_files)} query file(s) from {source_dir} into schema '{self.schema_name}'")

            stats = {"files_processed": len(source_files), "queries_converted": 0, "statements_written": 0}
            results: List[Dict] = []
            for i, file_path in enumerate(source_files):
                run_logger.info(f"[{i + 1}/{len(source_files)}] Processing: {os.path.basename(file_path)}")
                results.extend(self._process_file(file_path, run_dir, column_types, control_bindings, stats))

            failed = len([r for r in results if r['status'] == 'error'])
            status = 'success' if not failed else ('error' if failed == len(results) else 'partial_success')
            summary = create_result_dictionary(
                status, f"Conversion finished for {len(source_files)} file(s).", stats, results,
                output_dir=str(run_dir), source_dir=source_dir,
            )
            self._write_conversion_summary_to_file(summary, run_dir)
            review_log = self.manual_review_logger.write_manual_review_log()
            run_logger.info(self.manual_review_logger.create_summary_report())
            summary["summary_file"] = str(run_dir / 'conversion_summary.json')
            summary["manual_review_file"] = review_log
            return summary
        finally:
            release_run_handlers(run_logger)

    def _process_file(self, file_path: str, run_dir: Path, column_types: Mapping[str, str],
                      control_bindings: Mapping, stats: dict) -> List[Dict]:
        relative = os.path.basename(file_path)
        try:
            payload = read_json_file(file_path)
        except (IOError, OSError, ValueError) as e:
            self.logger.error(f"Could not read {file_path}: {e}", exc_info=True)
            self.manual_review_logger.log_manual_review_item(
                relative, os.path.splitext(relative)[0], 'Unreadable_file', str(e), severity='ERROR')
            return [create_query_result(file_path, 'error', f"Could not read file: {e}")]

        records = payload if isinstance(payload, list) else [payload]
        entries = []
        for record in records:
            if not isinstance(record, Mapping):
                entries.append(create_query_result(file_path, 'error', "Query record is not a JSON object"))
                continue
            entries.append(self._convert_record(file_path, relative, record, run_dir, column_types, control_bindings, stats))
        return entries

    def _convert_record(self, file_path: str, relative: str, record: Mapping[str, Any], run_dir: Path,
                        column_types: Mapping[str, str], control_bindings: Mapping, stats: dict) -> Dict:
        try:
            descriptor = QueryDescriptor.from_dict(record)
            result = self.pipeline.run(descriptor, self.schema_name, column_types, control_bindings)
        except Exception as e:
            self.logger.error(f"Conversion failed for {file_path}: {e}", exc_info=True)
            result = ConversionResult(object_name=os.path.splitext(relative)[0], warnings=[f"Conversion failed: {e}"])

        for warning in result.warnings:
            self.manual_review_logger.log_conversion_warning(
                relative, result.object_name, warning, object_type=result.object_type.value)

        if result.object_type == ObjectShape.NONE or not result.statements:
            return create_query_result(file_path, 'error', "No statements generated", result)

        output_file = self._write_converted_file(run_dir, result)
        stats["queries_converted"] += 1
        stats["statements_written"] += len(result.statements)
        status = 'success_with_warnings' if result.warnings else 'success'
        return create_query_result(file_path, status, f"Converted to {result.object_type.value}", result, output_file)

    def _write_converted_file(self, run_dir: Path, result: ConversionResult) -> str:
        """Every statement, including the last, is terminated with a semicolon."""
        output_path = run_dir / f"{result.object_name or 'unnamed_query'}.sql"
        joined_sql = ";\n\n".join(result.statements).rstrip() + ";\n"
        write_file_content(output_path, joined_sql)
        return str(output_path)

    def _load_column_types(self, source_dir: str) -> Dict[str, str]:
        path = Path(source_dir) / COLUMN_TYPES_FILE
        if not path.is_file():
            return {}
        try:
            data = read_json_file(path)
        except (IOError, OSError, ValueError) as e:
            self.logger.warning(f"Ignoring unreadable {path}: {e}")
            return {}
        if isinstance(data, list):
            return build_column_types(data)
        return {str(k).lower(): v for k, v in (data or {}).items()}

    def _load_control_bindings(self, source_dir: str) -> Dict:
        path = Path(source_dir) / CONTROL_BINDINGS_FILE
        if not path.is_file():
            return {}
        try:
            return normalize_bindings(read_json_file(path))
        except (IOError, OSError, ValueError, TypeError) as e:
            self.logger.warning(f"Ignoring unreadable {path}: {e}")
            return {}

    def _write_conversion_summary_to_file(self, summary_data_dict: Dict, output_dir: Path):
        """
        Writes the conversion summary to a JSON file in the output directory.
        """
        summary_file_path = output_dir / 'conversion_summary.json'
        try:
            def json_default(o):
                if isinstance(o, Path):
                    return str(o)
                return f"<<non-serializable: {type(o).__name__}>>"

            with open(summary_file_path, 'w', encoding='utf-8') as f:
                json.dump(summary_data_dict, f, indent=4, default=json_default)
            self.logger.info(f"Conversion summary written to: {summary_file_path}")
        except (IOError, OSError) as e:
            self.logger.error(f"Failed to write conversion summary: {e}", exc_info=True)
