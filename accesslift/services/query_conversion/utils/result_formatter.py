"""
Result formatting utilities for query conversion.
Handles creation of standardized result dictionaries and summary data.
"""
from typing import Dict, List, Optional

from accesslift.services.query_conversion.models import ConversionResult


def create_query_result(file_path: str, status: str, message: str,
                        result: Optional[ConversionResult] = None,
                        output_file: Optional[str] = None) -> Dict:
    """Per-file entry of ``conversion_summary.json``."""
    entry = {
        "file": file_path,
        "status": status,
        "message": message,
        "output_file": output_file,
    }
    if result is not None:
        entry.update({
            "object_name": result.object_name,
            "object_type": result.object_type.value,
            "statement_count": len(result.statements),
            "warnings": list(result.warnings),
            "parameters": [param.to_dict() for param in result.parameters],
            "referenced_state_entries": [binding.to_dict() for binding in result.referenced_state_entries],
        })
    return entry


def create_result_dictionary(status: str, message: str, stats: dict, results: List[Dict],
                             output_dir: str = None, source_dir: str = None, **kwargs) -> dict:
    """
    Create standardized result dictionary for a batch conversion.

    Args:
        status: Overall conversion status ('success', 'error', 'partial_success')
        message: Human-readable status message
        stats: Conversion statistics dictionary
        results: Per-file entries from :func:`create_query_result`
        output_dir: Output directory path (optional)
        source_dir: Source directory path (optional)
        **kwargs: Additional keys copied into the result

    Returns:
        Standardized result dictionary with aggregated stats and a shape summary
    """
    successful_files = len([r for r in results if r.get('status') in ('success', 'success_with_warnings')])
    failed_files = len([r for r in results if r.get('status') == 'error'])

    shape_summary: Dict[str, int] = {}
    for entry in results:
        shape = entry.get('object_type')
        if shape:
            shape_summary[shape] = shape_summary.get(shape, 0) + 1

    result = {
        "status": status,
        "message": message,
        "stats": {
            **stats,
            "files_successful": successful_files,
            "files_failed": failed_files
        },
        "shape_summary": shape_summary,
        "results": results
    }

    if output_dir:
        result["output_directory"] = output_dir
    if source_dir:
        result["source_directory"] = source_dir
    result.update(kwargs)

    return result
