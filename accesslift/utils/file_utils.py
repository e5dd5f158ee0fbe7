"""
Common file utilities used across the application.
Consolidates query-file discovery, JSON reading and writing.
"""
import json
import os
from pathlib import Path
from typing import Any, Iterable, List

# Extractor side files that sit next to the query files but are not queries
SIDE_FILES = ('column_types.json', 'control_bindings.json', 'conversion_summary.json')


def find_query_files(input_path: str, exclude_names: Iterable[str] = SIDE_FILES,
                     exclude_dirs: List[str] = None) -> List[str]:
    """
    Find all extracted query definition files (``*.json``) in a given path.

    Args:
        input_path: Path to a directory or a single JSON file
        exclude_names: File names that are never query definitions
        exclude_dirs: List of directory names to exclude (e.g., ['converted', 'logs'])

    Returns:
        Sorted list of paths to query files
    """
    if exclude_dirs is None:
        exclude_dirs = ['converted', 'logs', '__pycache__']
    excluded = {name.lower() for name in exclude_names}

    def _is_query_file(name: str) -> bool:
        lowered = name.lower()
        return lowered.endswith('.json') and lowered not in excluded and not lowered.startswith('manual_review_required_')

    query_files = []
    normalized_input_path = os.path.normpath(input_path)

    if os.path.isdir(normalized_input_path):
        for root, dirs, files in os.walk(normalized_input_path):
            dirs[:] = [d for d in dirs if d not in exclude_dirs]
            for file in files:
                if _is_query_file(file):
                    query_files.append(os.path.join(root, file))
    elif os.path.isfile(normalized_input_path) and _is_query_file(os.path.basename(normalized_input_path)):
        query_files = [normalized_input_path]

    return sorted(query_files)


def read_json_file(file_path: str | Path) -> Any:
    """Parsed JSON content of *file_path*; raises on unreadable or invalid files."""
    with open(file_path, 'r', encoding='utf-8-sig') as f:
        return json.load(f)


def write_file_content(file_path: str | Path, content: str):
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(content)
