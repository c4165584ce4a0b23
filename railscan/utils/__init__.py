"""Utility helpers for the scanner."""

from .code import DEFAULT_IGNORES, iter_code_files
from .fileio import SkippedFile, read_source_file, read_yaml_file
from .globs import first_match, match_path

__all__ = [
    "DEFAULT_IGNORES",
    "SkippedFile",
    "first_match",
    "iter_code_files",
    "match_path",
    "read_source_file",
    "read_yaml_file",
]
