"""Operation primitives executed on behalf of the model."""

from .executor import EXCLUDED_DIR_NAMES, OperationExecutor
from .lint import Linter
from .paths import expand_braces, resolve_path

__all__ = [
    "EXCLUDED_DIR_NAMES",
    "Linter",
    "OperationExecutor",
    "expand_braces",
    "resolve_path",
]
