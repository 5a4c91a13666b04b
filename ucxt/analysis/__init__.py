"""Whole-image analyses run once after decoding."""

from .flags import FlagUsage, FlagUsageViews, collect_flag_usage
from .function_index import FunctionIndex, FunctionInfo, FunctionKind, build_function_index
from .hierarchy import ClassHierarchy, infer_class_hierarchy

__all__ = [
    "ClassHierarchy",
    "FlagUsage",
    "FlagUsageViews",
    "FunctionIndex",
    "FunctionInfo",
    "FunctionKind",
    "build_function_index",
    "collect_flag_usage",
    "infer_class_hierarchy",
]
