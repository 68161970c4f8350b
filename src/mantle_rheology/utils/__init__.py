"""Utility helpers for runners and the command line."""

from .run_info import print_material_summary, print_point_outputs, print_run_header

__all__ = [
    "print_material_summary",
    "print_point_outputs",
    "print_run_header",
]
