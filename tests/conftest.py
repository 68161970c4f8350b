"""
Pytest configuration for mantle-rheology tests.

Automatically adds src/ to sys.path so tests can import mantle_rheology
without installing the package or setting PYTHONPATH.
"""

import sys
import os

repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(repo_root, 'src')

if src_path not in sys.path:
    sys.path.insert(0, src_path)
