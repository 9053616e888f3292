"""
Expression module.
Implements ${{ }} extraction and evaluation.
"""

from .expressions import evaluate, extract_expressions

__all__ = ['evaluate', 'extract_expressions']
