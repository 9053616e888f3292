"""Step execution engine."""

from .executor import Runner, RunResult

__all__ = ['Runner', 'RunResult']
