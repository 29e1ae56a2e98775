"""Dependency-ordered staged sync of GitOps-managed operator stacks."""

__version__ = "0.1.0"
