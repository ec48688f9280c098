"""
Approval Kernel

A generic sequential approval engine with:
- Ordered multi-step chains with exactly one current step
- Compare-and-swap transitions safe under concurrent attempts
- All-steps and any-step approval policies
- Pluggable per-workflow-kind business hooks
"""

__version__ = "0.1.0"
