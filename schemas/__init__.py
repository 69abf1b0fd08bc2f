"""
Reporting Schemas

Serializable views of resolved stacks.
"""

from schemas.stack_state import ExportRecord, NodeSnapshot, SECRET_MASK

__all__ = [
    "ExportRecord",
    "NodeSnapshot",
    "SECRET_MASK",
]
