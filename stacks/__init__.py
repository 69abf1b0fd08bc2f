"""
Stack Programs

Declarative programs available to the runtime, keyed by name.
"""

from stacks import eks_cluster, guestbook

PROGRAMS = {
    eks_cluster.program.name: eks_cluster.program,
    guestbook.program.name: guestbook.program,
}

__all__ = [
    "PROGRAMS",
]
