"""
Scheduling internals: task nodes, tree building, orchestration and renderers.

Import from the subpackages; the public API lives in ``dynamictaskqueue``.
"""
