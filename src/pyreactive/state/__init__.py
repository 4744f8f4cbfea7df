"""State/store layer.

This package owns the reactive state tree: root containers, the write lock,
change tracking, watcher matching and state update application. Nothing
outside it writes to the tree directly.
"""
