"""Core primitives shared by the reconciler and the retention strategy."""
