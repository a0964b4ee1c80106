"""
Core pool, swap and routing logic.

Submodules are imported directly (``src.core.pool``, ``src.core.router``);
this package does not re-export them because ``src.state`` depends on
``src.core.errors`` and ``src.core.config``.
"""
