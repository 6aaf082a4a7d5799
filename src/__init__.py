# src/__init__.py - v1
"""sheetgate: completion gate between a spreadsheet agent's model and its host.

The model may only finish a task by emitting a submission package that the
gates parse, validate and accept. See ``sheetgate.gates.controller``.
"""

from sheetgate.version import __version__

__all__ = ["__version__"]
