"""
Audio category subsystem.

Two-level category tree for the audio library: structural validation,
mutations with cascade/force semantics, consistency diagnostics, legacy
``subject`` reconciliation and a read-through query cache.
"""

__version__ = "0.1.0"
