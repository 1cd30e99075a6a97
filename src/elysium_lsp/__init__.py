"""Language server for C macro conventions (hooks and init targets)."""

__version__ = "0.1.0"
