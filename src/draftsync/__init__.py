"""Draft-based editing of YAML configuration stored in a shared git repository."""

__version__ = "0.1.0"
