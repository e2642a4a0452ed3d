"""resinstack - dynamic layer height optimization for resin printer projects."""

__version__ = "0.1.0"
