"""SplitSmart: split a restaurant bill between friends."""

__version__ = "0.1.0"
