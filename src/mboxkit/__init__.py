"""mboxkit - mbox archive ingestion, threading, splitting and merging."""

__version__ = "0.1.0"
