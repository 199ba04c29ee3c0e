"""Core infrastructure: errors, logging, cancellation and progress reporting."""
