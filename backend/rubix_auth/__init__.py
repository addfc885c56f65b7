"""Authorization and session-lifecycle core for the Rubix solver app."""

__version__ = "0.1.0"
