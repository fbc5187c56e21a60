"""Local action server: run a command-line tool per request in a throwaway directory."""

__version__ = "1.0.0"
