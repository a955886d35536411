"""A small Tk browser that injects a user script into matching pages."""

__version__ = "0.1.0"
