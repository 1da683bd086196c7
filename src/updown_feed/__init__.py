"""Client-side social feed state for the UpDown fitness app."""

__version__ = "0.1.0"
