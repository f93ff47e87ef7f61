"""Client-side state core keeping conversation threads in sync with the gateway."""

__version__ = "0.1.0"
