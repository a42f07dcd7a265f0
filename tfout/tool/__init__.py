"""Command line tools for tfout."""
