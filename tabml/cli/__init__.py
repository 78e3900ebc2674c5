# tabml/cli/__init__.py

"""Command line entry points: one per example program, plus the server."""
