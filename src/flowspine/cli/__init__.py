"""Command-line front end (``flowspine``)."""
