"""Command line interface of cafeml."""
