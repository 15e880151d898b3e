"""
Shared helpers: URL parsing, error text formatting, temporary directories,
and cancellable scheduled callbacks.
"""
