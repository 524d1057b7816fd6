"""
Services
========

Edge function handlers and the outbound clients they use.
"""
