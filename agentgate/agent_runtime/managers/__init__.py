"""Command handlers for the agent runtime.

Managers operate on the in-memory registry and raise domain exceptions
(``LookupError`` / ``RuntimeError`` subclasses), never HTTP exceptions --
that translation is the router's responsibility.
"""
