"""Routing — typed route grammars with a total encode/decode pair.

Patterns are declared against route classes during setup and compiled
into an immutable trie when the owning bundle freezes.
"""
