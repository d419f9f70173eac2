"""
Services package: in-memory conversation sessions, their sweep schedule and
the per-turn staging cache for uploaded files.
"""
