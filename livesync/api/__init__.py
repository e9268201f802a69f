"""API objects — the declarative state the reconciler reads and writes.

Every object is a plain dataclass so that equality is structural: two
specs or statuses compare equal iff all of their fields do.
"""
