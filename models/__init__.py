"""
models/ - Domain Models
=======================
Dataclass entities. Everything persisted implements the `Identifiable` capability.
"""
