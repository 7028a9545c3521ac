"""
db/ - Database Layer
====================
Transactional resources, the PostgreSQL connection pool, schema initialization
and the persistence error taxonomy.
This layer is the lowest in the architecture and has no dependencies on other layers.
"""
