"""
repositories/ - Data Access Layer
==================================
`entity_repo` holds the generic hierarchical insert; the other modules map
concrete domain entities onto it.
"""
