"""
services/ - Business Logic Layer
================================
Validates input and orchestrates repositories.
"""
