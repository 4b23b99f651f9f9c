"""
Repository layer for identity data access.

Repository modules compose SQLAlchemy queries against the identity schema
and return materialized ORM entities, scalars or counts.
"""
