"""
Permission management feature module.

Persisted permission entities, their store, validators and the manager that
keeps names, normalized names and concurrency stamps consistent.
"""
