"""SQLite persistence for matches, missions, proofs, reputation and review items.

Repository modules take an open cursor; transaction boundaries belong to
:mod:`penpal_server.db.connection` and the service layer.
"""
