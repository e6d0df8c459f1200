"""
Background worker that drains the deleted-files backlog.

Pending deletion records are read from the database in pages, sent to the
remote deletion endpoint in concurrent chunks, and removed from the backlog
only once the endpoint confirms them.
"""
