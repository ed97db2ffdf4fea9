"""
lexgate -- Access Control for Legal Practice Management
=======================================================

Decides which cases, clients and tasks an employee of a law or accounting
practice may see, and manages the roles and permissions that govern what
they may do.  Provides:

* hierarchy-based data visibility with a recorded access path per record
  (Own / Team / All data scopes),
* role-based access control with a seeded permission catalog, system
  roles, expiring assignments and deny-wins permission resolution,
* an append-only, hash-chained audit trail of every administrative
  mutation.

Start with ``lexgate.engine.AccessControlEngine``.
"""

__version__ = "0.1.0"
