"""
UniFiles Core - identity, session, access and realtime sync for the portal.

Three disjoint classes of principals (Student, Admin, CEO) log in against
role-partitioned record stores and then watch and maintain records that
change concurrently across several open views.

Architecture:
    ┌────────────┐   ┌──────────────┐   ┌──────────────┐
    │ Credential │──▶│   Identity   │──▶│   Session    │
    │            │   │   Resolver   │   │    Store     │
    └────────────┘   └──────┬───────┘   └──────┬───────┘
                            │ LoginLogs        │
                            ▼                  ├──────────────┐
                   ┌─────────────────┐         ▼              ▼
                   │  Record Store   │   ┌───────────┐  ┌───────────┐
                   │ (memory/sqlite) │◀──│  Record   │  │  Access   │
                   └────────┬────────┘   │  Mutator  │  │   Gate    │
                            │ snapshots  └───────────┘  └───────────┘
                            ▼
                   ┌─────────────────┐   ┌───────────┐
                   │   Sync Engine   │──▶│ LiveView  │
                   └─────────────────┘   └───────────┘

Invariants:
    - Exactly one Session per client context, or none
    - Sessions and identities are replaced wholesale, never mutated
    - Snapshot delivery per subscription is strictly version-increasing
    - A role-mismatched navigation destroys the Session (fail-closed)

How to change safely:
    - Partition order is part of the login contract (Student, Admin, CEO)
    - Keep the session snapshot layout backward compatible or bump
      SESSION_SCHEMA_VERSION
"""

from ._version import __version__

__all__ = ["__version__"]
