"""Repository interfaces and SQL implementations for control plane persistence.

The repository layer is the persistence boundary of the control plane.

Responsibilities
----------------

- Provide async repository interfaces (Protocols) the control plane depends on.
- Persist:

  - the directory (identities, workspaces, agents),
  - documents (media references and tasks),
  - pipelines and their guarded transitions,
  - approval requests and their single resolution,
  - per-period usage counters and budget rules,
  - resonance entries (append-only).

Design notes
------------

Everything above the repositories is written against the interfaces so it
runs on the async SQLAlchemy implementation in ``repos.sql`` as well as on
in-memory fakes in unit tests. Invariants that must survive restarts and
multiple instances (one active pipeline per user and workspace, single
approval resolution, additive usage) are enforced by the store, never by
process memory.
"""

from .interfaces import (
    ApprovalRepository,
    BudgetRuleRepository,
    DirectoryRepository,
    DocumentRepository,
    PipelineRepository,
    ResonanceRepository,
    UsageRepository,
)

__all__ = [
    "ApprovalRepository",
    "BudgetRuleRepository",
    "DirectoryRepository",
    "DocumentRepository",
    "PipelineRepository",
    "ResonanceRepository",
    "UsageRepository",
]
