from __future__ import annotations

"""Repository interface contracts.

The control plane depends on these Protocols instead of concrete persistence
implementations.

Contract guidelines
-------------------

- All methods are async.
- Implementations must not leak SQLAlchemy sessions/transactions to callers.
- State changes that guard an invariant are *conditional*:

  - ``PipelineRepository.create`` refuses a second non-terminal pipeline for
    the same (user, workspace) and raises ``ConflictError``;
  - ``PipelineRepository.update`` only applies when the stored status is one
    of the expected statuses;
  - ``ApprovalRepository.resolve`` only applies to a pending request;
  - ``UsageRepository.increment`` is additive, never read-modify-write.

- Resonance entries are append-only. Documents are only changed in place
  through their status and metadata.
"""

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from ..schemas.domain import (
    Agent,
    ApprovalRequest,
    ApprovalStatus,
    BudgetRule,
    Document,
    DocumentKind,
    Identity,
    Pipeline,
    PipelineStatus,
    ResonanceEntry,
    UsageCounter,
    Workspace,
)


class DirectoryRepository(Protocol):
    """Identities, workspaces and agents.

    These records are owned by account linking and configuration screens; the
    control plane reads them and only writes the agent resonance score.
    """

    async def find_identity(self, handle: str) -> Optional[Identity]:
        """Resolve an external chat handle to an identity, or None."""
        ...

    async def active_workspace(self, user_id: str) -> Optional[Workspace]:
        """Return the most recently created workspace owned by the user."""
        ...

    async def active_agent(self, user_id: str) -> Optional[Agent]:
        """Return the most recently created active agent owned by the user."""
        ...

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        ...

    async def adjust_resonance_score(self, agent_id: str, delta: int) -> None:
        """Add ``delta`` to the agent's resonance score, clamped to 0..100."""
        ...

    async def add_identity(self, identity: Identity) -> None:
        ...

    async def add_workspace(self, workspace: Workspace) -> None:
        ...

    async def add_agent(self, agent: Agent) -> None:
        ...


class DocumentRepository(Protocol):
    """Workspace documents (media references, pipeline projects and tasks)."""

    async def create(self, document: Document) -> None:
        ...

    async def list(self, workspace_id: str, *, kind: DocumentKind, limit: int = 10) -> list[Document]:
        """List documents of a kind, newest first."""
        ...

    async def count_open(self, workspace_id: str, *, kind: DocumentKind) -> int:
        """Count documents of a kind whose status is not closed (done, failed, cancelled)."""
        ...

    async def update(
        self,
        document_id: str,
        *,
        status: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        """
        Set the status and merge ``metadata`` into the stored metadata.

        Returns:
            True when the document exists.
        """
        ...


class PipelineRepository(Protocol):
    """Persist pipelines and their guarded state transitions."""

    async def create(self, pipeline: Pipeline) -> Pipeline:
        """
        Insert a pipeline if no non-terminal pipeline exists for its
        (user, workspace) pair.

        Raises:
            ConflictError: another non-terminal pipeline exists; ``existing``
                carries it when it can be loaded.
        """
        ...

    async def get(self, pipeline_id: str) -> Optional[Pipeline]:
        ...

    async def active_for(self, user_id: str, workspace_id: str) -> Optional[Pipeline]:
        """Return the non-terminal pipeline of the pair, if any."""
        ...

    async def find_recent(self, request_key: str, *, since: datetime) -> Optional[Pipeline]:
        """Return the newest pipeline with this request key created at or after ``since``."""
        ...

    async def update(
        self,
        pipeline_id: str,
        *,
        expected: Sequence[PipelineStatus],
        **changes: Any,
    ) -> Optional[Pipeline]:
        """
        Apply ``changes`` only if the stored status is in ``expected``.

        Returns:
            The updated pipeline, or None when the pipeline does not exist or
            its status did not match.
        """
        ...


class ApprovalRepository(Protocol):
    """Store approval requests and their single resolution."""

    async def create(self, approval: ApprovalRequest) -> None:
        ...

    async def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        ...

    async def resolve(self, approval_id: str, *, status: ApprovalStatus, decided_by: Optional[str]) -> bool:
        """
        Resolve a pending approval.

        Returns:
            True when the request was pending and is now resolved, False when
            it was already resolved (or does not exist).
        """
        ...

    async def list_pending(self, workspace_id: str, limit: int = 50) -> list[ApprovalRequest]:
        """List pending approvals, oldest first."""
        ...


class UsageRepository(Protocol):
    """Per-workspace, per-period usage counters."""

    async def increment(self, workspace_id: str, period: str, *, tokens: int, cost_usd: float) -> None:
        """Atomically add to the counters of ``(workspace_id, period)``."""
        ...

    async def get(self, workspace_id: str, period: str) -> UsageCounter:
        """Return the counter, zeroed when nothing was recorded yet."""
        ...


class BudgetRuleRepository(Protocol):
    async def list_active(self, workspace_id: str) -> list[BudgetRule]:
        ...

    async def add(self, rule: BudgetRule) -> None:
        ...


class ResonanceRepository(Protocol):
    """Append-only store of workspace lessons."""

    async def append(self, entry: ResonanceEntry) -> None:
        ...

    async def search(self, workspace_id: str, terms: Sequence[str], limit: int = 50) -> list[ResonanceEntry]:
        """Return entries whose topic or content contains any of ``terms`` (case-insensitive)."""
        ...

    async def with_embeddings(self, workspace_id: str, limit: int = 500) -> list[ResonanceEntry]:
        """Return entries that carry an embedding vector."""
        ...
