"""
Referral chain resolution.

Walks parent-code pointers from a participant up to its inviters.
Two strategies share one contract: per-hop lookups and a single
recursive CTE.
"""

from abc import ABC, abstractmethod

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.config.settings import settings
from unifarm.repositories.user_repository import UserRepository
from unifarm.services.referral.config import MAX_REFERRAL_DEPTH


class ChainResolver(ABC):
    """
    Resolves the inviter chain of a participant.

    The chain is ordered nearest-first and never longer than
    ``max_depth``. A repeated ancestor is logged as a cycle; the walk then
    either continues to the depth cap or stops, depending on
    ``stop_on_cycle``. A parent code without an owner truncates the chain.
    """

    def __init__(
        self,
        session: AsyncSession,
        max_depth: int = MAX_REFERRAL_DEPTH,
        stop_on_cycle: bool | None = None,
    ) -> None:
        """
        Initialize chain resolver.

        Args:
            session: Async database session
            max_depth: Maximum number of ancestors to return
            stop_on_cycle: Stop at the first repeated ancestor
                (defaults to ``settings.referral_stop_on_cycle``)
        """
        self.session = session
        self.max_depth = min(max_depth, MAX_REFERRAL_DEPTH)
        self.stop_on_cycle = (
            settings.referral_stop_on_cycle
            if stop_on_cycle is None
            else stop_on_cycle
        )

    @abstractmethod
    async def resolve_chain(self, user_id: int) -> list[int]:
        """
        Resolve ancestor IDs of a participant.

        Args:
            user_id: Source participant ID

        Returns:
            Ancestor IDs, nearest first (empty for unknown participants)
        """

    def _accept(self, user_id: int, ancestor_id: int, visited: set[int]) -> bool:
        """Track visits; return False when the walk must stop here."""
        if ancestor_id in visited:
            logger.warning(
                "Cycle detected in referral chain",
                extra={
                    "user_id": user_id,
                    "ancestor_id": ancestor_id,
                    "stop_on_cycle": self.stop_on_cycle,
                },
            )
            if self.stop_on_cycle:
                return False
        visited.add(ancestor_id)
        return True


class IterativeChainResolver(ChainResolver):
    """One lookup per hop, O(depth) round trips."""

    def __init__(
        self,
        session: AsyncSession,
        max_depth: int = MAX_REFERRAL_DEPTH,
        stop_on_cycle: bool | None = None,
    ) -> None:
        super().__init__(session, max_depth, stop_on_cycle)
        self.user_repo = UserRepository(session)

    async def resolve_chain(self, user_id: int) -> list[int]:
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            return []

        chain: list[int] = []
        visited = {user.id}
        current = user

        while len(chain) < self.max_depth and current.parent_ref_code:
            inviter = await self.user_repo.get_by_ref_code(
                current.parent_ref_code
            )
            if inviter is None:
                logger.warning(
                    "Broken referral link, chain truncated",
                    extra={
                        "user_id": user_id,
                        "parent_ref_code": current.parent_ref_code,
                        "depth": len(chain),
                    },
                )
                break

            if not self._accept(user_id, inviter.id, visited):
                break

            chain.append(inviter.id)
            current = inviter

        logger.debug(
            "Referral chain resolved",
            extra={"user_id": user_id, "chain_length": len(chain)},
        )
        return chain


class RecursiveChainResolver(ChainResolver):
    """Single ``WITH RECURSIVE`` query, O(1) round trips."""

    _CHAIN_QUERY = text("""
        WITH RECURSIVE referral_chain AS (
            SELECT u.id, u.parent_ref_code, 0 AS depth
            FROM users u
            WHERE u.id = :user_id

            UNION ALL

            SELECT p.id, p.parent_ref_code, rc.depth + 1 AS depth
            FROM referral_chain rc
            INNER JOIN users p ON p.ref_code = rc.parent_ref_code
            WHERE rc.depth < :max_depth
        )
        SELECT id, depth
        FROM referral_chain
        WHERE depth > 0
        ORDER BY depth ASC
    """)

    async def resolve_chain(self, user_id: int) -> list[int]:
        # UNION ALL with a depth bound terminates on cyclic graphs
        result = await self.session.execute(
            self._CHAIN_QUERY,
            {"user_id": user_id, "max_depth": self.max_depth},
        )
        rows = result.all()

        chain: list[int] = []
        visited = {user_id}
        for row in rows:
            if not self._accept(user_id, row.id, visited):
                break
            chain.append(row.id)

        logger.debug(
            "Referral chain resolved (CTE)",
            extra={"user_id": user_id, "chain_length": len(chain)},
        )
        return chain
