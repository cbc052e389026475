"""
Referral graph service.

Registration, one-shot inviter binding, the ancestor-path cache and the
per-level structure of a participant's subtree.
"""

import secrets
import string
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from unifarm.config.constants import (
    REF_CODE_LENGTH,
    REF_CODE_MAX_ATTEMPTS,
    REF_CODE_PREFIX,
)
from unifarm.models.user import User
from unifarm.repositories.referral_edge_repository import ReferralEdgeRepository
from unifarm.repositories.transaction_repository import TransactionRepository
from unifarm.repositories.user_repository import UserRepository
from unifarm.services.base_service import BaseService, transaction
from unifarm.services.referral.chain_resolver import (
    ChainResolver,
    IterativeChainResolver,
)
from unifarm.services.referral.config import MAX_REFERRAL_DEPTH
from unifarm.utils.exceptions import InternalError, NotFoundError, ValidationError


_REF_CODE_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class BindResult:
    """Outcome of an inviter binding attempt."""

    bound: bool
    parent_ref_code: str | None
    already_bound: bool = False


@dataclass
class LevelStats:
    """Subtree size and received rewards for one level."""

    level: int
    count: int = 0
    total_rewards: dict[str, Decimal] = field(default_factory=dict)


def generate_ref_code() -> str:
    """Generate a random invitation code (``ref_`` + 8 chars)."""
    suffix = "".join(
        secrets.choice(_REF_CODE_ALPHABET) for _ in range(REF_CODE_LENGTH)
    )
    return f"{REF_CODE_PREFIX}{suffix}"


class ReferralGraphService(BaseService):
    """Service for the invitation graph."""

    _SUBTREE_QUERY = text("""
        WITH RECURSIVE subtree AS (
            SELECT u.id, u.ref_code, 0 AS depth, ARRAY[u.id] AS path
            FROM users u
            WHERE u.id = :owner_id

            UNION ALL

            SELECT c.id, c.ref_code, s.depth + 1 AS depth, s.path || c.id
            FROM subtree s
            INNER JOIN users c ON c.parent_ref_code = s.ref_code
            WHERE s.depth < :max_depth AND NOT c.id = ANY(s.path)
        )
        SELECT depth AS level, COUNT(*) AS count
        FROM subtree
        WHERE depth > 0
        GROUP BY depth
        ORDER BY depth
    """)

    def __init__(
        self,
        session: AsyncSession,
        resolver: ChainResolver | None = None,
        use_cte: bool = False,
    ) -> None:
        """
        Initialize referral graph service.

        Args:
            session: Async database session
            resolver: Chain resolver (per-hop by default)
            use_cte: Count subtree levels with one recursive query
        """
        super().__init__(session)
        self.resolver = resolver or IterativeChainResolver(session)
        self.use_cte = use_cte
        self.user_repo = UserRepository(session)
        self.edge_repo = ReferralEdgeRepository(session)
        self.transaction_repo = TransactionRepository(session)

    @transaction
    async def register_user(
        self,
        username: str | None = None,
        telegram_id: int | None = None,
        inviter_code: str | None = None,
    ) -> User:
        """
        Create a participant with a unique invitation code.

        An invalid inviter code does not block registration; the
        participant is created unbound and the rejection is logged.

        Args:
            username: Display name
            telegram_id: External identity
            inviter_code: Optional inviter's code

        Returns:
            Created user
        """
        ref_code = await self._unique_ref_code()
        user = await self.user_repo.create(
            username=username,
            telegram_id=telegram_id,
            ref_code=ref_code,
        )

        if inviter_code:
            try:
                await self._bind(user, inviter_code)
            except (ValidationError, NotFoundError) as e:
                self.logger.warning(
                    "Inviter code rejected at registration",
                    extra={
                        "user_id": user.id,
                        "inviter_code": inviter_code,
                        "error": e.message,
                    },
                )

        self.logger.info(
            "User registered",
            extra={"user_id": user.id, "ref_code": ref_code},
        )
        return user

    @transaction
    async def bind_inviter(self, user_id: int, parent_ref_code: str) -> BindResult:
        """
        Bind an inviter code once.

        Args:
            user_id: Participant ID
            parent_ref_code: Inviter's code

        Returns:
            BindResult; an existing binding is reported, never replaced

        Raises:
            NotFoundError: Unknown participant or inviter code
            ValidationError: Self-referral or a binding that closes a cycle
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", user_id=user_id)
        return await self._bind(user, parent_ref_code)

    async def _bind(self, user: User, parent_ref_code: str) -> BindResult:
        if user.parent_ref_code:
            return BindResult(
                bound=False,
                parent_ref_code=user.parent_ref_code,
                already_bound=True,
            )

        if parent_ref_code == user.ref_code:
            raise ValidationError("Self-referral is not allowed", user_id=user.id)

        inviter = await self.user_repo.get_by_ref_code(parent_ref_code)
        if inviter is None:
            raise NotFoundError(
                f"Invitation code {parent_ref_code} not found",
                parent_ref_code=parent_ref_code,
            )

        inviter_chain = await self.resolver.resolve_chain(inviter.id)
        if user.id in inviter_chain:
            raise ValidationError(
                "Binding would create a referral cycle",
                user_id=user.id,
                inviter_id=inviter.id,
            )

        updated = await self.user_repo.bind_parent_code(user.id, parent_ref_code)
        if updated == 0:
            # Lost a race with a concurrent bind
            await self.session.refresh(user)
            return BindResult(
                bound=False,
                parent_ref_code=user.parent_ref_code,
                already_bound=True,
            )

        user.parent_ref_code = parent_ref_code
        await self.edge_repo.invalidate(user.id)

        self.logger.info(
            "Inviter bound",
            extra={
                "user_id": user.id,
                "inviter_id": inviter.id,
                "parent_ref_code": parent_ref_code,
            },
        )
        return BindResult(bound=True, parent_ref_code=parent_ref_code)

    async def _unique_ref_code(self) -> str:
        for _ in range(REF_CODE_MAX_ATTEMPTS):
            code = generate_ref_code()
            if not await self.user_repo.ref_code_exists(code):
                return code
        raise InternalError("Could not generate a unique invitation code")

    async def get_ancestor_path(self, user_id: int) -> list[int]:
        """
        Get ancestor IDs from the cache, building the entry when missing.

        Args:
            user_id: Participant ID

        Returns:
            Ancestor IDs, nearest first

        Raises:
            NotFoundError: Unknown participant
        """
        edge = await self.edge_repo.get_by_participant(user_id)
        if edge is not None:
            return list(edge.ancestor_path)
        return await self.rebuild_edges(user_id)

    @transaction
    async def rebuild_edges(self, user_id: int) -> list[int]:
        """
        Recompute and store the cached path of a participant.

        Args:
            user_id: Participant ID

        Returns:
            Fresh ancestor IDs, nearest first

        Raises:
            NotFoundError: Unknown participant
        """
        if not await self.user_repo.exists(id=user_id):
            raise NotFoundError(f"User {user_id} not found", user_id=user_id)

        path = await self.resolver.resolve_chain(user_id)
        await self.edge_repo.upsert(user_id, path)

        self.logger.debug(
            "Referral edge rebuilt",
            extra={"user_id": user_id, "level": len(path)},
        )
        return path

    async def get_referral_structure(self, owner_id: int) -> list[LevelStats]:
        """
        Count participants per level below the owner and sum the rewards
        the owner received from each level.

        Args:
            owner_id: Participant at the root of the subtree

        Returns:
            LevelStats for levels 1..20

        Raises:
            NotFoundError: Unknown participant
        """
        owner = await self.user_repo.get_by_id(owner_id)
        if owner is None:
            raise NotFoundError(f"User {owner_id} not found", user_id=owner_id)

        if self.use_cte:
            counts = await self._count_levels_cte(owner_id)
        else:
            counts = await self._count_levels_bfs(owner)

        rewards = await self.transaction_repo.sum_referral_rewards_by_level(
            owner_id
        )

        return [
            LevelStats(
                level=level,
                count=counts.get(level, 0),
                total_rewards=rewards.get(level, {}),
            )
            for level in range(1, MAX_REFERRAL_DEPTH + 1)
        ]

    async def _count_levels_cte(self, owner_id: int) -> dict[int, int]:
        result = await self.session.execute(
            self._SUBTREE_QUERY,
            {"owner_id": owner_id, "max_depth": MAX_REFERRAL_DEPTH},
        )
        return {row.level: row.count for row in result.all()}

    async def _count_levels_bfs(self, owner: User) -> dict[int, int]:
        counts: dict[int, int] = {}
        visited = {owner.id}
        frontier = [owner.ref_code]

        for level in range(1, MAX_REFERRAL_DEPTH + 1):
            invitees = await self.user_repo.get_invitees(frontier)
            fresh = [(uid, code) for uid, code in invitees if uid not in visited]
            if not fresh:
                break
            visited.update(uid for uid, _ in fresh)
            counts[level] = len(fresh)
            frontier = [code for _, code in fresh]

        return counts
