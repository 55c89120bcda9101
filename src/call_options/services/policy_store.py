"""
Policy store client for the Call Options service.

Runs the fixed set of read queries the checks need against the policy
database. Queries are synchronous and short; the engine keeps a pool of
connections sized for concurrent calls and pings them before use so a dropped
connection is replaced instead of failing every following call.
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import String, create_engine, distinct, func, literal, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from call_options.config import Settings
from call_options.models.call_context import is_account_id
from call_options.models.database_models import (
    BlockedPrefixGroup,
    BlockedPrefixUser,
    Did,
    DidToUser,
    GroupPolicy,
    GroupUser,
    PrefixTranslation,
    User,
    UserOptions,
)
from call_options.utils.exceptions import PolicyStoreUnavailable
from call_options.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccountOptions:
    """Option flags of one account."""
    account_id: str
    tenant_id: int
    trunk_delegation: bool
    dynamic_caller_id: bool
    monitored: bool


@dataclass(frozen=True)
class TranslationRule:
    """A prefix translation rule selected for a dialed number."""
    rule_id: int
    prefix: str
    digit_delete: int
    new_prefix: str

    def apply(self, number: str) -> str:
        """Discard the leading digits and prepend the replacement prefix."""
        return f"{self.new_prefix}{number[max(self.digit_delete, 0):]}"


def _account_key(account_id: str) -> int:
    """Convert an account id to the integer key of the account tables."""
    if not is_account_id(account_id):
        raise PolicyStoreUnavailable(f"Not an account id: [{account_id}]")
    return int(account_id)


def _prefix_matches(number: str, prefix_column):
    """Case-insensitive `number LIKE prefix%` with the prefix taken from a column."""
    return func.lower(literal(number, String)).like(func.lower(prefix_column.concat("%")))


class PolicyStore:
    """
    Read-only client of the policy database.

    Every SQLAlchemy error is logged and raised as PolicyStoreUnavailable; the
    calling check decides whether that blocks the call or lets it through.
    """

    def __init__(self, settings: Settings, engine: Optional[Engine] = None):
        """
        Initialize policy store.

        Args:
            settings: Settings snapshot holding the connection parameters
            engine: Pre-built engine (tests pass an in-memory one)
        """
        self.settings = settings
        self.engine = engine
        self.session_maker = sessionmaker(bind=engine) if engine is not None else None

    def init(self) -> None:
        """Create the engine and its connection pool."""
        if self.engine is not None:
            return

        url = self.settings.build_database_url()
        try:
            options = {"pool_pre_ping": True}
            if make_url(url).get_backend_name() != "sqlite":
                options.update(
                    pool_size=self.settings.db_pool_size,
                    max_overflow=self.settings.db_pool_size,
                    pool_recycle=self.settings.db_pool_recycle,
                )

            self.engine = create_engine(url, echo=self.settings.log_level == "DEBUG", **options)
            self.session_maker = sessionmaker(bind=self.engine)
            logger.info("Policy store engine initialized")

        except (SQLAlchemyError, ImportError) as e:
            logger.error(f"Failed to initialize policy store: {e}")
            raise PolicyStoreUnavailable(f"Policy store initialization failed: {str(e)}")

    def close(self) -> None:
        """Close all pooled connections."""
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Policy store connections closed")

    def _all(self, stmt, what: str):
        if self.session_maker is None:
            self.init()

        logger.debug(f"Query ({what}): {stmt}")
        try:
            with self.session_maker() as session:
                return session.execute(stmt).all()
        except SQLAlchemyError as e:
            logger.error(f"Database error while trying to {what}: {e}")
            raise PolicyStoreUnavailable(f"Failed to {what}: {str(e)}")
        except Exception as e:
            logger.error(f"Unexpected error while trying to {what}: {e}")
            raise PolicyStoreUnavailable(f"Failed to {what}: {str(e)}")

    def _first(self, stmt, what: str):
        if self.session_maker is None:
            self.init()

        logger.debug(f"Query ({what}): {stmt}")
        try:
            with self.session_maker() as session:
                return session.execute(stmt).first()
        except SQLAlchemyError as e:
            logger.error(f"Database error while trying to {what}: {e}")
            raise PolicyStoreUnavailable(f"Failed to {what}: {str(e)}")
        except Exception as e:
            logger.error(f"Unexpected error while trying to {what}: {e}")
            raise PolicyStoreUnavailable(f"Failed to {what}: {str(e)}")

    def _scalar(self, stmt, what: str):
        row = self._first(stmt, what)
        return row[0] if row is not None else None

    # Accounts

    def get_account_options(self, account_id: str) -> Optional[AccountOptions]:
        """
        Get the option flags of an account.

        Args:
            account_id: Digits-only account id

        Returns:
            AccountOptions or None when the account has no options row
        """
        stmt = (
            select(
                UserOptions.cid_is_acode,
                UserOptions.rcli,
                UserOptions.monitored,
                User.tenant_id,
            )
            .join(User, User.user_id == UserOptions.user_id)
            .where(User.user_id == _account_key(account_id))
        )
        row = self._first(stmt, "get account options")
        if row is None:
            return None

        cid_is_acode, rcli, monitored, tenant_id = row
        return AccountOptions(
            account_id=account_id,
            tenant_id=tenant_id,
            trunk_delegation=bool(cid_is_acode),
            dynamic_caller_id=bool(rcli),
            monitored=bool(monitored),
        )

    def find_account_in_tenant(self, candidate_id: str, tenant_id: int) -> Optional[str]:
        """
        Find an account by id within a tenant.

        Args:
            candidate_id: Digits-only account id to look for
            tenant_id: Tenant the account must belong to

        Returns:
            Account id as stored or None
        """
        stmt = select(User.user_id).where(
            User.user_id == _account_key(candidate_id),
            User.tenant_id == tenant_id,
        )
        user_id = self._scalar(stmt, "find account in tenant")
        return str(user_id) if user_id is not None else None

    # Numbering

    def find_translation_rule(self, number: str, tenant_id: int) -> Optional[TranslationRule]:
        """
        Find the translation rule with the longest prefix of number.

        Rules with the same prefix length are ordered by id, so the same rule
        wins on every call.

        Args:
            number: Raw dialed number
            tenant_id: Tenant owning the rules

        Returns:
            TranslationRule or None when no prefix matches
        """
        prefix_length = func.length(PrefixTranslation.prefix)
        number_head = func.substr(literal(number, String), 1, prefix_length)
        stmt = (
            select(
                PrefixTranslation.id,
                PrefixTranslation.prefix,
                PrefixTranslation.digit_delete,
                PrefixTranslation.new_prefix,
            )
            .where(
                number_head == PrefixTranslation.prefix,
                prefix_length <= len(number),
                PrefixTranslation.tenant_id == tenant_id,
            )
            .order_by(prefix_length.desc(), PrefixTranslation.id.asc())
            .limit(1)
        )
        row = self._first(stmt, "find translation rule")
        if row is None:
            return None

        rule_id, prefix, digit_delete, new_prefix = row
        return TranslationRule(
            rule_id=rule_id,
            prefix=prefix,
            digit_delete=digit_delete or 0,
            new_prefix=new_prefix or "",
        )

    # Block lists

    def count_groups(self, account_id: str) -> int:
        """Count the distinct groups an account belongs to."""
        stmt = select(func.count(distinct(GroupUser.group_id))).where(
            GroupUser.user_id == _account_key(account_id)
        )
        return self._scalar(stmt, "count groups") or 0

    def count_blocking_groups(self, account_id: str, number: str) -> int:
        """
        Count the account's groups holding a block rule that matches number.

        Args:
            account_id: Digits-only account id
            number: Canonical destination number

        Returns:
            Number of distinct blocking groups
        """
        stmt = (
            select(func.count(distinct(BlockedPrefixGroup.group_id)))
            .join(GroupUser, GroupUser.group_id == BlockedPrefixGroup.group_id)
            .where(
                GroupUser.user_id == _account_key(account_id),
                _prefix_matches(number, BlockedPrefixGroup.prefix),
            )
        )
        return self._scalar(stmt, "count blocking groups") or 0

    def find_user_block(self, account_id: str, number: str) -> Optional[str]:
        """
        Find an account-level block rule that matches number.

        Returns:
            The matching prefix or None
        """
        stmt = (
            select(BlockedPrefixUser.prefix)
            .where(
                BlockedPrefixUser.user_id == _account_key(account_id),
                _prefix_matches(number, BlockedPrefixUser.prefix),
            )
            .order_by(BlockedPrefixUser.prefix)
            .limit(1)
        )
        return self._scalar(stmt, "find user block")

    # Monitoring

    def count_monitored_groups(self, account_id: str) -> int:
        """Count the account's groups with monitoring enabled."""
        stmt = (
            select(func.count(GroupUser.guid))
            .join(GroupPolicy, GroupPolicy.group_id == GroupUser.group_id)
            .where(
                GroupUser.user_id == _account_key(account_id),
                GroupPolicy.monitored == 1,
            )
        )
        return self._scalar(stmt, "count monitored groups") or 0

    def is_account_monitored(self, account_id: str) -> bool:
        """Get the account's own monitoring flag (False when missing)."""
        stmt = select(UserOptions.monitored).where(UserOptions.user_id == _account_key(account_id))
        return bool(self._scalar(stmt, "get account monitoring"))

    # Number pool

    def list_pool_numbers(self, account_id: str, number_prefix: str) -> List[str]:
        """
        List the pool numbers of an account starting with number_prefix.

        Args:
            account_id: Digits-only account id
            number_prefix: Literal prefix the pool numbers must start with

        Returns:
            Pool numbers ordered by value
        """
        stmt = (
            select(Did.did)
            .join(DidToUser, DidToUser.did_id == Did.did_id)
            .where(
                DidToUser.user_id == _account_key(account_id),
                func.substr(Did.did, 1, len(number_prefix)) == number_prefix,
            )
            .order_by(Did.did)
        )
        rows = self._all(stmt, "list pool numbers")
        return [row[0] for row in rows]

    def health_check(self) -> bool:
        """Check the store answers a trivial query."""
        try:
            self._scalar(select(literal(1)), "run health check")
            return True
        except PolicyStoreUnavailable as e:
            logger.error(f"Policy store health check failed: {e}")
            return False
