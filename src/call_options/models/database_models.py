"""
Database models for the Call Options service.

SQLAlchemy ORM mapping of the policy schema maintained by the provisioning
platform. The service only reads these tables; it never creates or migrates
them outside of tests.
"""

from sqlalchemy import Integer, String, SmallInteger, ForeignKey, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class User(Base):
    """
    A billing account.

    The account id is what Asterisk carries as the channel accountcode.
    """

    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column("UserID", Integer, primary_key=True, autoincrement=False)
    tenant_id: Mapped[int] = mapped_column("TenantID", Integer, nullable=False, index=True)


class UserOptions(Base):
    """Per-account option flags."""

    __tablename__ = "options"

    user_id: Mapped[int] = mapped_column(
        "UserID",
        Integer,
        ForeignKey("users.UserID"),
        primary_key=True,
        autoincrement=False,
    )

    # Caller id carries the account id to bill (trunk delegation)
    cid_is_acode: Mapped[int] = mapped_column("cidIsAcode", SmallInteger, nullable=False, default=0)

    # Present a pool number as caller id on domestic calls
    rcli: Mapped[int] = mapped_column("RCLI", SmallInteger, nullable=False, default=0)

    # Record every call of this account
    monitored: Mapped[int] = mapped_column("Monitored", SmallInteger, nullable=False, default=0)


class GroupUser(Base):
    """Membership of an account in a group."""

    __tablename__ = "group_user"

    guid: Mapped[int] = mapped_column("GUID", Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column("UserID", Integer, nullable=False)
    group_id: Mapped[int] = mapped_column("GroupID", Integer, nullable=False)

    __table_args__ = (
        Index("ix_group_user_user_id", "UserID"),
        Index("ix_group_user_group_id", "GroupID"),
    )


class GroupPolicy(Base):
    """Group-level settings shared by all member accounts."""

    __tablename__ = "group_agent"

    group_id: Mapped[int] = mapped_column("GroupID", Integer, primary_key=True, autoincrement=False)
    monitored: Mapped[int] = mapped_column("monitored", SmallInteger, nullable=False, default=0)


class BlockedPrefixGroup(Base):
    """Destination prefix forbidden for a group."""

    __tablename__ = "blocked_prefix_group"

    group_id: Mapped[int] = mapped_column("GroupID", Integer, primary_key=True, autoincrement=False)
    prefix: Mapped[str] = mapped_column("prefix", String(32), primary_key=True)


class BlockedPrefixUser(Base):
    """Destination prefix forbidden for a single account."""

    __tablename__ = "blocked_prefix_user"

    user_id: Mapped[int] = mapped_column("UserID", Integer, primary_key=True, autoincrement=False)
    prefix: Mapped[str] = mapped_column("prefix", String(32), primary_key=True)


class PrefixTranslation(Base):
    """
    Rewrites a dialed prefix into international form.

    The first digit_delete characters of the dialed number are discarded and
    new_prefix is put in front of what remains.
    """

    __tablename__ = "prefix_in"

    id: Mapped[int] = mapped_column("id", Integer, primary_key=True)
    prefix: Mapped[str] = mapped_column("prefix", String(32), nullable=False)
    digit_delete: Mapped[int] = mapped_column("digit_delete", Integer, nullable=False, default=0)
    new_prefix: Mapped[str] = mapped_column("new_prefix", String(32), nullable=False, default="")
    tenant_id: Mapped[int] = mapped_column("TenantID", Integer, nullable=False, default=1)


class Did(Base):
    """A number that can be presented as caller id."""

    __tablename__ = "dids"

    did_id: Mapped[int] = mapped_column("DidID", Integer, primary_key=True)
    did: Mapped[str] = mapped_column("did", String(32), nullable=False, unique=True)


class DidToUser(Base):
    """Assignment of a pool number to an account."""

    __tablename__ = "didToUser"

    did_id: Mapped[int] = mapped_column("DidID", Integer, ForeignKey("dids.DidID"), primary_key=True)
    user_id: Mapped[int] = mapped_column("userid", Integer, primary_key=True, autoincrement=False)
