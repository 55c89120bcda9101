"""
Pytest configuration and fixtures for Call Options service tests.
"""

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import sessionmaker

from call_options.config import Settings
from call_options.models.database_models import (
    Base,
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
from call_options.services.policy_store import PolicyStore


@pytest.fixture
def test_settings():
    """Settings for testing, independent of any .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        recording_path="/var/spool/asterisk/monitor",
        recording_host="LEA-TEST",
        recording_extension="wav",
        domestic_prefix="33",
        pool_number_prefix="0",
        translation_tenant_id=1,
    )


@pytest.fixture
def engine():
    """In-memory SQLite engine holding the policy schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """Provide a database session for seeding."""
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(test_settings, engine):
    """Policy store bound to the in-memory engine."""
    return PolicyStore(test_settings, engine=engine)


class PolicySeeder:
    """Helper writing policy reference data."""

    def __init__(self, session):
        self.session = session

    def account(self, user_id, tenant_id=1, trunk_delegation=False, dynamic_caller_id=False, monitored=False):
        self.session.add(User(user_id=user_id, tenant_id=tenant_id))
        self.session.add(
            UserOptions(
                user_id=user_id,
                cid_is_acode=int(trunk_delegation),
                rcli=int(dynamic_caller_id),
                monitored=int(monitored),
            )
        )
        self.session.commit()

    def group(self, group_id, monitored=False):
        self.session.add(GroupPolicy(group_id=group_id, monitored=int(monitored)))
        self.session.commit()

    def membership(self, user_id, group_id):
        self.session.add(GroupUser(user_id=user_id, group_id=group_id))
        self.session.commit()

    def group_block(self, group_id, prefix):
        self.session.add(BlockedPrefixGroup(group_id=group_id, prefix=prefix))
        self.session.commit()

    def user_block(self, user_id, prefix):
        self.session.add(BlockedPrefixUser(user_id=user_id, prefix=prefix))
        self.session.commit()

    def translation(self, prefix, digit_delete, new_prefix, tenant_id=1, rule_id=None):
        rule = PrefixTranslation(
            prefix=prefix,
            digit_delete=digit_delete,
            new_prefix=new_prefix,
            tenant_id=tenant_id,
        )
        if rule_id is not None:
            rule.id = rule_id
        self.session.add(rule)
        self.session.commit()

    def pool_number(self, user_id, number):
        did = Did(did=number)
        self.session.add(did)
        self.session.flush()
        self.session.add(DidToUser(did_id=did.did_id, user_id=user_id))
        self.session.commit()


@pytest.fixture
def seed(db):
    """Seeder for policy reference data."""
    return PolicySeeder(db)
