"""Custodial account provisioning.

A custodial account is a named record whose assets the service holds on
behalf of a user.  This module only creates and looks up the records.
"""

import logging
import re

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payflow.db.models import CustodialAccount
from payflow.exceptions import AccountExistsError, AccountNotFoundError, InvalidPayloadError

logger = logging.getLogger(__name__)

ACCOUNT_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")


class AccountService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_custodial_account(self, name: str) -> CustodialAccount:
        """Create the custodial account ``name``.

        Raises:
            InvalidPayloadError: name is empty or has unsupported characters.
            AccountExistsError: an account with this name already exists.
        """
        name = (name or "").strip()
        if not ACCOUNT_NAME_RE.match(name):
            raise InvalidPayloadError(
                "Account name must be 1-64 characters of letters, digits, '_', '-' or '.'"
            )

        async with self._session_factory() as session:
            existing = await session.execute(
                select(CustodialAccount.id).where(CustodialAccount.name == name)
            )
            if existing.scalar_one_or_none() is not None:
                raise AccountExistsError(f"Custodial account '{name}' already exists")

            account = CustodialAccount(name=name)
            session.add(account)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise AccountExistsError(f"Custodial account '{name}' already exists") from e

        logger.info("Created custodial account %s (%s)", account.name, account.account_id)
        return account

    async def get_account(self, name: str) -> CustodialAccount:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CustodialAccount).where(CustodialAccount.name == name)
            )
            account = result.scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(f"Custodial account '{name}' not found")
        return account

    async def list_accounts(self) -> list[CustodialAccount]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CustodialAccount).order_by(CustodialAccount.created_at, CustodialAccount.name)
            )
            return list(result.scalars().all())
