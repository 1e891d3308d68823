"""Mock fungible token provisioning.

Seeds placeholder token definitions so local and staging environments
have something to transact with.  Re-running is safe: symbols that
already exist are skipped.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payflow.db.models import Token

logger = logging.getLogger(__name__)

# Display names for well-known symbols; anything else gets a generic name.
KNOWN_TOKENS: dict[str, tuple[str, int]] = {
    "USDC": ("USD Coin (mock)", 6),
    "USDT": ("Tether USD (mock)", 6),
    "HBAR": ("Hedera (mock)", 8),
}


class TokenService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_mock_tokens(self, symbols: list[str]) -> list[Token]:
        """Insert mock tokens for ``symbols`` that don't exist yet.

        Returns the tokens created by this call.
        """
        wanted = list(dict.fromkeys(s.upper() for s in symbols))
        async with self._session_factory() as session:
            result = await session.execute(select(Token.symbol).where(Token.symbol.in_(wanted)))
            existing = set(result.scalars().all())

            created: list[Token] = []
            for symbol in wanted:
                if symbol in existing:
                    continue
                name, decimals = KNOWN_TOKENS.get(symbol, (f"{symbol} (mock)", 6))
                token = Token(symbol=symbol, name=name, decimals=decimals, is_mock=True)
                session.add(token)
                created.append(token)
            await session.commit()

        if existing:
            logger.info("Mock tokens already present: %s", ", ".join(sorted(existing)))
        if created:
            logger.info("Created mock tokens: %s", ", ".join(t.symbol for t in created))
        return created

    async def list_tokens(self) -> list[Token]:
        async with self._session_factory() as session:
            result = await session.execute(select(Token).order_by(Token.symbol))
            return list(result.scalars().all())
