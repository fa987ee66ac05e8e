"""Asset handler protocol — per-asset liquidity provisioning."""
from typing import Protocol

from ..models import HandlerType


class AssetHandler(Protocol):
    """Abstract interface for the liquidity source behind a debt asset."""

    @property
    def handler_type(self) -> HandlerType: ...

    @property
    def vault_address(self) -> str: ...

    async def is_supported(self, asset: str) -> bool: ...

    async def available_liquidity(self, asset: str) -> int: ...

    async def lend(self, asset: str, amount: int, to: str) -> None: ...

    async def repay(self, asset: str, amount: int, payer: str) -> None: ...

    async def fund_liquidation(self, asset: str, amount: int) -> bool: ...
