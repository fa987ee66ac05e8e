"""Treasury protocol — token movements between accounts."""
from typing import Protocol


class Treasury(Protocol):
    """Moves asset amounts between accounts, raising if the move fails."""

    async def transfer(
        self, asset: str, amount: int, sender: str, recipient: str
    ) -> None: ...
