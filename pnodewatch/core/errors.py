from __future__ import annotations


class PnodeWatchError(Exception):
    """Base class for errors raised by pnodewatch."""


class RpcError(PnodeWatchError):
    """A single pRPC call against one seed failed."""


class RpcTransportError(RpcError):
    pass


class RpcTimeoutError(RpcError):
    pass


class RpcHttpStatusError(RpcError):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class RpcResponseError(RpcError):
    pass


class SeedExhaustedError(PnodeWatchError):
    """Every candidate seed failed; carries one reason per seed."""

    def __init__(self, failures: list[tuple[str, str]]) -> None:
        self.failures = list(failures)
        tried = " | ".join(f"{seed}: {reason}" for seed, reason in self.failures)
        super().__init__(f"Unable to discover pNodes via pRPC. Tried: {tried}")

    @property
    def seeds(self) -> list[str]:
        return [seed for seed, _ in self.failures]


class StoreError(PnodeWatchError):
    pass


class StoreConflictError(StoreError):
    """A compare-and-swap update lost every retry to a concurrent writer."""


class TenantRequiredError(PnodeWatchError):
    """Request carried no usable tenant id."""
