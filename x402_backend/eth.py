# x402_backend/eth.py
"""
Process-wide chain bootstrap: one shared AsyncWeb3 client and the two
contract handles (service registry, payment escrow) bound to it.

The BootstrapContext is created by the entry point, bootstrapped once, and
handed to the FastAPI app. Concurrent bootstrap() calls all await the same
in-flight task, so the pipeline runs at most once per process.
"""
import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Sequence

from web3 import AsyncWeb3, WebSocketProvider
from web3.middleware import ExtraDataToPOAMiddleware

from x402_backend.chain_config import (
    PAYMENT_ESCROW_KEY,
    SERVICE_REGISTRY_KEY,
    DescriptorProvider,
    default_providers,
    resolve_descriptors,
    validate_descriptors,
)
from x402_backend.config import Config
from x402_backend.errors import ChainConnectionError, ContractBindingError, NotInitializedError

logger = logging.getLogger(__name__)

Connector = Callable[[str, float], Awaitable[Any]]


class BootstrapState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class ContractHandle:
    """Read-only view of one bound contract."""

    def __init__(self, name: str, address: str, contract: Any):
        self.name = name
        self.address = address
        self.contract = contract

    def function_names(self) -> List[str]:
        abi = getattr(self.contract, "abi", None) or []
        return [it.get("name") for it in abi if it.get("type") == "function"]

    async def read(self, function_name: str, *args: Any) -> Any:
        """Call a view/pure function and return its decoded result."""
        fn = getattr(self.contract.functions, function_name)
        return await fn(*args).call()

    def __repr__(self) -> str:
        return f"ContractHandle({self.name!r}, {self.address!r})"


class Contracts(NamedTuple):
    client: Any
    service_registry: ContractHandle
    payment_escrow: ContractHandle


async def _disconnect(client: Any) -> None:
    try:
        await client.provider.disconnect()
    except Exception as e:
        logger.warning("Error while disconnecting chain client: %s", e)


async def open_client(rpc_url: str, timeout: float) -> AsyncWeb3:
    """
    Open the shared WebSocket client. One connection attempt, bounded by
    `timeout` seconds; no retries.
    """
    try:
        w3 = AsyncWeb3(WebSocketProvider(rpc_url, max_connection_retries=1))
    except Exception as e:
        raise ChainConnectionError(f"Invalid RPC endpoint {rpc_url!r}: {e}") from e

    try:
        await asyncio.wait_for(w3.provider.connect(), timeout)
        connected = await w3.is_connected()
    except asyncio.TimeoutError:
        await _disconnect(w3)
        raise ChainConnectionError(f"Timed out after {timeout}s connecting to {rpc_url}")
    except Exception as e:
        await _disconnect(w3)
        raise ChainConnectionError(f"Could not connect to {rpc_url}: {e}") from e

    if not connected:
        await _disconnect(w3)
        raise ChainConnectionError(f"Web3 not connected. Is the node running at {rpc_url}?")

    # node block headers may carry PoA-style extraData
    w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return w3


def bind_contract(client: Any, role: str, abi: Sequence[Dict[str, Any]], address: str) -> ContractHandle:
    try:
        checksummed = AsyncWeb3.to_checksum_address(address)
        contract = client.eth.contract(address=checksummed, abi=abi)
    except Exception as e:
        raise ContractBindingError(role, f"Could not bind {role} at {address}: {e}") from e
    return ContractHandle(role, checksummed, contract)


class BootstrapContext:
    def __init__(
        self,
        config: Config,
        providers: Optional[Sequence[DescriptorProvider]] = None,
        connect: Optional[Connector] = None,
    ):
        self.config = config
        self._providers = list(providers) if providers is not None else default_providers(config.descriptors_path)
        self._connect = connect or open_client
        self._state = BootstrapState.UNINITIALIZED
        self._task: Optional[asyncio.Future] = None
        self._contracts: Optional[Contracts] = None

    @property
    def state(self) -> BootstrapState:
        return self._state

    async def bootstrap(self) -> Contracts:
        if self._contracts is not None:
            return self._contracts
        if self._task is None:
            self._state = BootstrapState.INITIALIZING
            self._task = asyncio.ensure_future(self._run())
        # shield: a cancelled caller must not cancel the shared attempt
        return await asyncio.shield(self._task)

    async def _run(self) -> Contracts:
        try:
            contracts = await self._pipeline()
        except BaseException:
            self._state = BootstrapState.FAILED
            raise
        self._contracts = contracts
        self._state = BootstrapState.READY
        return contracts

    async def _pipeline(self) -> Contracts:
        descriptors = resolve_descriptors(self._providers)
        registry_abi, escrow_abi = validate_descriptors(descriptors)

        logger.info("Connecting to %s at %s", self.config.chain_name, self.config.rpc_url)
        client = await self._connect(self.config.rpc_url, self.config.connect_timeout)

        try:
            registry = bind_contract(client, SERVICE_REGISTRY_KEY, registry_abi, self.config.service_registry_address)
            escrow = bind_contract(client, PAYMENT_ESCROW_KEY, escrow_abi, self.config.payment_escrow_address)
        except ContractBindingError:
            await _disconnect(client)
            raise

        logger.info("Contracts initialized")
        logger.info("Service Registry: %s", registry.address)
        logger.info("Payment Escrow: %s", escrow.address)
        return Contracts(client, registry, escrow)

    def _ready(self) -> Contracts:
        if self._contracts is None:
            raise NotInitializedError("Contracts not initialized. Await BootstrapContext.bootstrap() first.")
        return self._contracts

    @property
    def client(self) -> Any:
        return self._ready().client

    def get_service_registry(self) -> ContractHandle:
        return self._ready().service_registry

    def get_payment_escrow(self) -> ContractHandle:
        return self._ready().payment_escrow

    async def close(self) -> None:
        if self._contracts is not None:
            await _disconnect(self._contracts.client)
