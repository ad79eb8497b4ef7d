"""
Shared fixtures: a valid environment, descriptor files and a fake chain client.
"""
import asyncio
import json
from types import SimpleNamespace

import pytest

from x402_backend.config import load_config

REGISTRY_ADDRESS = "0x1111111111111111111111111111111111111111"
ESCROW_ADDRESS = "0x2222222222222222222222222222222222222222"

REGISTRY_ABI = [
    {"type": "function", "name": "getService", "inputs": [{"name": "id", "type": "uint64"}], "outputs": []},
    {"type": "function", "name": "getServiceCount", "inputs": [], "outputs": [{"name": "", "type": "uint64"}]},
    {"type": "event", "name": "ServiceRegistered", "inputs": []},
]
ESCROW_ABI = [
    {"type": "function", "name": "getEscrow", "inputs": [{"name": "id", "type": "uint64"}], "outputs": []},
]


def descriptor_data(registry=True, escrow=True):
    contracts = {}
    if registry:
        contracts["serviceRegistry"] = REGISTRY_ABI
    if escrow:
        contracts["paymentEscrow"] = {"abi": ESCROW_ABI}
    return {"contracts": contracts}


@pytest.fixture
def env(tmp_path):
    return {
        "SUBSTRATE_RPC_URL": "ws://127.0.0.1:9944",
        "CHAIN_NAME": "passet",
        "SERVICE_REGISTRY_ADDRESS": REGISTRY_ADDRESS,
        "PAYMENT_ESCROW_ADDRESS": ESCROW_ADDRESS,
        "SERVICE_ACCOUNT": "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY",
        "CONTRACT_DESCRIPTORS_PATH": str(tmp_path / "published.json"),
    }


@pytest.fixture
def config(env):
    return load_config(env)


@pytest.fixture
def write_json(tmp_path):
    def _write(name, data):
        path = tmp_path / name
        path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
        return path
    return _write


class FakeCall:
    def __init__(self, value):
        self.value = value

    async def call(self):
        return self.value


class FakeContract:
    def __init__(self, address, abi):
        self.address = address
        self.abi = abi
        self.functions = SimpleNamespace(
            **{it["name"]: (lambda *args, _n=it["name"]: FakeCall((_n, args))) for it in abi if it["type"] == "function"}
        )


class FakeProvider:
    def __init__(self):
        self.disconnected = False

    async def disconnect(self):
        self.disconnected = True


class FakeClient:
    def __init__(self):
        self.provider = FakeProvider()
        self.eth = SimpleNamespace(contract=lambda address, abi: FakeContract(address, abi))


class FakeConnector:
    """Stands in for open_client; counts how often the network step runs."""

    def __init__(self, error=None, delay=0.01):
        self.error = error
        self.delay = delay
        self.calls = 0
        self.clients = []

    async def __call__(self, rpc_url, timeout):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        client = FakeClient()
        self.clients.append(client)
        return client


class CountingProvider:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.result


@pytest.fixture
def connector():
    return FakeConnector()
