# x402_backend/chain_config.py
"""
Contract descriptors: the ABI metadata needed to bind a contract handle.

Descriptors can come from a published artifact (CONTRACT_DESCRIPTORS_PATH,
artifacts/descriptors.json by default) or from the local .descriptors/
directory written by the `add` command below. Both hold the same shape:

    {"contracts": {"serviceRegistry": [...abi...], "paymentEscrow": {"abi": [...]}}}

Usage:
    python -m x402_backend.chain_config add contracts/service_registry.json --key serviceRegistry
    python -m x402_backend.chain_config show
"""
import argparse
import json
import logging
import sys
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from x402_backend.config import DEFAULT_DESCRIPTORS_PATH, REPO_ROOT
from x402_backend.errors import DescriptorsIncompleteError, DescriptorsNotFoundError

logger = logging.getLogger(__name__)

LOCAL_DESCRIPTORS_PATH = REPO_ROOT / ".descriptors" / "contracts.json"

SERVICE_REGISTRY_KEY = "serviceRegistry"
PAYMENT_ESCROW_KEY = "paymentEscrow"

ADD_COMMAND = "python -m x402_backend.chain_config add"

REMEDIATION = {
    SERVICE_REGISTRY_KEY: f"{ADD_COMMAND} contracts/service_registry.json --key {SERVICE_REGISTRY_KEY}",
    PAYMENT_ESCROW_KEY: f"{ADD_COMMAND} contracts/payment_escrow.json --key {PAYMENT_ESCROW_KEY}",
}


class DescriptorSet:
    """Raw descriptor mapping plus the name of the source it was read from."""

    def __init__(self, source: str, data: Dict[str, Any]):
        self.source = source
        self.data = data

    @property
    def contracts(self) -> Optional[Dict[str, Any]]:
        contracts = self.data.get("contracts")
        return contracts if isinstance(contracts, dict) else None

    def __repr__(self) -> str:
        return f"DescriptorSet(source={self.source!r}, keys={sorted(self.data)})"


# A provider returns a DescriptorSet, or None when its source is unavailable.
DescriptorProvider = Callable[[], Optional[DescriptorSet]]


def read_descriptor_file(path: Path, source: str) -> Optional[DescriptorSet]:
    path = Path(path)
    if not path.exists():
        logger.info("No %s descriptors at %s", source, path)
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring malformed %s descriptors at %s: %s", source, path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring %s descriptors at %s: top level is not an object", source, path)
        return None
    return DescriptorSet(source=f"{source} ({path})", data=data)


def default_providers(published_path: Path = DEFAULT_DESCRIPTORS_PATH) -> List[DescriptorProvider]:
    """Published artifact first, then the locally generated copy."""
    return [
        partial(read_descriptor_file, published_path, "published"),
        partial(read_descriptor_file, LOCAL_DESCRIPTORS_PATH, "local"),
    ]


def resolve_descriptors(providers: Iterable[DescriptorProvider]) -> DescriptorSet:
    for provider in providers:
        descriptors = provider()
        if descriptors is not None:
            logger.info("Descriptors loaded from %s", descriptors.source)
            return descriptors
    raise DescriptorsNotFoundError(
        "Descriptors not found. Run "
        f"`{ADD_COMMAND} <metadata.json> --key <name>` for both contracts to generate them."
    )


def abi_of(entry: Any) -> Optional[List[Dict[str, Any]]]:
    """Accept a bare ABI list or an artifact/metadata object carrying `abi`."""
    if isinstance(entry, dict):
        entry = entry.get("abi")
    if isinstance(entry, list):
        return entry
    return None


def _require(contracts: Dict[str, Any], key: str, label: str) -> List[Dict[str, Any]]:
    if key not in contracts:
        raise DescriptorsIncompleteError(
            key,
            f"{label} contract not found in descriptors (available: {sorted(contracts)}). "
            f"Make sure you've run `{REMEDIATION[key]}`",
        )
    abi = abi_of(contracts[key])
    if abi is None:
        raise DescriptorsIncompleteError(
            key,
            f"{label} descriptor has no ABI. Re-run `{REMEDIATION[key]}`",
        )
    return abi


def validate_descriptors(descriptors: DescriptorSet) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Return (service_registry_abi, payment_escrow_abi) or fail naming the missing piece."""
    contracts = descriptors.contracts
    if contracts is None:
        raise DescriptorsIncompleteError(
            "contracts",
            f"Contracts not found in descriptors from {descriptors.source} "
            f"(available keys: {sorted(descriptors.data)}). "
            f"Make sure you've run `{ADD_COMMAND}` for both contracts.",
        )
    logger.info("Available contracts: %s", sorted(contracts))
    registry_abi = _require(contracts, SERVICE_REGISTRY_KEY, "ServiceRegistry")
    escrow_abi = _require(contracts, PAYMENT_ESCROW_KEY, "PaymentEscrow")
    return registry_abi, escrow_abi


def add_contract(metadata_path: Path, key: str, out_path: Path = LOCAL_DESCRIPTORS_PATH) -> Path:
    """Merge one contract's ABI into the local descriptor file under contracts.<key>."""
    metadata = json.loads(Path(metadata_path).read_text(encoding="utf-8"))
    abi = abi_of(metadata)
    if abi is None:
        raise ValueError(f"No ABI found in {metadata_path}")

    out_path = Path(out_path)
    data: Dict[str, Any] = {}
    if out_path.exists():
        data = json.loads(out_path.read_text(encoding="utf-8"))
    data.setdefault("contracts", {})[key] = {"abi": abi}

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
    return out_path


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m x402_backend.chain_config")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="add a contract's ABI to the local descriptors")
    add.add_argument("metadata", type=Path, help="contract metadata / artifact JSON")
    add.add_argument("--key", required=True, help="descriptor key, e.g. serviceRegistry")
    add.add_argument("--out", type=Path, default=LOCAL_DESCRIPTORS_PATH)

    show = sub.add_parser("show", help="show which descriptor source resolves")
    show.add_argument("--published", type=Path, default=DEFAULT_DESCRIPTORS_PATH)

    args = parser.parse_args(argv)

    if args.command == "add":
        try:
            out = add_contract(args.metadata, args.key, args.out)
        except (OSError, ValueError) as e:
            print(f"add failed: {e}", file=sys.stderr)
            return 1
        print(f"Added {args.key} to {out}")
        return 0

    try:
        descriptors = resolve_descriptors(default_providers(args.published))
        validate_descriptors(descriptors)
    except (DescriptorsNotFoundError, DescriptorsIncompleteError) as e:
        print(e, file=sys.stderr)
        return 1
    print(f"Source: {descriptors.source}")
    print(f"Contracts: {', '.join(sorted(descriptors.contracts))}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
