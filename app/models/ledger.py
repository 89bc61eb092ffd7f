"""
Ledger operation and result types.
These never reach the database directly; workflows copy the derived
fields (tx hash, token id) onto their own records.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class ChainStatus(str, Enum):
    """Transaction lifecycle as seen by the ledger client."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RegisterTest:
    """Register a test record on the Test Registry contract."""
    test_id: str
    creator: str
    metadata_cid: str


@dataclass(frozen=True)
class MintBadge:
    """Mint a badge NFT on the Badge Issuer contract."""
    receiver: str
    metadata_uri: str
    # Only used to label a placeholder token id
    test_id: Optional[str] = None


LedgerOperation = Union[RegisterTest, MintBadge]


@dataclass(frozen=True)
class SimulationOk:
    cost: int
    preview: Any = None


@dataclass(frozen=True)
class SimulationError:
    reason: str


SimulationResult = Union[SimulationOk, SimulationError]


@dataclass(frozen=True)
class DecodeOk:
    value: Any


@dataclass(frozen=True)
class DecodeError:
    raw: Any
    reason: str = ""


DecodeResult = Union[DecodeOk, DecodeError]


@dataclass
class ChainReceipt:
    """Outcome of a submitted (or simulated) transaction."""
    success: bool
    tx_hash: str
    status: ChainStatus
    simulated: bool = False
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)


@dataclass
class MintReceipt(ChainReceipt):
    token_id: Optional[str] = None
    token_id_decoded: bool = True
