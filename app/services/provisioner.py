"""
DNS / SSL provisioner interface.

Every operation must be safe to call repeatedly for the same domain: look the
resource up first and only create it when missing.
"""
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Sequence


class SslState(str, enum.Enum):
    ACTIVE = "active"
    PROVISIONING = "provisioning"
    ERROR = "error"


@dataclass(frozen=True)
class Zone:
    zone_id: str
    name: str
    nameservers: List[str] = field(default_factory=list)
    status: str = "pending"


class Provisioner(ABC):
    name = "provisioner"

    @abstractmethod
    def ensure_zone(self, domain: str) -> Zone:
        """Return the zone for ``domain``, creating it only if none exists."""

    @abstractmethod
    def ensure_cname_record(self, zone_id: str, target: str, name: str) -> str:
        """Ensure ``name`` CNAMEs to ``target``; returns the record id."""

    @abstractmethod
    def enable_ssl(self, zone_id: str) -> None:
        ...

    @abstractmethod
    def check_propagation(self, domain: str, expected_nameservers: Sequence[str]) -> bool:
        ...

    @abstractmethod
    def check_ssl_status(self, zone_id: str) -> SslState:
        ...
