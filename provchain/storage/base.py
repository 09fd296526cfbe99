"""Common types shared by the storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..config import StorageOpts


class StorageError(Exception):
    """Raised when a backend cannot store or retrieve data."""


@dataclass
class TaskRun:
    """The parts of a task run that the storage backends need."""

    namespace: str = ""
    name: str = ""
    uid: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    service_account_name: str = ""


class Backend(ABC):
    """A place where signed payloads and their signatures are kept."""

    @abstractmethod
    def store_payload(self, raw_payload: bytes, signature: str, opts: StorageOpts) -> None:
        """Store a signed payload together with its signature."""

    @abstractmethod
    def retrieve_payload(self, opts: StorageOpts) -> str:
        """Return the payload stored under the options' key."""

    @abstractmethod
    def retrieve_signature(self, opts: StorageOpts) -> str:
        """Return the signature stored under the options' key."""

    @abstractmethod
    def type(self) -> str:
        """Return the name of the backend type."""