"""File storage used by the worker to fetch uploaded documents."""
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from contract_assistant.core.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class FileStorage(ABC):
    """Byte-stream read/write keyed by the locator stored on the document."""

    @abstractmethod
    def read(self, locator: str) -> bytes:
        ...

    @abstractmethod
    def write(self, locator: str, data: bytes) -> None:
        ...

    @abstractmethod
    def exists(self, locator: str) -> bool:
        ...


class LocalFileStorage(FileStorage):
    """
    Stores files under a root directory.

    Locators look like ``/uploads/contracts/abc.pdf``; the leading
    ``/uploads`` segment names the root itself.
    """

    PREFIX = "uploads"

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def resolve(self, locator: str) -> Path:
        parts = [part for part in locator.replace("\\", "/").split("/") if part]
        if parts and parts[0] == self.PREFIX:
            parts = parts[1:]
        if not parts:
            raise ValidationError(f"Invalid file locator: {locator}")

        path = self.root.joinpath(*parts).resolve()
        if path != self.root and self.root not in path.parents:
            raise ValidationError(f"File locator escapes storage root: {locator}")
        return path

    def read(self, locator: str) -> bytes:
        path = self.resolve(locator)
        if not path.is_file():
            raise NotFoundError(f"File not found: {locator}")

        data = path.read_bytes()
        logger.info(f"Read {len(data)} bytes from {locator}")
        return data

    def write(self, locator: str, data: bytes) -> None:
        path = self.resolve(locator)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(f"Wrote {len(data)} bytes to {locator}")

    def exists(self, locator: str) -> bool:
        return self.resolve(locator).is_file()
