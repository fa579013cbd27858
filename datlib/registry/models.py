"""Registry data models — library records, archive info, and startup reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ArchiveRecord:
    """A single entry in the persisted library index.

    Keyed externally by ``url``; the canonical address is never stored
    here and is re-resolved on every load.
    """

    url: str
    directory: str = ""
    owner: bool = False
    title: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "dir": self.directory,
            "url": self.url,
            "owner": self.owner,
            "title": self.title,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ArchiveRecord":
        return cls(
            url=data["url"],
            directory=data.get("dir", data.get("directory", "")),
            owner=bool(data.get("owner", False)),
            title=data.get("title"),
            description=data.get("description"),
        )


@dataclass
class ArchiveInfo:
    """Authoritative metadata reported by an open archive handle."""

    key: str
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    is_owner: bool = False


@dataclass
class OpenArchive:
    """Diagnostic snapshot of one live handle."""

    address: str
    url: str
    last_used: Optional[float] = None  # epoch seconds


@dataclass
class ReconcileFailure:
    """An item skipped during startup, with the reason it failed."""

    item: str
    reason: str


@dataclass
class ReconcileReport:
    """Outcome of library startup reconciliation."""

    mode: str = ""  # "ownership_scan" or "records"
    loaded: list[str] = field(default_factory=list)
    registered: list[str] = field(default_factory=list)
    discarded: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    failures: list[ReconcileFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        parts = [f"mode={self.mode or 'n/a'}", f"loaded={len(self.loaded)}"]
        if self.mode == "ownership_scan":
            parts.append(f"registered={len(self.registered)}")
            parts.append(f"discarded={len(self.discarded)}")
        else:
            parts.append(f"pruned={len(self.pruned)}")
        parts.append(f"failures={len(self.failures)}")
        return ", ".join(parts)
