# trustchain_core/report.py

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Status(str, Enum):
    OK = "ok"
    WARN = "warning"
    ERROR = "error"


@dataclass
class ReportItem:
    status: Status
    message: str


@dataclass
class Report:
    """
    Itemized outcome of an action. The signed claim may be valid even when
    secondary artifacts failed, so callers check ``warnings()`` and
    ``has_errors()`` rather than relying on an exception alone.
    """
    label: str = ""
    items: List[ReportItem] = field(default_factory=list)
    token: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def add(self, status: Status, message: str) -> "Report":
        self.items.append(ReportItem(Status(status), message))
        return self

    def ok(self, message: str) -> "Report":
        return self.add(Status.OK, message)

    def warn(self, message: str) -> "Report":
        return self.add(Status.WARN, message)

    def error(self, message: str) -> "Report":
        return self.add(Status.ERROR, message)

    def _messages(self, status: Status) -> List[str]:
        return [i.message for i in self.items if i.status is status]

    def warnings(self) -> List[str]:
        return self._messages(Status.WARN)

    def errors(self) -> List[str]:
        return self._messages(Status.ERROR)

    def has_errors(self) -> bool:
        return any(i.status is Status.ERROR for i in self.items)

    def has_no_errors(self) -> bool:
        return not self.has_errors()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "items": [{"status": i.status.value, "message": i.message} for i in self.items],
        }

    def __str__(self) -> str:
        marks = {Status.OK: "[ OK ]", Status.WARN: "[WARN]", Status.ERROR: "[ERR ]"}
        return "\n".join(f"{marks[i.status]} {i.message}" for i in self.items)
