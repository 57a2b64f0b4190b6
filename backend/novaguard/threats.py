from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Optional


@dataclass(frozen=True)
class ThreatSignature:
    name: str
    pattern: re.Pattern[str]


THREAT_SIGNATURES: tuple[ThreatSignature, ...] = (
    ThreatSignature("script_injection", re.compile(r"(<script|javascript:|data:|vbscript:)", re.IGNORECASE)),
    ThreatSignature("sql_injection", re.compile(r"(union\s+select|drop\s+table|insert\s+into)", re.IGNORECASE)),
    ThreatSignature("path_traversal", re.compile(r"(\.\./)|(\.\.\\)")),
    ThreatSignature("sensitive_file", re.compile(r"(etc/passwd|etc/shadow)", re.IGNORECASE)),
)


class ThreatScanner:
    """Matches request content against known-malicious signatures.

    Stateless; a match is final and the caller blocks the identity.
    """

    def __init__(self, signatures: tuple[ThreatSignature, ...] = THREAT_SIGNATURES) -> None:
        self.signatures = signatures

    def scan(self, payload_text: str, path: str) -> Optional[str]:
        for signature in self.signatures:
            if signature.pattern.search(payload_text) or signature.pattern.search(path):
                return signature.name
        return None
