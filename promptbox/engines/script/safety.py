"""
Static analysis for untrusted helper and expression source.

Scans source text for known sandbox-escape signatures before anything is
compiled. This runs in addition to RestrictedPython, not instead of it: the
restricted compiler and guarded globals must hold on their own.

Usage::

    violation = scan(source)
    # SecurityViolation(category="PROCESS", snippet="os.environ") or None
"""

import re
from dataclasses import dataclass

from promptbox.core.errors import SecurityViolationError

# Ordered; the first matching category is reported.
SECURITY_PATTERNS: dict[str, re.Pattern[str]] = {
    # Host process / interpreter state
    "PROCESS": re.compile(
        r"\b(?:os|sys|builtins|posix|nt)\s*\.|\b(?:environ|getenv|putenv|sys\.modules)\b"
    ),
    # Dynamic code generation and namespace access
    "DANGEROUS": re.compile(
        r"(?<![.\w])(?:eval|exec|compile|globals|locals|vars|breakpoint|__import__|open|input|memoryview)\s*\("
    ),
    # Object model traversal (type/class/frame chains)
    "INTROSPECTION": re.compile(
        r"__\w+__|\b(?:gi_frame|gi_code|cr_frame|ag_frame|f_globals|f_locals|f_builtins|f_back|tb_frame|co_code|mro)\b"
    ),
    # Imports of anything, including through importlib
    "IMPORTS": re.compile(r"^\s*(?:import|from)\s+[\w.]+|\bimportlib\b", re.MULTILINE),
    # Filesystem / child process modules
    "FILESYSTEM": re.compile(
        r"\b(?:subprocess|shutil|pathlib|ctypes|pickle|marshal|multiprocessing|pty|tempfile|glob)\b"
        r"|\brequire\s*\(\s*[\"'](?:os|sys|io|subprocess|shutil|pathlib|ctypes|pickle|tempfile)[\"']"
    ),
    # Network modules (the injected ``http`` object is the only way out)
    "NETWORK": re.compile(
        r"\b(?:socket|urllib|ftplib|smtplib|telnetlib|asyncio|ssl)\b|\bhttp\.client\b|\brequests\s*\."
        r"|\brequire\s*\(\s*[\"'](?:socket|urllib|http|ssl|asyncio|requests)[\"']"
    ),
    # Escaped or encoded payloads
    "OBFUSCATION": re.compile(
        r"\\x[0-9a-fA-F]{2}|\\u[0-9a-fA-F]{4}|\\U[0-9a-fA-F]{8}|\\N\{|\\[0-7]{3}"
        r"|\bchr\s*\(\s*\d+\s*\)\s*\+|\b(?:base64|codecs|bytes\.fromhex)\b"
    ),
}


@dataclass(frozen=True)
class SecurityViolation:
    """A rejected snippet: which pattern category fired and on what text."""

    category: str
    snippet: str
    position: int

    @property
    def message(self) -> str:
        return (
            f"Security violation: potentially unsafe code pattern detected "
            f"({self.category}: {self.snippet!r})"
        )


def scan(source: str, *, allow_imports: bool = False) -> SecurityViolation | None:
    """Return the first violation found in *source*, or None if it looks clean."""
    for category, pattern in SECURITY_PATTERNS.items():
        if allow_imports and category == "IMPORTS":
            continue
        match = pattern.search(source)
        if match:
            return SecurityViolation(
                category=category,
                snippet=match.group(0).strip(),
                position=match.start(),
            )
    return None


def ensure_safe(source: str, *, allow_imports: bool = False) -> None:
    """Raise ``SecurityViolationError`` when ``scan`` finds anything."""
    violation = scan(source, allow_imports=allow_imports)
    if violation is not None:
        raise SecurityViolationError(
            violation.message,
            category=violation.category,
            snippet=violation.snippet,
        )
