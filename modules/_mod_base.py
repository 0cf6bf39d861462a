# /modules/_mod_base.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

import requests

# ---------- Logging

class Logger(Protocol):
    def __call__(
        self,
        message: str,
        *,
        level: str = "INFO",
        module: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None: ...
    def bind(self, **ctx: Any) -> "Logger": ...
    def child(self, name: str) -> "Logger": ...


class _NullLogger:
    def __call__(self, message: str, **_: Any) -> None: ...
    def bind(self, **_: Any) -> "_NullLogger": return self
    def child(self, name: str) -> "_NullLogger": return self


def module_logger(logger: Optional[Logger], name: str) -> Logger:
    """Bind a host logger to a provider module name; silent when none is given."""
    if logger is None:
        return _NullLogger()
    if hasattr(logger, "bind"):
        return logger.bind(module=name)
    return logger

# ---------- Capabilities & meta

@dataclass(frozen=True)
class ModuleCapabilities:
    needs_api_key: bool = True
    mock_without_key: bool = True
    disk_cache: bool = False
    config_schema: Optional[Dict[str, Any]] = None

@dataclass(frozen=True)
class ModuleInfo:
    name: str
    version: str = "0.1.0"
    description: str = ""
    vendor: str = "community"
    capabilities: ModuleCapabilities = field(default_factory=ModuleCapabilities)

# ---------- Errors

class ModuleError(RuntimeError): ...
class RecoverableModuleError(ModuleError): ...
class ConfigError(ModuleError): ...

# ---------- HTTP

UA = "MediaShelf/Module"

def http_get_json(
    session: requests.Session,
    url: str,
    *,
    params: Optional[Mapping[str, Any]] = None,
    label: str = "HTTP",
    timeout: int = 15,
) -> Any:
    r = session.get(url, params=dict(params or {}), headers={"User-Agent": UA, "Accept": "application/json"}, timeout=timeout)
    if not r.ok:
        raise RecoverableModuleError(f"{label} GET {url} → HTTP {r.status_code}: {r.text[:300]}")
    try:
        return r.json()
    except ValueError:
        raise RecoverableModuleError(f"{label} GET {url} returned invalid JSON")

# ---------- Module protocol

class MetadataModule(Protocol):
    info: ModuleInfo

    def __init__(self, config: Mapping[str, Any], logger: Optional[Logger] = None, session: Optional[requests.Session] = None) -> None: ...

    @property
    def has_key(self) -> bool:
        """True when an API key is configured; without one, lookups return placeholder data."""
        ...

    def validate_config(self) -> None:
        """Raise ConfigError if config is invalid."""
        ...

    def reconfigure(self, config: Mapping[str, Any]) -> None:
        """Apply new config and call validate_config()."""
        ...
