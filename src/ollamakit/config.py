"""Client configuration and loading it from files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional

import httpx
import yaml
from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "http://localhost:11434"


def _default_base_url() -> str:
    host = os.getenv("OLLAMA_HOST")
    if not host:
        return DEFAULT_BASE_URL
    # OLLAMA_HOST is commonly set as a bare "host:port"
    if "://" not in host:
        host = f"http://{host}"
    return host


class ClientConfig(BaseModel):
    """Static connection details for an Ollama server."""

    base_url: str = Field(default_factory=_default_base_url)
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra headers sent with every request")
    timeout: Optional[float] = Field(600, description="Per-operation timeout in seconds, None disables it")
    http2: bool = True

    def make_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout)


def load_config(path: str | Path = "./configs/ollama.yaml") -> ClientConfig:
    """Load a :class:`ClientConfig` from a local YAML or JSON file.

    The file holds either the config mapping itself or a mapping with an
    ``ollama`` key wrapping it.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    # JSON is a subset of YAML, one parser covers both
    data = yaml.safe_load(path.read_text())
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping")

    if "ollama" in data:
        data = data["ollama"]
        if not isinstance(data, dict):
            raise ValueError("'ollama' field must be a mapping")

    return ClientConfig(**data)
