from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .command import DEFAULT_STDERR_LIMIT
from .files import DEFAULT_PERM, DEFAULT_TEMP_PREFIX
from .remote import DEFAULT_TIMEOUT
from .sinks import COPY_CHUNK_SIZE, DEFAULT_BUFFER_SIZE

"""
Recipe configuration
- load_yaml(path) -> dict
- AppConfig (Pydantic v2) + validate_config(raw) -> AppConfig

A recipe lists the parts to write (text, file, command, url), an optional
separator, the outputs to write them to, and tuning settings.
"""


# This function loads and parses YAML into a raw dictionary using yaml.safe_load.
def load_yaml(path: str) -> Dict[str, Any]:
    """
    Load and parse YAML into a raw dict using yaml.safe_load.

    Raises:
        FileNotFoundError: if the file does not exist
        yaml.YAMLError: if YAML is malformed/unsafe
        ValueError: if the top-level document is not a mapping
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Top-level YAML must be a mapping/dict (file: {path})")
    return data


# ----- Pydantic models -----

# Allowed outputs: 'stdout', 'file:<path>', 'append:<path>', 'atomic:<path>', 'tcp:<host>:<port>'
_TCP_RE = re.compile(r"^tcp:([^:]+):(\d{1,5})$")  # simple host:port (no IPv6 colons)
_PATH_OUTPUTS = ("file:", "append:", "atomic:")


class WriteSettings(BaseModel):
    buffer_size: int = Field(default=DEFAULT_BUFFER_SIZE, gt=0)
    copy_chunk_size: int = Field(default=COPY_CHUNK_SIZE, gt=0)
    stderr_limit: int = Field(default=DEFAULT_STDERR_LIMIT, ge=0)
    temp_prefix: str = DEFAULT_TEMP_PREFIX
    perm: int = DEFAULT_PERM
    http_timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    # Permissions read from YAML as "0644" are octal, not decimal.
    @field_validator("perm", mode="before")
    @classmethod
    def _perm_octal(cls, v: Any) -> Any:
        if isinstance(v, str):
            try:
                return int(v, 8)
            except ValueError:
                raise ValueError(f"perm must be an octal string like '0644'; got {v!r}") from None
        return v

    @field_validator("perm")
    @classmethod
    def _perm_in_range(cls, v: int) -> int:
        if not (0 <= v <= 0o777):
            raise ValueError("perm must be between 0 and 0o777")
        return v

    @field_validator("temp_prefix")
    @classmethod
    def _prefix_is_a_name(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v:
            raise ValueError("temp_prefix must be a non-empty file name prefix")
        return v


class Part(BaseModel):
    text: Optional[str] = None
    file: Optional[str] = None
    command: Optional[List[str]] = None
    url: Optional[str] = None
    repeat: int = Field(default=1, ge=0)

    #This validator checks that each part names exactly one source.
    @model_validator(mode="after")
    def _exactly_one_source(self) -> "Part":
        given = [k for k in ("text", "file", "command", "url") if getattr(self, k) is not None]
        if len(given) != 1:
            raise ValueError(
                f"each part needs exactly one of text, file, command, url; got {given or 'none'}"
            )
        if self.command is not None and (not self.command or not self.command[0]):
            raise ValueError("command must be a non-empty list: [program, arg, ...]")
        if self.file == "" or self.url == "":
            raise ValueError("file and url parts must not be empty")
        return self


class AppConfig(BaseModel):
    parts: List[Part]
    outputs: List[str]
    separator: str = ""
    settings: WriteSettings = Field(default_factory=WriteSettings)

    @field_validator("parts")
    @classmethod
    def _parts_non_empty(cls, items: List[Part]) -> List[Part]:
        if not items:
            raise ValueError("parts must be a non-empty list")
        return items

    #This validator checks that every output is one of the supported destinations.
    @field_validator("outputs")
    @classmethod
    def _outputs_allowed_only(cls, items: List[str]) -> List[str]:
        if not isinstance(items, list) or len(items) == 0:
            raise ValueError("outputs must be a non-empty list")
        for s in items:
            validate_output(s)
        return items


# This function checks a single output string; the CLI uses it for --output overrides too.
def validate_output(s: str) -> str:
    if s == "stdout":
        return s
    for prefix in _PATH_OUTPUTS:
        if s.startswith(prefix):
            if not s[len(prefix):]:
                raise ValueError(f"'{prefix}<path>' output needs a non-empty path")
            return s
    m = _TCP_RE.match(s)
    if m:
        _, port_str = m.groups()
        if not (1 <= int(port_str) <= 65535):
            raise ValueError("tcp port must be 1..65535")
        return s
    raise ValueError(
        "outputs entries must be 'stdout', 'file:<path>', 'append:<path>', "
        f"'atomic:<path>', or 'tcp:<host>:<port>'; got {s!r}"
    )


#This function validates and normalizes a raw dictionary into an AppConfig object.
def validate_config(raw: Dict[str, Any]) -> AppConfig:
    return AppConfig.model_validate(raw)


__all__ = ["AppConfig", "Part", "WriteSettings", "load_yaml", "validate_config", "validate_output"]
