"""Client configuration via environment variables (STREAMREQ_ prefix) or defaults."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings

StreamMode = Literal["sse", "chunked", "realtime"]
HttpMethod = Literal["get", "post", "put", "patch", "delete"]

MODE_DELIMITERS: dict[str, str] = {
    "sse": "\n\n",
    "chunked": "\n",
    "realtime": "\n",
}


class StreamConfig(BaseSettings):
    base_url: str = ""
    timeout_seconds: float = 600.0
    mode: StreamMode = "sse"
    max_buffer_bytes: int = 50_000_000  # 50 MB
    max_line_bytes: int | None = None
    log_dir: str | None = None
    log_level: str = "INFO"
    relay_host: str = "127.0.0.1"
    relay_port: int = 8765

    model_config = {"env_prefix": "STREAMREQ_"}

    def delimiter_for(self, mode: str | None = None) -> str:
        """Return the default record delimiter for a stream mode."""
        return MODE_DELIMITERS[mode or self.mode]


class StreamOptions(BaseModel):
    """Per-request options recognized by the client factories."""

    method: HttpMethod = "get"
    mode: StreamMode = "sse"
    delimiter: str | None = None
    payload: Any = None
    headers: dict[str, str] = {}

    @field_validator("method", mode="before")
    @classmethod
    def _lower_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value

    @field_validator("delimiter")
    @classmethod
    def _non_empty_delimiter(cls, value: str | None) -> str | None:
        if value is not None and value == "":
            raise ValueError("delimiter must not be empty")
        return value
