"""Engine configuration."""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHATSTREAM_"


class EngineConfig(BaseModel):
    """Per-engine defaults; every request option can be overridden per call."""
    service: str = "google"
    model: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: int = Field(default=4096, gt=0)
    temperature: float = 0.7
    stream: bool = False
    extended: bool = False
    think: bool = False
    max_thinking_tokens: Optional[int] = None
    json_output: bool = False
    parser: Optional[str] = None
    timeout_seconds: float = Field(default=180.0, gt=0)
    stream_deadline_seconds: Optional[float] = None
    session_id: Optional[str] = None
    api_key_env: Optional[str] = None
    input_cost_per_token: float = 0.0
    output_cost_per_token: float = 0.0

    @classmethod
    def env_var(cls, field_name: str) -> str:
        return f"{ENV_PREFIX}{field_name.upper()}"

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "EngineConfig":
        """Build a config from ``CHATSTREAM_*`` variables.

        ``env_file`` is loaded first with python-dotenv; variables already
        set in the process environment win. Keyword overrides win over both.
        """
        if env_file is not None:
            env_path = Path(env_file)
            if env_path.exists():
                load_dotenv(env_path)
                logger.info("Loaded environment variables from %s", env_path)
            else:
                logger.warning(".env file not found at %s", env_path)

        source = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = source.get(cls.env_var(name))
            if raw is not None and raw != "":
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
