"""Configuration loading for the CMDB API client."""

import json
import logging
import os
import pathlib
from typing import TextIO

import pydantic
import structlog

from . import cmdbapi

CONFIG_ENV_VAR = "CMDB_CLIENT_CONFIG_PATH"
LOGGER_NAME = "cmdb_client"
logger = structlog.get_logger(__name__)


class CmdbConfig(pydantic.BaseModel):
    """Configuration for the CMDB API client."""

    api: str = pydantic.Field(cmdbapi.DEFAULT_API, description="Base URL for CMDB API")
    apikey: str | None = pydantic.Field(None, description="API key for the CMDB API")
    apikey_file: str | None = pydantic.Field(
        None,
        description="Path to file containing the API key",
    )
    timeout: float = pydantic.Field(
        cmdbapi.DEFAULT_TIMEOUT,
        description="Request timeout in seconds",
        gt=0,
    )
    verbose: bool = pydantic.Field(False, description="Emit diagnostic log events")  # noqa: FBT003
    log_level: str = pydantic.Field("INFO", description="Logging level")

    @pydantic.model_validator(mode="after")
    def check_apikey_source(self) -> "CmdbConfig":
        """Require exactly one of apikey and apikey_file."""
        if (self.apikey is None) == (self.apikey_file is None):
            msg = "exactly one of apikey and apikey_file must be set"
            raise ValueError(msg)
        return self

    def resolve_apikey(self) -> str:
        """Return the API key, reading it from apikey_file if needed.

        Raises:
            FileNotFoundError: If apikey_file does not exist.
        """
        if self.apikey is not None:
            return self.apikey
        key_path = pathlib.Path(self.apikey_file)
        if not key_path.exists():
            msg = f"API key file not found: {self.apikey_file}"
            raise FileNotFoundError(msg)
        return key_path.read_text().strip()


def _add_logger_name(_logger, _method_name, event_dict):
    event_dict.setdefault("logger", LOGGER_NAME)
    return event_dict


def configure_logging(log_level_name: str, stream: TextIO | None = None) -> None:
    """Configure structlog for logfmt output.

    Every line carries ``logger=cmdb_client`` unless the event names its own.

    Args:
        log_level_name: Minimum level name, e.g. ``"INFO"``. Unknown names
            fall back to INFO.
        stream: Where to write log lines (default: stdout).
    """
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "logger", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str | None = None) -> CmdbConfig:
    """Load configuration from a JSON file.

    Args:
        config_path: Path to the file. Defaults to the path named by the
            ``CMDB_CLIENT_CONFIG_PATH`` environment variable.

    Raises:
        FileNotFoundError: If the file does not exist or no path is given.
        pydantic.ValidationError: If the file content is not a valid config.
    """
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR)
    if not resolved_path:
        msg = f"No configuration path given and {CONFIG_ENV_VAR} is not set"
        raise FileNotFoundError(msg)

    path = pathlib.Path(resolved_path)
    if not path.exists():
        msg = f"Configuration file not found: {resolved_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return CmdbConfig(**data)


def create_client(config: CmdbConfig) -> cmdbapi.Cmdb:
    """Construct a CMDB client from validated config."""
    client = cmdbapi.Cmdb(
        apikey=config.resolve_apikey(),
        api=config.api,
        timeout=config.timeout,
        verbose=config.verbose,
    )
    logger.info("Created CMDB client", api=client.api)
    return client


def create_client_from_file(config_path: str | None = None) -> cmdbapi.Cmdb:
    """Create a client using a config path or the environment default."""
    config = load_config(config_path)
    configure_logging(config.log_level)
    return create_client(config)
