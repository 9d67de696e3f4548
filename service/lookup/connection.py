"""
Connection settings resolution: hosts, credentials and TLS.

Runs once while the filter registers. Everything here raises
ConfigurationError so the service refuses to start with a bad setup,
instead of tagging every event as a lookup failure later on.

cloud_id format:
  "<label>:<base64 of 'host[:port]$es_uuid[:port]$kibana_uuid'>"
The resolved host is https://<es_uuid>.<host>:<port> (port defaults to 443).
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from config import Settings
from lookup.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_HOSTS = ["localhost:9200"]
_CLOUD_DEFAULT_PORT = "443"


@dataclass(frozen=True)
class ConnectionOptions:
    """Everything a backend client needs. Built once, never re-read."""

    hosts: List[str]
    user: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    ssl: bool = False
    ca_file: Optional[str] = None

    @property
    def http_auth(self) -> Optional[Tuple[str, str]]:
        if self.user is None and self.password is None:
            return None
        return (self.user or "", self.password or "")


def _secret(value) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


def validate_authentication(cfg: Settings) -> None:
    """Reject more than one auth family, and api_key over plain HTTP."""
    api_key = _secret(cfg.api_key)
    password = _secret(cfg.password)

    authn_options = 0
    if cfg.cloud_auth is not None:
        authn_options += 1
    if api_key:
        authn_options += 1
    if cfg.user or password:
        authn_options += 1

    if authn_options > 1:
        raise ConfigurationError(
            "Multiple authentication options are specified, please only use one of "
            "user/password, cloud_auth or api_key"
        )

    if api_key and not cfg.ssl:
        raise ConfigurationError(
            "Using api_key authentication requires SSL/TLS secured communication "
            "(set ssl=true)"
        )


def parse_cloud_id(cloud_id: str) -> str:
    """Decode a cloud_id into the https URL of its search endpoint."""
    if ":" not in cloud_id:
        raise ConfigurationError("cloud_id must be of the form '<label>:<encoded>'")
    encoded = cloud_id.split(":", 1)[1]
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"cloud_id is not valid base64: {exc}") from exc

    segments = decoded.split("$")
    if len(segments) < 2 or not segments[0] or not segments[1]:
        raise ConfigurationError(
            f"cloud_id decodes to {decoded!r}, expected '<host>$<es_uuid>$<kibana_uuid>'"
        )

    host, _, port = segments[0].partition(":")
    es_uuid, _, es_port = segments[1].partition(":")
    port = es_port or port or _CLOUD_DEFAULT_PORT
    if not port.isdigit():
        raise ConfigurationError(f"cloud_id carries an invalid port: {port!r}")

    return f"https://{es_uuid}.{host}:{port}"


def parse_cloud_auth(cloud_auth: str) -> Tuple[str, str]:
    """Split "<user>:<password>"; both halves are required."""
    user, sep, password = cloud_auth.partition(":")
    if not sep or not user or not password:
        raise ConfigurationError("cloud_auth must be of the form '<username>:<password>'")
    return user, password


def resolve_connection(cfg: Settings) -> ConnectionOptions:
    """Validate settings and fold cloud_id / cloud_auth into plain options."""
    validate_authentication(cfg)

    user = cfg.user
    password = _secret(cfg.password)
    if cfg.cloud_auth is not None:
        user, password = parse_cloud_auth(_secret(cfg.cloud_auth))

    if cfg.cloud_id:
        if cfg.hosts:
            raise ConfigurationError("Both cloud_id and hosts specified, please only use one of those.")
        hosts = [parse_cloud_id(cfg.cloud_id)]
    else:
        hosts = [str(host) for host in (cfg.hosts or DEFAULT_HOSTS)]

    if cfg.ca_file and not cfg.ssl:
        logger.warning("ca_file is set but ssl is disabled; the CA file will be ignored")

    return ConnectionOptions(
        hosts=hosts,
        user=user,
        password=password,
        api_key=_secret(cfg.api_key) or None,
        ssl=cfg.ssl,
        ca_file=cfg.ca_file,
    )
