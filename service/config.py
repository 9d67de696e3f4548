"""
Centralised configuration loaded from environment variables.

All settings live here, never scattered across modules.
Using pydantic-settings gives us type validation and .env file support for free.
Every variable carries the LOOKUP_ prefix (LOOKUP_HOSTS, LOOKUP_QUERY, ...);
list and mapping settings are given as JSON, e.g.
LOOKUP_FIELDS='{"[customer][name]": "customer_name"}'.
"""

from typing import Dict, List, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Connection. `hosts` left unset means localhost:9200 (or the cloud_id host).
    hosts: Optional[List[str]] = None
    user: Optional[str] = None
    password: Optional[SecretStr] = None
    api_key: Optional[SecretStr] = None
    cloud_id: Optional[str] = None
    cloud_auth: Optional[SecretStr] = None
    ssl: bool = False
    ca_file: Optional[str] = None

    # Query. Exactly one of query / query_template.
    index: str = ""
    query: Optional[str] = None
    query_template: Optional[str] = None
    sort: str = "@timestamp:desc"
    enable_sort: bool = True
    result_size: int = 1

    # Result mapping
    fields: Dict[str, str] = {}
    docinfo_fields: Dict[str, str] = {}
    aggregation_fields: Dict[str, str] = {}

    # Event decoration
    tag_on_failure: List[str] = ["_opensearch_lookup_failure"]
    add_tag: List[str] = []
    remove_tag: List[str] = []
    add_field: Dict[str, str] = {}
    remove_field: List[str] = []

    # Service
    log_level: str = "INFO"
    workers: int = 4

    class Config:
        env_file = ".env"
        env_prefix = "LOOKUP_"


# Single shared instance, import this everywhere
settings = Settings()
