"""Loader configuration."""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict


class LoaderConfig(BaseModel):
    """Options controlling how a neatly document is scanned and assembled."""

    model_config = ConfigDict(extra="forbid")

    delimiter: str = ","
    comment_prefix: str = "//"
    local_resource_repo: str = ""  # e.g. "/var/cache/neatly/%s"
    remote_resource_repo: str = ""  # e.g. "https://example.com/assets/%s"
    include_meta: bool = False  # Tag/TagIndex/Subpath/TagID/Group on tag objects
    include_source: bool = False  # provenance under the reserved "Source" key
    infer_types: bool = True  # plain numeric cell text becomes int/float

    @classmethod
    def from_file(cls, path: str | Path) -> "LoaderConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})
