"""Standard callables available to templates as ``$Name(arg)``.

Every callable takes ``(source, state)`` where ``state`` is the ambient
scope of the load in progress.
"""

import gzip
import hashlib
import json
import os
import posixpath
from pathlib import Path
from typing import Any

import yaml

from .errors import ResourceError
from .normalizer import OWNER_URL_KEY
from .resource import Resource
from .template import State


def as_map(source: Any, state: State | None = None) -> dict:
    if isinstance(source, dict):
        return source
    if isinstance(source, (str, bytes)):
        decoded = yaml.safe_load(source)  # YAML is a JSON superset
        if isinstance(decoded, dict):
            return decoded
    raise TypeError(f"unable to convert {type(source).__name__} to a map")


def as_int(source: Any, state: State | None = None) -> int:
    if isinstance(source, str):
        return int(float(source)) if "." in source else int(source)
    return int(source)


def as_float(source: Any, state: State | None = None) -> float:
    return float(source)


def as_bool(source: Any, state: State | None = None) -> bool:
    if isinstance(source, str):
        return source.strip().lower() in ("true", "t", "yes", "y", "1")
    return bool(source)


def md5(source: Any, state: State | None = None) -> str:
    return hashlib.md5(str(source).encode("utf-8")).hexdigest()


def get_owner_directory(state: State | None) -> str:
    if not state or OWNER_URL_KEY not in state:
        raise ResourceError("ownerURL was empty")
    return Resource(state[OWNER_URL_KEY]).directory_path


def has_resource(source: Any, state: State | None = None) -> bool:
    """True when the file exists, relative paths checked against the owner directory."""
    filename = str(source)
    if not filename.startswith("/") and state and OWNER_URL_KEY in state:
        candidate = posixpath.join(get_owner_directory(state), filename)
        if Path(candidate).exists():
            return True
    return Path(Resource(filename).path).exists()


def working_directory(source: Any, state: State | None = None) -> str:
    """Current directory joined with source; ``../`` segments are resolved."""
    sub_path = str(source or "")
    return os.path.normpath(os.path.join(os.getcwd(), sub_path))


def zip_payload(source: Any, state: State | None = None) -> bytes:
    if isinstance(source, str):
        source = source.encode("utf-8")
    if not isinstance(source, bytes):
        raise TypeError(f"invalid Zip input, expected bytes, but had {type(source).__name__}")
    return gzip.compress(source, compresslevel=1)


def unzip_payload(source: Any, state: State | None = None) -> bytes:
    if not isinstance(source, bytes):
        raise TypeError(f"invalid Unzip input, expected bytes, but had {type(source).__name__}")
    return gzip.decompress(source)


def unzip_text(source: Any, state: State | None = None) -> str:
    return unzip_payload(source, state).decode("utf-8")


def load_binary(source: Any, state: State | None = None) -> bytes:
    """Content of a file given as path/URL, relative to the owner document if needed."""
    filename = str(source)
    candidate = Path(Resource(filename).path)
    if candidate.is_file():
        return candidate.read_bytes()
    if state and OWNER_URL_KEY in state:
        owner = Resource(state[OWNER_URL_KEY])
        relative = owner.join(filename)
        if relative.exists():
            return relative.download()
    raise ResourceError(f"no such file or directory {filename}")


def cat(source: Any, state: State | None = None) -> str:
    return load_binary(source, state).decode("utf-8")


def is_json(source: Any, state: State | None = None) -> bool:
    content = cat(source, state)
    try:
        json.loads(content)
    except ValueError:
        return False
    return True


def _asset_resource(source: Any) -> Resource:
    if isinstance(source, str):
        return Resource(source)
    if isinstance(source, dict):
        url = source.get("URL") or source.get("url")
        if url:
            return Resource(url, source.get("Credentials") or source.get("credential"))
    if isinstance(source, (list, tuple)) and source:
        credential = source[1] if len(source) > 1 and source[1] else None
        return Resource(str(source[0]), credential)
    raise TypeError(f"unsupported source {type(source).__name__}")


def binary_assets_to_map(source: Any, state: State | None = None) -> dict[str, bytes] | None:
    """Files of a directory as name -> bytes; accepts URL, {URL, Credentials} or [URL, credential]."""
    if source is None:
        return None
    directory = _asset_resource(source)
    return {
        entry.name: entry.download()
        for entry in directory.list()
        if not entry.is_directory()
    }


def assets_to_map(source: Any, state: State | None = None) -> dict[str, str] | None:
    assets = binary_assets_to_map(source, state)
    if assets is None:
        return None
    return {name: content.decode("utf-8") for name, content in assets.items()}


def load_neatly(source: Any, state: State) -> dict:
    """Load another neatly document in an isolated scope.

    Only callables, the owner URL and the loader itself are carried over.
    """
    from .dao import NEATLY_LOADER_KEY, Dao

    filename = str(source)
    if not filename.startswith("/") and "://" not in filename and OWNER_URL_KEY in state:
        filename = posixpath.join(get_owner_directory(state), filename)
    resource = Resource(filename)
    if not resource.exists():
        raise ResourceError(f"file {filename} does not exist")
    dao = state.get(NEATLY_LOADER_KEY)
    if not isinstance(dao, Dao):
        raise TypeError(f"failed to get neatly loader {type(dao).__name__}")
    nested = State(state.callables())
    nested[OWNER_URL_KEY] = state.get(OWNER_URL_KEY)
    nested[NEATLY_LOADER_KEY] = dao
    return dao.load(nested, resource)


STANDARD_UDFS = {
    "AsMap": as_map,
    "AsInt": as_int,
    "AsFloat": as_float,
    "AsBool": as_bool,
    "Md5": md5,
    "HasResource": has_resource,
    "WorkingDirectory": working_directory,
    "Pwd": working_directory,
    "Cat": cat,
    "LoadBinary": load_binary,
    "IsJSON": is_json,
    "Zip": zip_payload,
    "Unzip": unzip_payload,
    "UnzipText": unzip_text,
    "AssetsToMap": assets_to_map,
    "BinaryAssetsToMap": binary_assets_to_map,
    "LoadNeatly": load_neatly,
}


def add_standard_udfs(state: dict) -> None:
    """Register standard callables, keeping any the caller already provided."""
    for name, func in STANDARD_UDFS.items():
        state.setdefault(name, func)
