"""Cell value normalisation.

Turns the text of a data cell into a document value:

    $name          value staged in the row's virtual objects
    ##text         literal "#text"
    #asset|m1|m2   external asset text, expanded with mapping assets m1, m2
    {..} / [..]    embedded JSON object / array
    {{..}} / [[..]] literal text with the outer marker stripped

Remaining placeholders are expanded against the ambient state, then against
the row's virtual objects.
"""

import json
import logging
import posixpath
import re
from pathlib import Path
from typing import Any

import yaml

from .config import LoaderConfig
from .errors import DecodeError, NeatlyError, ResourceError, SubstitutionError, excerpt
from .resource import Resource
from .tag import Tag, TagContext
from .template import MISSING, State, as_text, expand_with, lookup

logger = logging.getLogger(__name__)

OWNER_URL_KEY = "ownerURL"
INDEX_KEY = "index"
TAG_KEY = "tag"

ESCAPED_ASSET_PREFIX = "##"
ASSET_PREFIX = "#"
ASSET_SEPARATOR = "|"
YAML_EXTENSIONS = (".yaml", ".yml")

VIRTUAL_REFERENCE = re.compile(r"\$(?:\{(?P<braced>[A-Za-z_][\w.]*)\}|(?P<name>[A-Za-z_][\w.]*))")
ITERATOR_PLACEHOLDER = re.compile(r"\$(?:\{(index|tag)\}|(index|tag)(?!\w))")
INTEGER = re.compile(r"-?(?:0|[1-9]\d*)")
DECIMAL = re.compile(r"-?(?:0|[1-9]\d*)\.\d+")


def expand_iterator_index(text: str, tag: Tag | None, state: State) -> str:
    """Substitute $index/${index} and $tag/${tag} markers."""
    if "$" not in text or tag is None:
        return text

    def replace(match: re.Match) -> str:
        key = match.group(1) or match.group(2)
        if key == TAG_KEY:
            return tag.name
        index = tag.index() if tag.has_active_iterator() else state.get(INDEX_KEY)
        if index is None:
            return match.group(0)
        return as_text(index)

    return ITERATOR_PLACEHOLDER.sub(replace, text)


def is_newline_delimited_json(text: str) -> bool:
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if len(lines) < 2 or not lines[1].startswith("{"):
        return False
    try:
        return isinstance(json.loads(lines[0]), dict)
    except ValueError:
        return False


def as_data_structure(value: str) -> Any:
    """Decode JSON object/array text; unescape {{..}} and [[..]]; else keep text."""
    if not value:
        return None
    if (value.startswith("{{") and value.endswith("}}")) or (
        value.startswith("[[") and value.endswith("]]")
    ):
        return value[1:-1]
    if value.startswith("{"):
        if is_newline_delimited_json(value):
            return value
        result = _decode_json(value)
        if not isinstance(result, dict):
            raise DecodeError(f"expected JSON object: {excerpt(value)}")
        return result
    if value.startswith("["):
        result = _decode_json(value)
        if not isinstance(result, list):
            raise DecodeError(f"expected JSON array: {excerpt(value)}")
        return result
    return value


def _decode_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise DecodeError(f"failed to decode JSON {excerpt(text)}: {e}") from e


def _decode_yaml(text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DecodeError(f"failed to decode YAML {excerpt(text)}: {e}") from e


def infer_scalar(text: str) -> Any:
    """Canonical integer/decimal text becomes int/float; anything else stays."""
    if INTEGER.fullmatch(text):
        return int(text)
    if DECIMAL.fullmatch(text):
        return float(text)
    return text


def escape_quotes(mapping: dict) -> None:
    """Make mapping values safe to embed inside JSON string literals."""
    for key, value in list(mapping.items()):
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        if isinstance(value, str) and '"' in value:
            value = value.replace("\\", "\\\\").replace("\n", "").replace('"', '\\"')
        mapping[key] = value


class ValueNormalizer:
    """Expands cell text into document values for one loader configuration."""

    def __init__(self, config: LoaderConfig | None = None):
        self.config = config or LoaderConfig()

    def normalize(self, text: str, context: TagContext, state: State) -> Any:
        virtual_objects = context.virtual_objects
        match = VIRTUAL_REFERENCE.fullmatch(text)
        if match:
            name = match.group("braced") or match.group("name")
            value = lookup(virtual_objects, name)
            if value is not MISSING:
                return state.expand(expand_with(virtual_objects, value))
            if not state.has_path(name):
                raise SubstitutionError(f"undefined virtual object ${name}")

        inferable = True
        value: Any = text
        if text.startswith(ESCAPED_ASSET_PREFIX):
            value = text[1:]
            inferable = False
        elif text.startswith(ASSET_PREFIX):
            if context.owner is not None:
                state[OWNER_URL_KEY] = context.owner.url
            value = self.include(text, context, state)
            inferable = False

        result = as_data_structure(value) if isinstance(value, str) else value
        result = state.expand(result)
        if virtual_objects:
            result = expand_with(virtual_objects, result)
        if inferable and self.config.infer_types and isinstance(result, str):
            result = infer_scalar(result)
        return result

    def include(self, text: str, context: TagContext, state: State) -> Any:
        """Load ``#asset|mapping...`` and expand the main asset with each mapping."""
        tag = context.tag
        subpath = tag.subpath if tag else ""
        assets = text.split(ASSET_SEPARATOR)
        resource = self.get_external_resource(context.owner, subpath, assets[0])
        main_asset = self.download(resource, assets[0]).strip()
        main_asset = expand_iterator_index(main_asset, tag, state)
        quote = main_asset.startswith(("{", "["))
        for i, asset in enumerate(assets[1:]):
            mapping = self.load_map(asset, context, state, quote, i)
            main_asset = State(mapping).expand_as_text(main_asset)
        if resource.extension in YAML_EXTENSIONS:
            decoded = _decode_yaml(main_asset)
            if isinstance(decoded, (dict, list)):
                return decoded
        return main_asset

    def load_map(self, asset: str, context: TagContext, state: State, quote: bool, index: int) -> dict:
        """Resolve a mapping asset used to expand the main asset.

        Besides its own keys, the mapping publishes ``arg{index}`` with the full
        asset text and ``args{index}`` with its outer brackets/braces removed,
        so a whole JSON document or just its body can be substituted.
        """
        content = asset
        extension = ""
        stripped = asset.strip()
        if stripped.startswith("$"):
            name = stripped[1:].strip("{}")
            value = lookup(context.virtual_objects, name)
            if value is MISSING:
                raise SubstitutionError(f"failed to resolve ${name} as substitution source")
            content = json.dumps(value) if isinstance(value, (dict, list)) else as_text(value)
        elif stripped.startswith(ASSET_PREFIX):
            subpath = context.tag.subpath if context.tag else ""
            resource = self.get_external_resource(context.owner, subpath, stripped)
            extension = resource.extension
            content = self.download(resource, stripped)

        content = expand_iterator_index(content, context.tag, state).strip()
        mapping: dict = {}
        if extension in YAML_EXTENSIONS:
            decoded = _decode_yaml(content)
            if isinstance(decoded, dict):
                mapping = decoded
        elif content.startswith("{"):
            decoded = _decode_json(content)
            if isinstance(decoded, dict):
                mapping = decoded
        if quote:
            escape_quotes(mapping)
        mapping[f"arg{index}"] = content
        mapping[f"args{index}"] = content[1:-1]
        return mapping

    def get_external_resource(self, owner: Resource | None, subpath: str, uri: str) -> Resource:
        """Locate an asset referenced from the document.

        Lookup order: absolute URL/path; owner directory + subpath + asset;
        owner directory + asset; local/remote repository; finally
        owner directory + subpath + asset.
        """
        uri = uri.strip()
        if uri.startswith(ASSET_PREFIX):
            uri = uri[len(ASSET_PREFIX):]
        if not uri:
            raise ResourceError("resource was empty")
        credential = owner.credential if owner else None
        if "://" in uri or uri.startswith("/"):
            return Resource(uri, credential)
        if owner is None:
            owner = Resource(str(Path.cwd() / "_"))

        if subpath:
            candidate = owner.join(posixpath.join(subpath, uri))
            if candidate.exists():
                return candidate
        candidate = owner.join(uri)
        if candidate.exists():
            return candidate
        if self.config.remote_resource_repo:
            try:
                repo_resource = self.new_repo_resource(uri)
                if repo_resource.exists():
                    return repo_resource
            except NeatlyError as e:
                logger.warning("repository lookup for %s failed: %s", uri, e)
        if subpath:
            return owner.join(posixpath.join(subpath, uri))
        return candidate

    def new_repo_resource(self, uri: str) -> Resource:
        """Repository copy of an asset, fetched from the remote repo on first use."""
        local = Resource(self.config.local_resource_repo % uri)
        if local.exists():
            return local
        remote = Resource(self.config.remote_resource_repo % uri)
        remote.copy_to(local)
        return local

    def download(self, resource: Resource, uri: str) -> str:
        logger.debug("loading asset %s from %s", uri, resource.url)
        try:
            return resource.download_text()
        except ResourceError as e:
            raise ResourceError(f"failed to load external resource {uri}: {e.msg}") from e
