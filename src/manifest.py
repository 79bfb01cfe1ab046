"""Manifest location, loading and validation.

Manifests describe the packages and actions to deploy. The accepted YAML
dialect is the subset of the OpenWhisk deployment manifest format this
service needs:

    packages:
      ${PACKAGE_NAME}:
        inputs:
          PACKAGE_NAME: openwhisk-helloworld
        actions:
          helloworld:
            function: src/hello.js
            runtime: nodejs:default
            inputs:
              name: Amy

Also accepted: a singular `package:` block carrying a `name` key, and
top-level `actions:` (deployed without a package).

Entity names may reference declared parameters as $NAME or ${NAME}. They are
kept verbatim here and resolved at deploy time, after any overrides.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Optional

import yaml

from config import DEFAULT_MANIFEST_NAMES
from pipeline.errors import ManifestParseFailure, ManifestPathNotFound

logger = logging.getLogger(__name__)

# $NAME or ${NAME}
REFERENCE_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)')

# Action keys with dedicated fields; everything else is opaque metadata
ACTION_FIELDS = {'function', 'runtime', 'main', 'inputs'}


class UnresolvedReferenceError(Exception):
    """An entity name references a parameter nobody declared."""

    def __init__(self, name: str, text: str):
        self.name = name
        self.text = text
        super().__init__(f"Unresolved reference ${name} in '{text}'")


class UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that rejects duplicate mapping keys."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            try:
                duplicate = key in seen
            except TypeError:
                continue  # unhashable, reported by the base constructor
            if duplicate:
                raise yaml.constructor.ConstructorError(
                    None, None, f"duplicate key: {key!r}", key_node.start_mark
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


@dataclass
class ActionSpec:
    """A single action declared in the manifest.

    Attributes:
        name: Action name (may contain $NAME references)
        parameters: Declared input parameters (name -> value)
        function: Source file path, relative to the manifest directory
        runtime: Runtime kind (e.g. nodejs:default); inferred when None
        main: Entry point function name
        metadata: Remaining manifest keys (annotations, limits, web-export, ...)
    """
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)
    function: Optional[str] = None
    runtime: Optional[str] = None
    main: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Optional[dict]) -> 'ActionSpec':
        """Create ActionSpec from a manifest action body."""
        data = data or {}
        if not isinstance(data, dict):
            raise ManifestParseFailure(f"Action '{name}' must be a mapping")
        return cls(
            name=str(name),
            parameters=_parse_inputs(data.get('inputs'), f"action '{name}'"),
            function=data.get('function'),
            runtime=data.get('runtime'),
            main=data.get('main'),
            metadata={k: v for k, v in data.items() if k not in ACTION_FIELDS},
        )


@dataclass
class PackageSpec:
    """A package and its actions, in manifest order.

    name=None means the actions are deployed with bare names.
    """
    name: Optional[str]
    actions: list[ActionSpec] = field(default_factory=list)
    parameters: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: Optional[str], data: Optional[dict]) -> 'PackageSpec':
        """Create PackageSpec from a manifest package body."""
        data = data or {}
        if not isinstance(data, dict):
            raise ManifestParseFailure(f"Package '{name}' must be a mapping")

        actions_data = data.get('actions') or {}
        if not isinstance(actions_data, dict):
            raise ManifestParseFailure(f"Package '{name}': actions must be a mapping")

        return cls(
            name=str(name) if name is not None else None,
            actions=[ActionSpec.from_dict(k, v) for k, v in actions_data.items()],
            parameters=_parse_inputs(data.get('inputs'), f"package '{name}'"),
            metadata={k: v for k, v in data.items() if k not in ('actions', 'inputs', 'name')},
        )

    def scope(self, action: Optional[ActionSpec] = None) -> dict[str, Any]:
        """Parameters visible to name references in this package.

        Precedence, highest first: package inputs, then the inputs of
        `action` (the entity being named), then inputs of the other actions
        in declaration order. Every name in the package resolves through
        this one lookup.
        """
        merged: dict[str, Any] = {}
        for other in self.actions:
            for key, value in other.parameters.items():
                merged.setdefault(key, value)
        if action is not None:
            merged.update(action.parameters)
        merged.update(self.parameters)
        return merged


@dataclass
class Manifest:
    """Parsed deployment manifest.

    Attributes:
        packages: Packages in manifest order
        project: Optional project name
        source_path: File the manifest was loaded from
    """
    packages: list[PackageSpec]
    project: Optional[str] = None
    source_path: Optional[Path] = None

    @property
    def base_dir(self) -> Optional[Path]:
        """Directory that action function paths are relative to."""
        return self.source_path.parent if self.source_path else None

    @property
    def entity_count(self) -> int:
        return sum(len(p.actions) + (1 if p.name is not None else 0) for p in self.packages)

    @classmethod
    def from_dict(cls, data: dict, source_path: Optional[Path] = None) -> 'Manifest':
        """Create Manifest from dictionary.

        Raises:
            ManifestParseFailure: If the manifest is invalid
        """
        project = data.get('project')
        project_name = None
        if isinstance(project, dict):
            project_name = project.get('name')
            # Project-level packages are equivalent to top-level ones
            if 'packages' in project and 'packages' not in data:
                data = {**data, 'packages': project['packages']}

        packages: list[PackageSpec] = []

        packages_data = data.get('packages')
        if packages_data is not None:
            if not isinstance(packages_data, dict):
                raise ManifestParseFailure("packages must be a mapping of package name to body")
            for name, body in packages_data.items():
                packages.append(PackageSpec.from_dict(name, body))

        # Legacy singular form
        package_data = data.get('package')
        if package_data is not None:
            if not isinstance(package_data, dict) or not package_data.get('name'):
                raise ManifestParseFailure("package requires a 'name' field")
            packages.append(PackageSpec.from_dict(package_data['name'], package_data))

        actions_data = data.get('actions')
        if actions_data is not None:
            packages.append(PackageSpec.from_dict(None, {'actions': actions_data}))

        if not any(p.actions or p.name is not None for p in packages):
            raise ManifestParseFailure("Manifest declares no packages or actions")

        return cls(packages=packages, project=project_name, source_path=source_path)


def _parse_inputs(data: Any, owner: str) -> dict[str, Any]:
    """Flatten an inputs block to name -> value.

    Typed inputs ({type: string, value: x}) contribute `value`, else `default`.
    """
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManifestParseFailure(f"inputs of {owner} must be a mapping")

    params: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict) and ('value' in value or 'default' in value or 'type' in value):
            value = value.get('value', value.get('default'))
        params[str(key)] = value
    return params


def interpolate(text: str, params: dict[str, Any]) -> str:
    """Replace $NAME / ${NAME} references in text with parameter values.

    Raises:
        UnresolvedReferenceError: If a referenced name has no value
    """
    def _sub(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = params.get(name)
        if value is None or value == '':
            raise UnresolvedReferenceError(name, text)
        return str(value)

    return REFERENCE_PATTERN.sub(_sub, text)


def locate_manifest(
    root: Path,
    manifest_path: str,
    names: tuple[str, ...] = DEFAULT_MANIFEST_NAMES,
) -> Path:
    """Resolve manifest_path under root to a manifest file.

    manifest_path must name a directory inside root that directly contains
    one of `names` (checked in order).

    Raises:
        ManifestPathNotFound: If the directory or the manifest file is missing
    """
    if not manifest_path:
        raise ManifestPathNotFound("No manifestPath given")

    relative = PurePosixPath(manifest_path.strip())
    if relative.is_absolute() or '..' in relative.parts:
        raise ManifestPathNotFound(f"manifestPath must be relative to the repository: {manifest_path}")

    root = root.resolve()
    directory = (root / relative).resolve()
    # Symlinks inside the clone must not lead out of it
    if directory != root and root not in directory.parents:
        raise ManifestPathNotFound(f"manifestPath escapes the repository: {manifest_path}")

    if not directory.is_dir():
        raise ManifestPathNotFound(f"Not a directory: {manifest_path}")

    for name in names:
        candidate = directory / name
        if candidate.is_file():
            logger.debug("Found manifest %s", candidate)
            return candidate

    raise ManifestPathNotFound(f"No {' or '.join(names)} in {manifest_path}")


class ManifestLoader:
    """Loads manifests from files."""

    def load_file(self, path: Path) -> Manifest:
        """Load manifest from specific file path.

        Args:
            path: Path to manifest YAML file

        Returns:
            Manifest instance

        Raises:
            ManifestParseFailure: If the file is unreadable or invalid
        """
        try:
            with open(path, encoding='utf-8') as f:
                data = yaml.load(f, Loader=UniqueKeyLoader)
        except yaml.YAMLError as e:
            raise ManifestParseFailure(f"Invalid YAML in {path.name}: {e}")
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestParseFailure(f"Cannot read {path.name}: {e}")

        if not isinstance(data, dict):
            raise ManifestParseFailure(f"{path.name} must be a YAML object (dict)")

        manifest = Manifest.from_dict(data, source_path=path)
        logger.debug("Loaded manifest %s: %d package(s), %d entities",
                     path, len(manifest.packages), manifest.entity_count)
        return manifest
