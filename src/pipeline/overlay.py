"""Parameter overlay.

Applies caller-supplied overrides to manifest-declared parameters. A key
replaces every declared parameter of the same name, in package inputs and in
every action's inputs. Keys nobody declared are dropped. The input manifest
is never modified.
"""

import copy
import logging
from dataclasses import replace
from typing import Any, Mapping, Optional

from manifest import ActionSpec, Manifest, PackageSpec

logger = logging.getLogger(__name__)


def _overlay_params(params: dict[str, Any], overrides: Mapping[str, Any], matched: set) -> dict[str, Any]:
    result = dict(params)
    for key in result:
        if key in overrides:
            result[key] = copy.deepcopy(overrides[key])
            matched.add(key)
    return result


def apply_overrides(manifest: Manifest, overrides: Optional[Mapping[str, Any]]) -> Manifest:
    """Return a new manifest with overrides applied. Never fails."""
    overrides = overrides or {}
    matched: set[str] = set()
    packages: list[PackageSpec] = []
    for package in manifest.packages:
        actions: list[ActionSpec] = [
            replace(
                action,
                parameters=_overlay_params(action.parameters, overrides, matched),
                metadata=dict(action.metadata),
            )
            for action in package.actions
        ]
        packages.append(replace(
            package,
            actions=actions,
            parameters=_overlay_params(package.parameters, overrides, matched),
            metadata=dict(package.metadata),
        ))

    ignored = sorted(set(overrides) - matched)
    if matched:
        logger.info("Overrode parameters: %s", ", ".join(sorted(matched)))
    if ignored:
        logger.info("Ignored overrides with no declared parameter: %s", ", ".join(ignored))

    return replace(manifest, packages=packages)
