# Copyright (C) 2025 Antonio Paolillo. All rights reserved.
# SPDX-License-Identifier: MIT

"""
Property interpolation for user supplied Dockerfiles.

A user Dockerfile may reference project properties with expressions such as ``${app.version}``.
The delimiters are selected by a *filter* string:

- ``${*}`` (the default): ``${key}`` expressions.
- a single token such as ``@``: ``@key@`` expressions.
- any other pattern with a ``*``: the text before and after the star, e.g. ``#{*}``.
- ``false`` or ``none``: interpolation disabled.

Keys are looked up in the properties first; keys of the form ``env.NAME`` then resolve to the
``NAME`` environment variable. Unknown keys and unterminated expressions are left untouched.
Values may themselves contain expressions; these are resolved recursively and a reference cycle
raises `ValueError`.
"""

import os
import re
from pathlib import Path
from typing import Dict, List, Mapping, Set, Tuple

from tarsmith.config import DEFAULT_FILTER
from tarsmith.sysutils import PathType

ENV_PREFIX = "env."
DISABLED_FILTERS = ("false", "none")

_ARG_REFERENCE = re.compile(r"\$(?:\{(.*)\}|(.*))")


def extract_delimiters(filter: str | None) -> Tuple[str, str] | None:
    """
    Returns the (start, end) expression delimiters of a filter, or None when disabled.

    Parameters:
        filter (str, optional): The filter string; None selects the default ``${*}``.

    Returns:
        Tuple[str, str] | None: The delimiters, e.g. ``("${", "}")``.
    """
    text = (DEFAULT_FILTER if filter is None else filter).strip()
    if not text or text.lower() in DISABLED_FILTERS:
        return None
    if "*" in text:
        start, _, end = text.partition("*")
        if not start or not end:
            return None
        return start, end
    return text, text


def _expression_pattern(delimiters: Tuple[str, str]) -> re.Pattern:
    start, end = delimiters
    return re.compile(re.escape(start) + r"([^\s]+?)" + re.escape(end))


def _lookup(key: str, properties: Mapping[str, str]) -> str | None:
    if key in properties:
        return str(properties[key])
    if key.startswith(ENV_PREFIX):
        return os.environ.get(key[len(ENV_PREFIX) :])
    return None


def _substitute(
    text: str,
    properties: Mapping[str, str],
    pattern: re.Pattern,
    resolving: Set[str],
) -> str:
    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key in resolving:
            raise ValueError(f"Expression cycle detected while resolving '{key}'")
        value = _lookup(key, properties)
        if value is None:
            return match.group(0)
        return _substitute(value, properties, pattern, resolving | {key})

    return pattern.sub(replace, text)


def interpolate(
    line: str,
    properties: Mapping[str, str],
    filter: str | None = DEFAULT_FILTER,
) -> str:
    """
    Replaces the property expressions of a single line.

    Parameters:
        line (str): The text to interpolate.
        properties (Mapping[str, str]): The project properties.
        filter (str, optional): The delimiter filter (see module documentation).

    Returns:
        str: The interpolated line.

    Raises:
        ValueError: If property values reference each other in a cycle.
    """
    delimiters = extract_delimiters(filter)
    if delimiters is None:
        return line
    return _substitute(line, properties, _expression_pattern(delimiters), set())


def interpolate_dockerfile(
    dockerfile: PathType,
    properties: Mapping[str, str],
    filter: str | None = DEFAULT_FILTER,
) -> str:
    """
    Reads a Dockerfile and returns its interpolated content, every line ending with a newline.
    """
    lines = Path(dockerfile).read_text(encoding="utf-8").splitlines()
    return "".join(interpolate(line, properties, filter) + "\n" for line in lines)


def extract_lines(
    dockerfile: PathType,
    keyword: str,
    properties: Mapping[str, str],
    filter: str | None = DEFAULT_FILTER,
) -> List[List[str]]:
    """
    Extracts the lines of a Dockerfile starting with `keyword` (case insensitive).

    Each line is interpolated, then split on whitespace.

    Returns:
        List[List[str]]: The words of every matching line, keyword included.
    """
    result: List[List[str]] = []
    for line in Path(dockerfile).read_text(encoding="utf-8").splitlines():
        parts = interpolate(line, properties, filter).split()
        if parts and parts[0].lower() == keyword.lower():
            result.append(parts)
    return result


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def extract_args(
    dockerfile: PathType,
    properties: Mapping[str, str],
    filter: str | None = DEFAULT_FILTER,
    build_args: Mapping[str, str] | None = None,
) -> Dict[str, str]:
    """
    Extracts the ``ARG`` declarations of a Dockerfile.

    ``ARG NAME=value`` declares a default value; a bare ``ARG NAME`` takes its value from
    `build_args` (empty when unknown).
    """
    args: Dict[str, str] = {}
    for parts in extract_lines(dockerfile, "ARG", properties, filter):
        if len(parts) < 2:
            continue
        declaration = parts[1]
        if "=" in declaration:
            name, _, value = declaration.partition("=")
            args[name] = _strip_quotes(value)
        elif build_args is not None:
            args[declaration] = build_args.get(declaration, "")
    return args


def _resolve_arg(reference: str, args: Mapping[str, str]) -> str | None:
    match = _ARG_REFERENCE.fullmatch(reference)
    if match is None:
        return None
    return args.get(match.group(1) if match.group(1) is not None else match.group(2))


def _resolve_image(image: str, args: Mapping[str, str]) -> str:
    if image.startswith("$"):
        return _resolve_arg(image, args) or image
    name, sep, tag = image.partition(":")
    if sep:
        resolved = _resolve_arg(tag, args)
        if resolved is not None:
            return f"{name}:{resolved}"
    return image


def extract_base_images(
    dockerfile: PathType,
    properties: Mapping[str, str],
    filter: str | None = DEFAULT_FILTER,
    build_args: Mapping[str, str] | None = None,
) -> List[str]:
    """
    Extracts the base images of a (possibly multi-stage) Dockerfile.

    Images referenced through an ``ARG`` are resolved, and stages referring to an earlier
    ``FROM ... AS <alias>`` are not reported as base images.

    Returns:
        List[str]: The base images, in order of first appearance, without duplicates.
    """
    args = extract_args(dockerfile, properties, filter, build_args)
    images: List[str] = []
    aliases: Set[str] = set()
    for parts in extract_lines(dockerfile, "FROM", properties, filter):
        if len(parts) == 2:
            image = None if parts[1] in aliases else _resolve_image(parts[1], args)
        elif len(parts) == 4 and parts[2].lower() == "as":
            image = None if parts[1] in aliases else _resolve_image(parts[1], args)
            aliases.add(parts[3])
        else:
            continue
        if image is not None and image not in images:
            images.append(image)
    return images
