"""A tree of objects, interfaces and members built from introspection XML."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Optional

__all__ = [
    "MemberKind",
    "Access",
    "Argument",
    "Method",
    "Property",
    "Interface",
    "IntrospectionNode",
    "IntrospectionError",
    "IntrospectionTree",
    "is_object_path_valid",
]

_OBJECT_PATH = re.compile(r"/|(?:/[A-Za-z0-9_]+)+")


class MemberKind(Enum):
    METHOD_CALL = "method"
    SIGNAL = "signal"


class Access(IntFlag):
    INVALID = 0
    READ = 1
    WRITE = 2
    READWRITE = READ | WRITE


_ACCESS_VALUES = {
    "readwrite": Access.READWRITE,
    "read": Access.READ,
    "write": Access.WRITE,
}


class IntrospectionError(ValueError):
    """Raised when introspection data cannot be merged into a tree."""


@dataclass
class Argument:
    name: str = ""
    type: str = ""
    is_direction_out: bool = False


@dataclass
class Method:
    kind: MemberKind
    name: str
    arguments: list[Argument] = field(default_factory=list)


@dataclass
class Property:
    name: str = ""
    type: str = ""
    access: Access = Access.INVALID


@dataclass
class Interface:
    name: str
    methods: dict[str, Method] = field(default_factory=dict)
    properties: dict[str, Property] = field(default_factory=dict)


@dataclass
class IntrospectionNode:
    name: str = ""
    parent: Optional["IntrospectionNode"] = field(default=None, repr=False, compare=False)
    children: dict[str, "IntrospectionNode"] = field(default_factory=dict)
    interfaces: dict[str, Interface] = field(default_factory=dict)

    def path(self) -> str:
        """Return the object path, like "/grand/parent/this"."""
        if self.parent is None:
            return "/"
        names = []
        node: Optional[IntrospectionNode] = self
        while node is not None and node.parent is not None:
            names.append(node.name)
            node = node.parent
        return "/" + "/".join(reversed(names))


def is_object_path_valid(path: str) -> bool:
    """Check an object path against the bus specification."""
    return _OBJECT_PATH.fullmatch(path) is not None


def _only_name_attribute(el: ET.Element) -> str:
    attrs = list(el.attrib.items())
    if len(attrs) != 1 or attrs[0][0] != "name":
        raise IntrospectionError(f"<{el.tag}> must have exactly one attribute, 'name'")
    return attrs[0][1]


def _parse_argument(el: ET.Element, kind: MemberKind) -> Argument:
    arg = Argument(is_direction_out=kind == MemberKind.SIGNAL)
    for key, value in el.attrib.items():
        if key == "name":
            arg.name = value
        elif key == "type":
            arg.type = value
        elif key == "direction":
            if value == "in":
                if kind == MemberKind.SIGNAL:
                    raise IntrospectionError("signal arguments cannot have direction 'in'")
                arg.is_direction_out = False
            elif value == "out":
                arg.is_direction_out = True
            else:
                raise IntrospectionError(f"invalid argument direction {value!r}")
        else:
            raise IntrospectionError(f"unknown argument attribute {key!r}")
    if not arg.type:
        raise IntrospectionError("argument without a type")
    return arg


def _parse_method(el: ET.Element, kind: MemberKind) -> Method:
    method = Method(kind=kind, name=_only_name_attribute(el))
    for child in el:
        if child.tag == "arg":
            method.arguments.append(_parse_argument(child, kind))
        elif child.tag != "annotation":
            raise IntrospectionError(f"unexpected <{child.tag}> in <{el.tag}>")
    return method


def _parse_property(el: ET.Element) -> Property:
    prop = Property()
    for key, value in el.attrib.items():
        if key == "name":
            prop.name = value
        elif key == "type":
            prop.type = value
        elif key == "access":
            if value not in _ACCESS_VALUES:
                raise IntrospectionError(f"invalid property access {value!r}")
            prop.access = _ACCESS_VALUES[value]
        else:
            raise IntrospectionError(f"unknown property attribute {key!r}")
    if not prop.name or not prop.type or prop.access == Access.INVALID:
        raise IntrospectionError("property needs name, type and access")
    return prop


def _parse_interface(el: ET.Element) -> Interface:
    iface = Interface(name=_only_name_attribute(el))
    for child in el:
        if child.tag == "method":
            method = _parse_method(child, MemberKind.METHOD_CALL)
            iface.methods[method.name] = method
        elif child.tag == "signal":
            method = _parse_method(child, MemberKind.SIGNAL)
            iface.methods[method.name] = method
        elif child.tag == "property":
            prop = _parse_property(child)
            iface.properties[prop.name] = prop
        else:
            raise IntrospectionError(f"unexpected <{child.tag}> in <interface>")
    return iface


def _build_node(
    el: ET.Element, parent: IntrospectionNode, name: Optional[str] = None
) -> IntrospectionNode:
    own_name = _only_name_attribute(el)
    node = IntrospectionNode(name=own_name if name is None else name, parent=parent)
    for child in el:
        if child.tag == "node":
            child_node = _build_node(child, node)
            node.children.setdefault(child_node.name, child_node)
        elif child.tag == "interface":
            iface = _parse_interface(child)
            node.interfaces[iface.name] = iface
    return node


class IntrospectionTree:
    """Object tree that introspection documents are merged into."""

    def __init__(self) -> None:
        self.root_node = IntrospectionNode()

    def merge_xml(self, document_text: str | bytes, path: str = "") -> None:
        """Merge an introspection document at path.

        Raises IntrospectionError if the document is malformed, its path
        does not match, or a node already exists at that path.
        """
        try:
            root_el = ET.fromstring(document_text)
        except ET.ParseError as exc:
            raise IntrospectionError(f"malformed XML: {exc}") from exc
        if root_el.tag != "node":
            raise IntrospectionError("the document root must be <node>")

        attrs = list(root_el.attrib.items())
        if attrs and attrs[0][0] == "name":
            intrinsic_path = attrs[0][1]
            if path and path != intrinsic_path:
                raise IntrospectionError(
                    f"path {path!r} does not match document path {intrinsic_path!r}"
                )
            path = intrinsic_path

        parent, leaf_name = self._find_or_create_parent(path)
        if not leaf_name:
            raise IntrospectionError("cannot merge a document at the root node")
        if leaf_name in parent.children:
            raise IntrospectionError(f"a node already exists at {path!r}")
        parent.children[leaf_name] = _build_node(root_el, parent, leaf_name)

    def _find_or_create_parent(self, path: str) -> tuple[IntrospectionNode, str]:
        if not is_object_path_valid(path):
            raise IntrospectionError(f"invalid object path {path!r}")
        elements = [part for part in path.split("/") if part]
        node = self.root_node
        for element in elements[:-1]:
            child = node.children.get(element)
            if child is None:
                child = IntrospectionNode(name=element, parent=node)
                node.children[element] = child
            node = child
        return node, elements[-1] if elements else ""