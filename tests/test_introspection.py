import pytest

from busferry.introspection import (
    Access,
    IntrospectionError,
    IntrospectionTree,
    MemberKind,
    is_object_path_valid,
)

DOCUMENT = """<?xml version="1.0" encoding="UTF-8"?>
<node name="/org/example/Thing">
  <interface name="org.example.Iface">
    <method name="Frob">
      <arg name="x" type="i" direction="in"/>
      <arg name="y" type="s" direction="out"/>
      <annotation name="org.freedesktop.DBus.Deprecated" value="true"/>
    </method>
    <signal name="Changed">
      <arg name="v" type="u"/>
    </signal>
    <property name="Size" type="t" access="read"/>
  </interface>
  <node name="child"/>
</node>
"""


def wrap_interface(body):
    return f'<node name="/a"><interface name="i.f">{body}</interface></node>'


@pytest.fixture
def tree():
    t = IntrospectionTree()
    t.merge_xml(DOCUMENT, "")
    return t


def thing(tree):
    return tree.root_node.children["org"].children["example"].children["Thing"]


def test_paths(tree):
    node = thing(tree)
    assert tree.root_node.path() == "/"
    assert node.path() == "/org/example/Thing"
    assert node.children["child"].path() == "/org/example/Thing/child"
    assert tree.root_node.children["org"].path() == "/org"


def test_method_arguments(tree):
    method = thing(tree).interfaces["org.example.Iface"].methods["Frob"]
    assert method.kind == MemberKind.METHOD_CALL
    assert [(a.name, a.type, a.is_direction_out) for a in method.arguments] == [
        ("x", "i", False),
        ("y", "s", True),
    ]


def test_signal_arguments_default_out(tree):
    signal = thing(tree).interfaces["org.example.Iface"].methods["Changed"]
    assert signal.kind == MemberKind.SIGNAL
    assert signal.arguments[0].is_direction_out is True


def test_property(tree):
    prop = thing(tree).interfaces["org.example.Iface"].properties["Size"]
    assert (prop.name, prop.type, prop.access) == ("Size", "t", Access.READ)


def test_readwrite_is_read_and_write():
    t = IntrospectionTree()
    t.merge_xml(wrap_interface('<property name="P" type="s" access="readwrite"/>'), "/a")
    prop = t.root_node.children["a"].interfaces["i.f"].properties["P"]
    assert prop.access == Access.READ | Access.WRITE


def test_duplicate_merge_rejected(tree):
    with pytest.raises(IntrospectionError):
        tree.merge_xml(DOCUMENT, "")


def test_sibling_merge_shares_parents(tree):
    tree.merge_xml('<node name="/org/example/Other"/>', "/org/example/Other")
    example = tree.root_node.children["org"].children["example"]
    assert sorted(example.children) == ["Other", "Thing"]


def test_path_mismatch_rejected():
    with pytest.raises(IntrospectionError):
        IntrospectionTree().merge_xml('<node name="/a"/>', "/b")


@pytest.mark.parametrize(
    "document",
    [
        "<node name='/a'",
        '<interface name="/a"/>',
        "<node/>",
        '<node name="/a" extra="1"/>',
        '<node name="relative"/>',
        '<node name="/"/>',
    ],
)
def test_bad_documents_rejected(document):
    with pytest.raises(IntrospectionError):
        IntrospectionTree().merge_xml(document, "")


@pytest.mark.parametrize(
    "body",
    [
        '<signal name="S"><arg type="s" direction="in"/></signal>',
        '<method name="M"><arg name="x"/></method>',
        '<method name="M"><arg type="s" direction="sideways"/></method>',
        '<method name="M"><bogus/></method>',
        '<property name="P" type="s"/>',
        '<property name="P" type="s" access="never"/>',
        "<unknown/>",
    ],
)
def test_bad_interface_contents_rejected(body):
    with pytest.raises(IntrospectionError):
        IntrospectionTree().merge_xml(wrap_interface(body), "/a")


def test_unknown_node_children_ignored():
    t = IntrospectionTree()
    t.merge_xml('<node name="/a"><whatever/><node name="b"/></node>', "/a")
    assert list(t.root_node.children["a"].children) == ["b"]


@pytest.mark.parametrize(
    "path, valid",
    [
        ("/", True),
        ("/org/example_1/X", True),
        ("", False),
        ("org", False),
        ("/org/", False),
        ("//org", False),
        ("/org-x", False),
    ],
)
def test_is_object_path_valid(path, valid):
    assert is_object_path_valid(path) is valid