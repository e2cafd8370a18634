import argparse
import sys
import xml.etree.ElementTree as ET
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import sdkgen  # noqa: E402


@pytest.fixture
def existing_paths(tmp_path: Path) -> dict[str, Path]:
    dump = tmp_path / "reflection.xml"
    dump.write_text("<reflection />\n", encoding="utf-8")

    policy = tmp_path / "policy.xml"
    policy.write_text("<policy />\n", encoding="utf-8")

    output_dir = tmp_path / "out"
    return {
        "dump": dump,
        "policy": policy,
        "output_dir": output_dir,
    }


@pytest.fixture
def missing_path(tmp_path: Path) -> Path:
    return tmp_path / "missing"


@pytest.fixture
def make_args(existing_paths: dict[str, Path]) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "dump": existing_paths["dump"],
            "policy": None,
            "output_dir": existing_paths["output_dir"],
            "product": None,
            "emit_empty_files": False,
            "member_alignment": None,
            "verbose": False,
            "list_packages": False,
            "info": None,
            "filter": None,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


class ObjectFactory:
    """Builds small linked reflection graphs without going through XML."""

    def __init__(self):
        self.objects: list[sdkgen.ReflectedObject] = []

    def _add(self, obj: sdkgen.ReflectedObject) -> sdkgen.ReflectedObject:
        self.objects.append(obj)
        return obj

    def _next_index(self) -> int:
        return len(self.objects)

    def package(self, name: str, valid: bool = True) -> sdkgen.ReflectedObject:
        return self._add(
            sdkgen.ReflectedObject(
                self._next_index(),
                sdkgen.ObjectKind.PACKAGE,
                name,
                f"Package {name}",
                valid=valid,
            )
        )

    def _type(self, kind, package, name, size, parent, cpp_name, address):
        obj = sdkgen.ReflectedObject(
            self._next_index(),
            kind,
            name,
            f"{kind.value} {package.name}.{name}",
            package=package,
            cpp_name=cpp_name,
        )
        obj.property_size = size
        obj.super = parent
        obj.address = address
        return self._add(obj)

    def struct(self, package, name, size, parent=None, cpp_name=None):
        return self._type(
            sdkgen.ObjectKind.SCRIPT_STRUCT, package, name, size, parent, cpp_name, 0
        )

    def klass(self, package, name, size, parent=None, cpp_name=None, address=0):
        return self._type(
            sdkgen.ObjectKind.CLASS, package, name, size, parent, cpp_name, address
        )

    def prop(
        self,
        owner,
        name,
        offset,
        size,
        cpp_type="int32_t",
        prop_type=sdkgen.PropertyType.PRIMITIVE,
        array_dim=1,
        flags=0,
        bit_mask=None,
        info_size=None,
        struct=None,
        by_ref=False,
    ):
        path = owner.full_name.split(" ", 1)[1]
        obj = sdkgen.ReflectedObject(
            self._next_index(),
            sdkgen.ObjectKind.PROPERTY,
            name,
            f"Property {path}.{name}",
            package=owner.package,
        )
        obj.offset = offset
        obj.element_size = size
        obj.array_dim = array_dim
        obj.property_flags = flags
        obj.bit_mask = bit_mask
        obj.struct = struct
        if prop_type is not sdkgen.PropertyType.UNKNOWN:
            obj.info = sdkgen.PropertyInfo(
                type=prop_type,
                size=size if info_size is None else info_size,
                cpp_type=cpp_type,
                can_be_reference=by_ref,
            )
        owner.children.append(obj)
        return self._add(obj)

    def function(self, owner, name, flags=0):
        obj = sdkgen.ReflectedObject(
            self._next_index(),
            sdkgen.ObjectKind.FUNCTION,
            name,
            f"Function {owner.full_name.split(' ', 1)[1]}.{name}",
            package=owner.package,
        )
        obj.function_flags = flags
        owner.children.append(obj)
        return self._add(obj)

    def enum(self, package, name, values):
        obj = sdkgen.ReflectedObject(
            self._next_index(),
            sdkgen.ObjectKind.ENUM,
            name,
            f"Enum {package.name}.{name}",
            package=package,
        )
        obj.values = list(values)
        return self._add(obj)

    def const(self, package, name, value):
        obj = sdkgen.ReflectedObject(
            self._next_index(),
            sdkgen.ObjectKind.CONST,
            name,
            f"Const {package.name}.{name}",
            package=package,
        )
        obj.value = value
        return self._add(obj)

    def store(self, product="TG", memory=None) -> sdkgen.ReflectionStore:
        return sdkgen.ReflectionStore(self.objects, product=product, memory=memory)


@pytest.fixture
def factory() -> ObjectFactory:
    return ObjectFactory()


@pytest.fixture
def make_context() -> Callable[..., sdkgen.GenerationContext]:
    def _make_context(store, policy=None, verbose=False) -> sdkgen.GenerationContext:
        if policy is None:
            policy = sdkgen.GenerationPolicy(product_short="TG")
        return sdkgen.GenerationContext(
            store=store,
            policy=policy,
            resolver=sdkgen.NameResolver(store),
            verbose=verbose,
        )

    return _make_context


@pytest.fixture
def make_reflection_root() -> Callable[[str], ET.Element]:
    def _make_reflection_root(inner_xml: str) -> ET.Element:
        return ET.fromstring(f'<reflection product="TG">{inner_xml}</reflection>')

    return _make_reflection_root


@pytest.fixture
def make_policy_root() -> Callable[..., ET.Element]:
    def _make_policy_root(inner_xml: str = "", attrs: str = "") -> ET.Element:
        return ET.fromstring(f"<policy {attrs}>{inner_xml}</policy>")

    return _make_policy_root
