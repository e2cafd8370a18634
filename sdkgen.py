"""C++ SDK generator for reflection-capable object runtimes.

Rebuilds the type layout described by a reflection dump (packages, classes,
script structs, enums, constants, functions) and writes header-accurate C++
for it: field offsets and sizes, inheritance, method call stubs and
virtual-slot bindings. Produces one structs/classes/functions file triple per
package under <output>/SDK plus an ordered SDK.hpp umbrella header.

Usage:
    python sdkgen.py --dump reflection.xml --policy policy.xml --output-dir out
    python sdkgen.py --dump reflection.xml --list-packages --filter Engine
"""

import argparse
import functools
import re
import sys
import xml.etree.ElementTree as ET
from collections import Counter, defaultdict
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

DEFAULT_DUMP = Path("reflection.xml")
DEFAULT_OUTPUT_DIR = Path("sdk")
DEFAULT_PRODUCT = "SDK"


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    dump: Path
    policy: Path | None
    output_dir: Path
    product: str | None
    emit_empty_files: bool
    member_alignment: int | None
    verbose: bool


@dataclass(frozen=True)
class DiscoveryConfig:
    command: str
    filter_text: str | None
    info_package: str | None
    dump: Path


VALID_ERROR_CODES = {
    "PATH_NOT_FOUND",
    "CONFLICT_GENERATE_DISCOVERY",
    "FILTER_WITHOUT_LIST",
    "INVALID_PRODUCT_NAME",
    "INVALID_ALIGNMENT",
    "INVALID_PACKAGE_NAME",
    "INVALID_POLICY",
}
_PRODUCT_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PACKAGE_NAME_RE = re.compile(r"^[A-Za-z0-9_./\-]+$")


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def parse_alignment(raw: str) -> int:
    try:
        value = int(raw, 0)
    except ValueError:
        value = 0
    if value <= 0:
        raise ConfigError(
            "INVALID_ALIGNMENT",
            f"Invalid member alignment: {raw}",
            "Pass a positive byte count, e.g. --member-alignment 4 or 0x8.",
        )
    return value


def validate_product_name(name: str) -> str:
    if _PRODUCT_NAME_RE.match(name):
        return name
    raise ConfigError(
        "INVALID_PRODUCT_NAME",
        f"Invalid product name: {name}",
        "Product names are used in file names and must be identifiers (for example FN).",
    )


def validate_package_name(name: str) -> str:
    if _PACKAGE_NAME_RE.match(name):
        return name
    raise ConfigError(
        "INVALID_PACKAGE_NAME",
        f"Invalid package name: {name}",
        "Pass a package name as listed by --list-packages.",
    )


def validate_path_exists(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            suggestion or f"Pass the path explicitly: {flag} /path/to/resource",
        )
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing path for this flag.",
    )


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a C++ SDK from a runtime reflection dump"
    )

    parser.add_argument("--dump", type=Path, default=DEFAULT_DUMP)
    parser.add_argument("--policy", type=Path, default=None)
    parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR)
    parser.add_argument("--product", type=str, default=None)
    parser.add_argument("--emit-empty-files", action="store_true", default=False)
    parser.add_argument("--member-alignment", type=str, default=None)
    parser.add_argument("--verbose", action="store_true", default=False)

    discovery_group = parser.add_mutually_exclusive_group()
    discovery_group.add_argument("--list-packages", action="store_true", default=False)
    discovery_group.add_argument("--info", type=str, default=None)

    parser.add_argument("--filter", type=str, default=None)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


_DUMP_SUGGESTION = (
    "Export the runtime's reflection data first, or pass a custom path:\n"
    "  --dump /your/path/to/reflection.xml"
)


def validate_config(args: argparse.Namespace) -> GenerateConfig | DiscoveryConfig:
    has_generate_input = bool(
        args.policy
        or args.product
        or args.emit_empty_files
        or args.member_alignment is not None
    )
    has_discovery_command = bool(args.list_packages or args.info)

    if args.filter and not args.list_packages:
        raise ConfigError(
            "FILTER_WITHOUT_LIST",
            "--filter requires --list-packages.",
            "Add --list-packages or remove --filter.",
        )

    if has_generate_input and has_discovery_command:
        raise ConfigError(
            "CONFLICT_GENERATE_DISCOVERY",
            "Generate flags cannot be combined with discovery flags.",
            "Choose either generate mode or one discovery command.",
        )

    dump = validate_path_exists(args.dump, "--dump", _DUMP_SUGGESTION)

    if has_discovery_command:
        command = "list-packages" if args.list_packages else "info"
        info_package = (
            validate_package_name(args.info) if args.info is not None else None
        )
        return DiscoveryConfig(
            command=command,
            filter_text=args.filter,
            info_package=info_package,
            dump=dump,
        )

    policy = None
    if args.policy is not None:
        policy = validate_path_exists(args.policy, "--policy")

    product = validate_product_name(args.product) if args.product else None
    member_alignment = (
        parse_alignment(args.member_alignment)
        if args.member_alignment is not None
        else None
    )

    return GenerateConfig(
        dump=dump,
        policy=policy,
        output_dir=args.output_dir,
        product=product,
        emit_empty_files=bool(args.emit_empty_files),
        member_alignment=member_alignment,
        verbose=bool(args.verbose),
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig | DiscoveryConfig:
    return validate_config(parse_args(argv))


# ===--- Constants ---=== #

# Names the runtime gives to class default objects and half-loaded types.
PLACEHOLDER_MARKERS = (
    "Default__",
    "<uninitialized>",
    "_uninitialized_",
    "PLACEHOLDER-CLASS",
    "PLACEHOLDER_CLASS",
)

POINTER_SIZE = 8
VTABLE_SCAN_WINDOW = 0x200
MAX_VTABLE_SLOTS = 0x2000
UNKNOWN_MEMBER_TYPE = "unsigned char"

FUNC_NATIVE = 0x00000400
FUNC_STATIC = 0x00002000

CPF_CONST_PARM = 0x0000000000000002
CPF_PARM = 0x0000000000000080
CPF_OUT_PARM = 0x0000000000000100
CPF_RETURN_PARM = 0x0000000000000400

PROPERTY_FLAG_NAMES: tuple[tuple[int, str], ...] = (
    (0x0000000000000001, "Edit"),
    (0x0000000000000002, "ConstParm"),
    (0x0000000000000004, "BlueprintVisible"),
    (0x0000000000000008, "ExportObject"),
    (0x0000000000000010, "BlueprintReadOnly"),
    (0x0000000000000020, "Net"),
    (0x0000000000000040, "EditFixedSize"),
    (0x0000000000000080, "Parm"),
    (0x0000000000000100, "OutParm"),
    (0x0000000000000200, "ZeroConstructor"),
    (0x0000000000000400, "ReturnParm"),
    (0x0000000000000800, "DisableEditOnTemplate"),
    (0x0000000000002000, "Transient"),
    (0x0000000000004000, "Config"),
    (0x0000000000010000, "DisableEditOnInstance"),
    (0x0000000000020000, "EditConst"),
    (0x0000000000040000, "GlobalConfig"),
    (0x0000000000080000, "InstancedReference"),
    (0x0000000000200000, "DuplicateTransient"),
    (0x0000000000400000, "SubobjectReference"),
    (0x0000000001000000, "SaveGame"),
    (0x0000000002000000, "NoClear"),
    (0x0000000008000000, "ReferenceParm"),
    (0x0000000010000000, "BlueprintAssignable"),
    (0x0000000020000000, "Deprecated"),
    (0x0000000040000000, "IsPlainOldData"),
    (0x0000000080000000, "RepSkip"),
    (0x0000000100000000, "RepNotify"),
    (0x0000000200000000, "Interp"),
    (0x0000000400000000, "NonTransactional"),
    (0x0000000800000000, "EditorOnly"),
    (0x0000001000000000, "NoDestructor"),
    (0x0000004000000000, "AutoWeak"),
    (0x0000008000000000, "ContainsInstancedReference"),
    (0x0000010000000000, "AssetRegistrySearchable"),
    (0x0000020000000000, "SimpleDisplay"),
    (0x0000040000000000, "AdvancedDisplay"),
    (0x0000080000000000, "Protected"),
    (0x0000100000000000, "BlueprintCallable"),
    (0x0000200000000000, "BlueprintAuthorityOnly"),
    (0x0000400000000000, "TextExportTransient"),
    (0x0000800000000000, "NonPIEDuplicateTransient"),
    (0x0001000000000000, "ExposeOnSpawn"),
    (0x0002000000000000, "PersistentInstance"),
    (0x0004000000000000, "UObjectWrapper"),
    (0x0008000000000000, "HasGetValueTypeHash"),
    (0x0010000000000000, "NativeAccessSpecifierPublic"),
    (0x0020000000000000, "NativeAccessSpecifierProtected"),
    (0x0040000000000000, "NativeAccessSpecifierPrivate"),
    (0x0080000000000000, "SkipSerialization"),
)

FUNCTION_FLAG_NAMES: tuple[tuple[int, str], ...] = (
    (0x00000001, "Final"),
    (0x00000002, "RequiredAPI"),
    (0x00000004, "BlueprintAuthorityOnly"),
    (0x00000008, "BlueprintCosmetic"),
    (0x00000040, "Net"),
    (0x00000080, "NetReliable"),
    (0x00000100, "NetRequest"),
    (0x00000200, "Exec"),
    (0x00000400, "Native"),
    (0x00000800, "Event"),
    (0x00001000, "NetResponse"),
    (0x00002000, "Static"),
    (0x00004000, "NetMulticast"),
    (0x00010000, "MulticastDelegate"),
    (0x00020000, "Public"),
    (0x00040000, "Private"),
    (0x00080000, "Protected"),
    (0x00100000, "Delegate"),
    (0x00200000, "NetServer"),
    (0x00400000, "HasOutParms"),
    (0x00800000, "HasDefaults"),
    (0x01000000, "NetClient"),
    (0x02000000, "DLLImport"),
    (0x04000000, "BlueprintCallable"),
    (0x08000000, "BlueprintEvent"),
    (0x10000000, "BlueprintPure"),
    (0x40000000, "Const"),
)


def stringify_flags(flags: int, names: tuple[tuple[int, str], ...]) -> str:
    return ", ".join(label for bit, label in names if flags & bit)


def is_placeholder_name(name: str) -> bool:
    return any(marker in name for marker in PLACEHOLDER_MARKERS)


# ===--- Memory image ---=== #


class MemoryReadError(Exception):
    def __init__(self, address: int):
        super().__init__(f"unreadable address 0x{address:X}")
        self.address = address


@dataclass(frozen=True)
class MemoryRegion:
    """A contiguous block of captured target memory.

    Attributes:
        start: Address of the first byte.
        data: Captured bytes.
        protect: Protection letters, any of "r", "w", "x".
    """

    start: int
    data: bytes
    protect: str = "r"

    @property
    def end(self) -> int:
        return self.start + len(self.data)

    @property
    def readable(self) -> bool:
        return "r" in self.protect

    @property
    def executable(self) -> bool:
        return self.readable and "x" in self.protect


def pack_pointers(values: list[int]) -> bytes:
    return b"".join(v.to_bytes(POINTER_SIZE, "little") for v in values)


def parse_pattern(text: str) -> tuple[bytes, str]:
    """Parse an IDA-style byte pattern ("48 8B ?? 05") into (bytes, mask).

    Wildcard tokens ("?" or "??") become a zero byte with mask character "?";
    every other byte gets mask character "x".

    Raises:
        ValueError: If the pattern is empty or a token is not a hex byte.
    """
    tokens = text.split()
    if not tokens:
        raise ValueError("empty byte pattern")
    data = bytearray()
    mask: list[str] = []
    for token in tokens:
        if token in ("?", "??"):
            data.append(0)
            mask.append("?")
            continue
        if len(token) != 2:
            raise ValueError(f"invalid pattern byte: {token!r}")
        data.append(int(token, 16))
        mask.append("x")
    return bytes(data), "".join(mask)


class MemoryImage:
    """Read-only view over captured memory regions of the target process."""

    def __init__(self, regions):
        self.regions = sorted(regions, key=lambda r: r.start)

    def region_at(self, address: int) -> MemoryRegion | None:
        for region in self.regions:
            if region.start <= address < region.end:
                return region
        return None

    def read_bytes(self, address: int, length: int) -> bytes:
        region = self.region_at(address)
        if region is None or not region.readable or address + length > region.end:
            raise MemoryReadError(address)
        offset = address - region.start
        return region.data[offset : offset + length]

    def read_pointer(self, address: int) -> int:
        return int.from_bytes(self.read_bytes(address, POINTER_SIZE), "little")

    def is_executable(self, address: int) -> bool:
        region = self.region_at(address)
        return region is not None and region.executable

    def find_pattern(self, start: int, length: int, pattern: bytes, mask: str) -> int:
        """Return the offset from start of the first masked match, or -1.

        The search window is [start, start + length) clipped to the region
        containing start.
        """
        region = self.region_at(start)
        if region is None or not region.readable or not pattern:
            return -1
        begin = start - region.start
        window = region.data[begin : min(start + length, region.end) - region.start]
        for i in range(len(window) - len(pattern) + 1):
            if all(
                mask[j] == "?" or window[i + j] == pattern[j]
                for j in range(len(pattern))
            ):
                return i
        return -1


# ===--- Reflection model ---=== #


class ObjectKind(Enum):
    PACKAGE = "Package"
    CLASS = "Class"
    SCRIPT_STRUCT = "ScriptStruct"
    ENUM = "Enum"
    CONST = "Const"
    FUNCTION = "Function"
    PROPERTY = "Property"


class PropertyType(Enum):
    PRIMITIVE = "primitive"
    CUSTOM_STRUCT = "struct"
    CONTAINER = "container"
    UNKNOWN = "unknown"


class ContainerKind(Enum):
    ARRAY = "array"
    MAP = "map"


@dataclass(frozen=True)
class PropertyInfo:
    """Semantic type of a property as reported by the reflection source.

    Attributes:
        type: Classification of the property's value type.
        size: Canonical byte size of one element of the C++ type.
        cpp_type: C++ type string used for the emitted member.
        can_be_reference: True when a parameter of this type should be
            passed by const reference (non-trivial value types).
    """

    type: PropertyType
    size: int = 0
    cpp_type: str = ""
    can_be_reference: bool = False


UNKNOWN_PROPERTY_INFO = PropertyInfo(PropertyType.UNKNOWN)


class ReflectedObject:
    """One object of the runtime type graph.

    Compared and hashed by identity: two objects with the same name are still
    distinct types.
    """

    def __init__(
        self,
        index: int,
        kind: ObjectKind,
        name: str,
        full_name: str,
        package: "ReflectedObject | None" = None,
        cpp_name: str | None = None,
        valid: bool = True,
    ):
        self.index = index
        self.kind = kind
        self.name = name
        self.full_name = full_name
        self.package = package
        self.cpp_name = cpp_name or name
        self.valid = valid
        self.super: ReflectedObject | None = None
        self.children: list[ReflectedObject] = []
        self.property_size = 0
        self.address = 0
        self.values: list[str] = []
        self.value = ""
        self.function_flags = 0
        self.offset = 0
        self.element_size = 0
        self.array_dim = 1
        self.property_flags = 0
        self.bit_mask: int | None = None
        self.info = UNKNOWN_PROPERTY_INFO
        self.struct: ReflectedObject | None = None
        self.container: ContainerKind | None = None
        self.inner: list[ReflectedObject] = []

    @property
    def is_bool(self) -> bool:
        return self.bit_mask is not None

    def __repr__(self) -> str:
        return f"<ReflectedObject {self.full_name}>"


class ReflectionStore:
    """Every reflected object of one runtime, in enumeration order."""

    def __init__(self, objects, product: str = "", memory: MemoryImage | None = None):
        self.objects: list[ReflectedObject] = list(objects)
        self.product = product
        self.memory = memory if memory is not None else MemoryImage(())
        self._by_full_name: dict[str, ReflectedObject] = {}
        self._by_package: dict[ReflectedObject, list[ReflectedObject]] = defaultdict(list)
        self._name_counts = Counter((o.kind, o.name) for o in self.objects)
        for obj in self.objects:
            self._by_full_name.setdefault(obj.full_name, obj)
            if obj.package is not None and obj.kind is not ObjectKind.PACKAGE:
                self._by_package[obj.package].append(obj)

    def __iter__(self):
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)

    def packages(self) -> list[ReflectedObject]:
        return [o for o in self.objects if o.kind is ObjectKind.PACKAGE]

    def objects_in(self, package: ReflectedObject) -> list[ReflectedObject]:
        return list(self._by_package.get(package, ()))

    def find(self, full_name: str) -> ReflectedObject | None:
        return self._by_full_name.get(full_name)

    def count_named(self, name: str, kind: ObjectKind) -> int:
        return self._name_counts[(kind, name)]


# ===--- Reflection dump parsing ---=== #


class ReflectionDumpError(Exception):
    pass


_OBJECT_TAGS = {
    "class": ObjectKind.CLASS,
    "struct": ObjectKind.SCRIPT_STRUCT,
    "enum": ObjectKind.ENUM,
    "const": ObjectKind.CONST,
    "function": ObjectKind.FUNCTION,
    "property": ObjectKind.PROPERTY,
}

_PROPERTY_TYPES = {
    "primitive": (PropertyType.PRIMITIVE, None),
    "struct": (PropertyType.CUSTOM_STRUCT, None),
    "array": (PropertyType.CONTAINER, ContainerKind.ARRAY),
    "map": (PropertyType.CONTAINER, ContainerKind.MAP),
    "unknown": (PropertyType.UNKNOWN, None),
}

_INNER_TAGS = {
    ContainerKind.ARRAY: ("inner",),
    ContainerKind.MAP: ("key", "value"),
}


def _parse_int(el: ET.Element, attr: str, default: int = 0) -> int:
    raw = el.get(attr)
    if raw is None or raw == "":
        return default
    try:
        return int(raw, 0)
    except ValueError:
        raise ReflectionDumpError(
            f"<{el.tag} name={el.get('name', '')!r}>: {attr}={raw!r} is not an integer"
        ) from None


def _parse_flag(el: ET.Element, attr: str, default: bool = False) -> bool:
    raw = el.get(attr)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def _load_property_fields(
    obj: ReflectedObject,
    el: ET.Element,
    path: str,
    objects: list[ReflectedObject],
    references: list[tuple[ReflectedObject, str, str]],
) -> None:
    obj.offset = _parse_int(el, "offset")
    obj.element_size = _parse_int(el, "element-size")
    obj.array_dim = max(1, _parse_int(el, "array-dim", 1))
    obj.property_flags = _parse_int(el, "flags")
    if el.get("bit-mask") is not None:
        obj.bit_mask = _parse_int(el, "bit-mask")

    type_name = el.get("type", "unknown")
    if type_name not in _PROPERTY_TYPES:
        raise ReflectionDumpError(
            f"Property {obj.full_name}: unknown type {type_name!r}"
        )
    property_type, container = _PROPERTY_TYPES[type_name]
    obj.container = container
    if property_type is not PropertyType.UNKNOWN:
        obj.info = PropertyInfo(
            type=property_type,
            size=_parse_int(el, "type-size", obj.element_size),
            cpp_type=el.get("cpp-type", ""),
            can_be_reference=_parse_flag(el, "by-ref"),
        )

    struct_ref = el.get("struct")
    if struct_ref:
        references.append((obj, "struct", struct_ref))

    if container is not None:
        for tag in _INNER_TAGS[container]:
            inner_el = el.find(tag)
            if inner_el is None:
                continue
            inner = ReflectedObject(
                index=_parse_int(inner_el, "index", len(objects)),
                kind=ObjectKind.PROPERTY,
                name=inner_el.get("name", f"{obj.name}_{tag}"),
                full_name=f"{inner_el.get('class', 'Property')} {path}.{obj.name}.{tag}",
                package=obj.package,
            )
            objects.append(inner)
            _load_property_fields(inner, inner_el, path, objects, references)
            obj.inner.append(inner)


def _load_object(
    el: ET.Element,
    package: ReflectedObject,
    path: str,
    objects: list[ReflectedObject],
    references: list[tuple[ReflectedObject, str, str]],
) -> ReflectedObject:
    kind = _OBJECT_TAGS.get(el.tag)
    if kind is None:
        raise ReflectionDumpError(f"Unknown element <{el.tag}> in package {package.name}")
    name = el.get("name", "")
    if not name:
        raise ReflectionDumpError(f"<{el.tag}> without a name in package {package.name}")

    label = el.get("class", "Property") if kind is ObjectKind.PROPERTY else kind.value
    obj = ReflectedObject(
        index=_parse_int(el, "index", len(objects)),
        kind=kind,
        name=name,
        full_name=el.get("full-name") or f"{label} {path}.{name}",
        package=None if _parse_flag(el, "orphan") else package,
        cpp_name=el.get("cpp-name"),
        valid=_parse_flag(el, "valid", True),
    )
    objects.append(obj)

    if kind in (ObjectKind.CLASS, ObjectKind.SCRIPT_STRUCT, ObjectKind.FUNCTION):
        obj.property_size = _parse_int(el, "size")
        obj.address = _parse_int(el, "address")
        obj.function_flags = _parse_int(el, "flags")
        super_ref = el.get("super")
        if super_ref:
            references.append((obj, "super", super_ref))
        for child_el in el:
            obj.children.append(
                _load_object(child_el, package, f"{path}.{name}", objects, references)
            )
    elif kind is ObjectKind.ENUM:
        obj.values = [v.get("name", "") for v in el.findall("value")]
    elif kind is ObjectKind.CONST:
        obj.value = el.get("value", "")
    else:
        _load_property_fields(obj, el, path, objects, references)

    return obj


def parse_memory(el: ET.Element | None) -> MemoryImage:
    """Build a MemoryImage from a <memory> element (None gives an empty image).

    <region address= protect=> carries hex bytes; <pointers address= protect=>
    carries whitespace-separated pointer values packed little-endian.
    """
    if el is None:
        return MemoryImage(())
    regions = []
    for region_el in el:
        start = _parse_int(region_el, "address")
        protect = region_el.get("protect", "r")
        text = region_el.text or ""
        try:
            if region_el.tag == "region":
                data = bytes.fromhex(text)
            elif region_el.tag == "pointers":
                data = pack_pointers([int(tok, 0) for tok in text.split()])
            else:
                raise ReflectionDumpError(f"Unknown memory element <{region_el.tag}>")
        except ValueError as err:
            raise ReflectionDumpError(
                f"Memory region at 0x{start:X}: {err}"
            ) from None
        regions.append(MemoryRegion(start=start, data=data, protect=protect))
    return MemoryImage(regions)


def parse_reflection(root: ET.Element) -> ReflectionStore:
    """Build a ReflectionStore from a parsed <reflection> document.

    Two passes: every object is created and registered by full name first,
    then super= and struct= references are resolved. A reference that names
    no object is left empty so downstream stages treat it as invalid.

    Raises:
        ReflectionDumpError: Wrong root element, unknown tags, missing names
            or non-numeric numeric attributes.
    """
    if root.tag != "reflection":
        raise ReflectionDumpError(f"Expected <reflection> root, got <{root.tag}>")

    objects: list[ReflectedObject] = []
    references: list[tuple[ReflectedObject, str, str]] = []
    for package_el in root.findall("package"):
        name = package_el.get("name", "")
        package = ReflectedObject(
            index=_parse_int(package_el, "index", len(objects)),
            kind=ObjectKind.PACKAGE,
            name=name,
            full_name=f"Package {name}",
            valid=bool(name) and _parse_flag(package_el, "valid", True),
        )
        objects.append(package)
        for child_el in package_el:
            _load_object(child_el, package, name, objects, references)

    by_full_name: dict[str, ReflectedObject] = {}
    for obj in objects:
        by_full_name.setdefault(obj.full_name, obj)
    for obj, attribute, target in references:
        setattr(obj, attribute, by_full_name.get(target))

    return ReflectionStore(
        objects,
        product=root.get("product", ""),
        memory=parse_memory(root.find("memory")),
    )


def load_reflection(path: Path) -> ReflectionStore:
    return parse_reflection(ET.parse(path).getroot())


# ===--- Name resolution ---=== #

_INVALID_IDENTIFIER_RE = re.compile(r"[^A-Za-z0-9_]")


class NameResolver:
    def __init__(self, store: ReflectionStore):
        self.store = store

    def sanitize(self, raw: str) -> str:
        name = _INVALID_IDENTIFIER_RE.sub("_", raw)
        if not name:
            return "_"
        if name[0].isdigit():
            name = "_" + name
        return name

    def unique_name(self, obj: ReflectedObject) -> str:
        """Sanitized C++ name, package-prefixed when the raw name is not unique."""
        name = obj.cpp_name
        if obj.package is not None and self.store.count_named(obj.name, obj.kind) > 1:
            name = f"{obj.package.name}_{name}"
        return self.sanitize(name)


# ===--- Generation policy ---=== #


class PredefinedMethodType(Enum):
    DEFAULT = "default"
    INLINE = "inline"


@dataclass(frozen=True)
class PredefinedMethod:
    """Hand-written or synthesized method attached to a struct or class.

    INLINE methods are emitted whole inside the type body. DEFAULT methods
    emit their signature as a declaration and their body in the functions
    file.
    """

    signature: str
    body: str
    method_type: PredefinedMethodType = PredefinedMethodType.DEFAULT

    @classmethod
    def inline(cls, body: str) -> "PredefinedMethod":
        return cls(signature="", body=body, method_type=PredefinedMethodType.INLINE)

    @classmethod
    def default(cls, signature: str, body: str) -> "PredefinedMethod":
        return cls(signature=signature, body=body)


@dataclass(frozen=True)
class PredefinedMember:
    cpp_type: str
    name: str


@dataclass(frozen=True)
class VirtualFunctionPattern:
    """Byte pattern identifying one virtual function, plus the method it binds.

    body_template is C++ text; every "{index}" is replaced by the matched
    slot index.
    """

    pattern: bytes
    mask: str
    body_template: str

    def render(self, index: int) -> str:
        return self.body_template.replace("{index}", str(index))


@dataclass(frozen=True)
class GenerationPolicy:
    """Per-target generation overrides.

    All per-type tables are keyed by the type's full name, for example
    "Class CoreUObject.Object".

    Attributes:
        product_short: Short product identifier used in output file names.
            Empty means "not set"; the pipeline falls back to the dump's
            product attribute, then DEFAULT_PRODUCT.
        emit_empty_files: Save packages even when they carry no content.
        use_strings: Look up classes and functions by name instead of by
            global object index in generated code.
        xor_strings: Wrap embedded names in the _xor_() obfuscation macro.
        member_alignment: Trailing gaps smaller than this are padding and
            get no filler member.
    """

    product_short: str = ""
    emit_empty_files: bool = False
    use_strings: bool = False
    xor_strings: bool = False
    member_alignment: int = 4
    type_overrides: dict[str, str] = field(default_factory=dict)
    alignas: dict[str, int] = field(default_factory=dict)
    predefined_members: dict[str, tuple[PredefinedMember, ...]] = field(
        default_factory=dict
    )
    predefined_static_members: dict[str, tuple[PredefinedMember, ...]] = field(
        default_factory=dict
    )
    predefined_methods: dict[str, tuple[PredefinedMethod, ...]] = field(
        default_factory=dict
    )
    virtual_patterns: dict[str, tuple[VirtualFunctionPattern, ...]] = field(
        default_factory=dict
    )

    def override_type(self, type_name: str) -> str:
        return self.type_overrides.get(type_name, type_name)

    def class_alignas(self, full_name: str) -> int:
        return self.alignas.get(full_name, 0)


def _policy_error(message: str) -> ConfigError:
    return ConfigError(
        "INVALID_POLICY",
        message,
        "Fix the policy file or run without --policy to use the defaults.",
    )


def _policy_int(el: ET.Element, attr: str, default: int) -> int:
    raw = el.get(attr)
    if raw is None:
        return default
    try:
        return int(raw, 0)
    except ValueError:
        raise _policy_error(f"<{el.tag}> {attr}={raw!r} is not an integer") from None


def _policy_body(el: ET.Element) -> str:
    # keep the first line's indentation, it is part of the emitted C++
    return (el.text or "").lstrip("\n").rstrip()


def _policy_target(el: ET.Element) -> str:
    target = el.get("type", "")
    if not target:
        raise _policy_error(f"<{el.tag}> requires a type= attribute")
    return target


def parse_policy(root: ET.Element) -> GenerationPolicy:
    """Build a GenerationPolicy from a parsed <policy> document.

    Raises:
        ConfigError: INVALID_POLICY for a wrong root, unknown elements,
            missing attributes or malformed numbers and byte patterns.
    """
    if root.tag != "policy":
        raise _policy_error(f"Expected <policy> root, got <{root.tag}>")

    type_overrides: dict[str, str] = {}
    alignas: dict[str, int] = {}
    members: dict[str, list[PredefinedMember]] = defaultdict(list)
    static_members: dict[str, list[PredefinedMember]] = defaultdict(list)
    methods: dict[str, list[PredefinedMethod]] = defaultdict(list)
    patterns: dict[str, list[VirtualFunctionPattern]] = defaultdict(list)

    for el in root:
        if el.tag == "type-override":
            type_overrides[el.get("name", "")] = el.get("cpp-type", "")
        elif el.tag == "alignas":
            alignas[_policy_target(el)] = _policy_int(el, "value", 0)
        elif el.tag in ("member", "static-member"):
            table = members if el.tag == "member" else static_members
            table[_policy_target(el)].append(
                PredefinedMember(cpp_type=el.get("cpp-type", ""), name=el.get("name", ""))
            )
        elif el.tag == "method":
            body = _policy_body(el)
            if el.get("kind", "default") == "inline":
                method = PredefinedMethod.inline(body)
            else:
                method = PredefinedMethod.default(el.get("signature", ""), body)
            methods[_policy_target(el)].append(method)
        elif el.tag == "virtual-pattern":
            try:
                data, mask = parse_pattern(el.get("pattern", ""))
            except ValueError as err:
                raise _policy_error(f"<virtual-pattern>: {err}") from None
            patterns[_policy_target(el)].append(
                VirtualFunctionPattern(
                    pattern=data,
                    mask=mask,
                    body_template=_policy_body(el),
                )
            )
        else:
            raise _policy_error(f"Unknown policy element <{el.tag}>")

    return GenerationPolicy(
        product_short=root.get("product", ""),
        emit_empty_files=_parse_flag(root, "emit-empty-files"),
        use_strings=_parse_flag(root, "use-strings"),
        xor_strings=_parse_flag(root, "xor-strings"),
        member_alignment=_policy_int(root, "member-alignment", 4),
        type_overrides=type_overrides,
        alignas=alignas,
        predefined_members={k: tuple(v) for k, v in members.items()},
        predefined_static_members={k: tuple(v) for k, v in static_members.items()},
        predefined_methods={k: tuple(v) for k, v in methods.items()},
        virtual_patterns={k: tuple(v) for k, v in patterns.items()},
    )


def load_policy(path: Path) -> GenerationPolicy:
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as err:
        raise _policy_error(f"Malformed policy file {path}: {err}") from None
    return parse_policy(root)


def apply_policy_overrides(
    policy: GenerationPolicy, config: GenerateConfig, store: ReflectionStore
) -> GenerationPolicy:
    """Layer CLI overrides and the product fallback chain onto a policy."""
    product = config.product or policy.product_short or store.product or DEFAULT_PRODUCT
    updated = replace(policy, product_short=product)
    if config.emit_empty_files:
        updated = replace(updated, emit_empty_files=True)
    if config.member_alignment is not None:
        updated = replace(updated, member_alignment=config.member_alignment)
    return updated


# ===--- Generated records ---=== #


@dataclass
class Member:
    """One emitted field. size is the total byte size including array dims."""

    name: str
    cpp_type: str
    offset: int
    size: int
    comment: str = ""
    flags: int = 0
    flags_string: str = ""
    is_unknown: bool = False

    @classmethod
    def unknown(cls, unknown_id: int, offset: int, size: int, reason: str) -> "Member":
        return cls(
            name=f"UnknownData{unknown_id:02d}[0x{size:X}]",
            cpp_type=UNKNOWN_MEMBER_TYPE,
            offset=offset,
            size=size,
            comment=reason,
            is_unknown=True,
        )


@dataclass
class EnumDef:
    name: str
    full_name: str
    values: list[str] = field(default_factory=list)


class ParamType(Enum):
    DEFAULT = 0
    OUT = 1
    RETURN = 2


@dataclass
class Parameter:
    name: str
    cpp_type: str
    param_type: ParamType
    pass_by_reference: bool = False
    flags_string: str = ""


@dataclass
class MethodDef:
    index: int
    full_name: str
    name: str
    is_native: bool = False
    is_static: bool = False
    flags_string: str = ""
    parameters: list[Parameter] = field(default_factory=list)
    extra_returns: int = 0

    @property
    def return_parameter(self) -> Parameter | None:
        for param in self.parameters:
            if param.param_type is ParamType.RETURN:
                return param
        return None


@dataclass
class StructDef:
    name: str
    full_name: str
    cpp_name: str
    cpp_name_full: str
    size: int
    inherited_size: int = 0
    members: list[Member] = field(default_factory=list)
    predefined_methods: list[PredefinedMethod] = field(default_factory=list)


@dataclass
class ClassDef(StructDef):
    methods: list[MethodDef] = field(default_factory=list)


def dedupe_name(name: str, seen: dict[str, int]) -> str:
    """Return name, or name plus a two-digit repeat counter if already seen.

    The first repeat of "X" becomes "X01", the second "X02", and so on.
    """
    count = seen.get(name, 0)
    seen[name] = count + 1
    if count == 0:
        return name
    return f"{name}{count:02d}"


# ===--- Dependency ordering ---=== #


class DefineStatus(Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class GenerationState:
    """Cross-package state shared by every PackageBuilder of one run.

    defined tracks which struct/class objects have been seen and emitted.
    package_order is the emission order of packages; every dependency package
    recorded through require_package sits before its referencer unless the
    two are part of a package cycle, which is recorded in order_conflicts.
    """

    def __init__(self):
        self.defined: dict[ReflectedObject, DefineStatus] = {}
        self.package_order: list[ReflectedObject] = []
        self.package_edges: dict[ReflectedObject, list[ReflectedObject]] = defaultdict(
            list
        )
        self.order_conflicts: list[tuple[ReflectedObject, ReflectedObject]] = []
        self.emitted: list[ReflectedObject] = []

    def mark_seen(self, obj: ReflectedObject) -> None:
        self.defined.setdefault(obj, DefineStatus.NOT_STARTED)

    def status(self, obj: ReflectedObject) -> DefineStatus:
        return self.defined.get(obj, DefineStatus.NOT_STARTED)

    def ensure_package(self, package: ReflectedObject) -> None:
        if package not in self.package_order:
            self.package_order.append(package)

    def require_package(
        self, dependency: ReflectedObject, referencer: ReflectedObject
    ) -> None:
        """Place dependency before referencer in package_order.

        A dependency not yet in the order is inserted right before the
        referencer. One already at or after the referencer is moved right
        before it, and the moved package's own recorded dependencies are
        pulled in front of it in turn.
        """
        self.ensure_package(referencer)
        edges = self.package_edges[referencer]
        if dependency not in edges:
            edges.append(dependency)
        self._pull_before(dependency, referencer, [referencer])

    def _pull_before(
        self,
        dependency: ReflectedObject,
        referencer: ReflectedObject,
        chain: list[ReflectedObject],
    ) -> None:
        order = self.package_order
        if dependency not in order:
            order.insert(order.index(referencer), dependency)
            return
        if order.index(dependency) < order.index(referencer):
            return
        if dependency in chain:
            conflict = (dependency, referencer)
            if conflict not in self.order_conflicts:
                self.order_conflicts.append(conflict)
            return

        order.remove(dependency)
        order.insert(order.index(referencer), dependency)
        for nested in list(self.package_edges.get(dependency, ())):
            self._pull_before(nested, dependency, chain + [dependency])


# ===--- Layout reconstruction ---=== #


def compare_properties(lhs: ReflectedObject, rhs: ReflectedObject) -> int:
    """Order by offset; two bit-fields sharing an offset order by bit mask."""
    if lhs.offset == rhs.offset and lhs.is_bool and rhs.is_bool:
        return (lhs.bit_mask > rhs.bit_mask) - (lhs.bit_mask < rhs.bit_mask)
    return (lhs.offset > rhs.offset) - (lhs.offset < rhs.offset)


def sort_properties(properties) -> list[ReflectedObject]:
    return sorted(properties, key=functools.cmp_to_key(compare_properties))


def is_layout_property(obj: ReflectedObject) -> bool:
    return obj.kind is ObjectKind.PROPERTY and obj.element_size > 0


def _shares_bitfield(previous: ReflectedObject | None, prop: ReflectedObject) -> bool:
    return (
        previous is not None
        and previous.is_bool
        and prop.is_bool
        and previous.offset == prop.offset
    )


def generate_members(
    struct_obj: ReflectedObject,
    offset: int,
    properties: list[ReflectedObject],
    policy: GenerationPolicy,
    resolver: NameResolver,
) -> list[Member]:
    """Turn sorted properties into a gap-free member list.

    Walks the properties with a cursor that starts at offset (the inherited
    size). Bytes the properties do not explain become UnknownData fillers:
    a gap before a property ("MISSED OFFSET"), the tail of a property whose
    resolved type is smaller than its raw size ("FIX WRONG TYPE SIZE OF
    PREVIOUS PROPERTY"), a property with no resolvable type ("UNKNOWN
    PROPERTY: <full name>"), and a trailing gap of at least
    policy.member_alignment bytes ("MISSED OFFSET").

    Args:
        struct_obj: The struct or class whose declared size bounds the layout.
        offset: Byte offset where this type's own members start.
        properties: Layout properties ordered by sort_properties.
        policy: Supplies the trailing-padding threshold.
        resolver: Sanitizes member names.

    Returns:
        Members in offset order.
    """
    members: list[Member] = []
    unique_names: dict[str, int] = {}
    unknown_id = 0
    previous = None

    for prop in properties:
        if offset < prop.offset:
            members.append(
                Member.unknown(unknown_id, offset, prop.offset - offset, "MISSED OFFSET")
            )
            unknown_id += 1

        raw_size = prop.element_size * prop.array_dim
        if prop.info.type is not PropertyType.UNKNOWN:
            name = dedupe_name(resolver.sanitize(prop.name), unique_names)
            if prop.array_dim > 1:
                name += f"[0x{prop.array_dim:X}]"
            if prop.is_bool:
                name += " : 1"

            resolved_size = prop.info.size * prop.array_dim
            member = Member(
                name=name,
                cpp_type=prop.info.cpp_type,
                offset=prop.offset,
                size=resolved_size,
                flags=prop.property_flags,
                flags_string=stringify_flags(prop.property_flags, PROPERTY_FLAG_NAMES),
            )
            if prop.offset < offset and not _shares_bitfield(previous, prop):
                member.comment = "OVERLAPS PREVIOUS PROPERTY"
            members.append(member)

            if raw_size > resolved_size:
                members.append(
                    Member.unknown(
                        unknown_id,
                        prop.offset + resolved_size,
                        raw_size - resolved_size,
                        "FIX WRONG TYPE SIZE OF PREVIOUS PROPERTY",
                    )
                )
                unknown_id += 1
        else:
            members.append(
                Member.unknown(
                    unknown_id, prop.offset, raw_size, f"UNKNOWN PROPERTY: {prop.full_name}"
                )
            )
            unknown_id += 1

        offset = max(offset, prop.offset + raw_size)
        previous = prop

    if offset < struct_obj.property_size:
        size = struct_obj.property_size - offset
        if size >= policy.member_alignment:
            members.append(Member.unknown(unknown_id, offset, size, "MISSED OFFSET"))

    return members


# ===--- Method synthesis ---=== #


def make_param_type(flags: int) -> ParamType | None:
    if flags & CPF_RETURN_PARM:
        return ParamType.RETURN
    if flags & CPF_OUT_PARM:
        # const out-params are inputs passed by reference
        if flags & CPF_CONST_PARM:
            return ParamType.DEFAULT
        return ParamType.OUT
    if flags & CPF_PARM:
        return ParamType.DEFAULT
    return None


def generate_method(
    function: ReflectedObject, policy: GenerationPolicy, resolver: NameResolver
) -> MethodDef:
    method = MethodDef(
        index=function.index,
        full_name=function.full_name,
        name=resolver.sanitize(function.name),
        is_native=bool(function.function_flags & FUNC_NATIVE),
        is_static=bool(function.function_flags & FUNC_STATIC),
        flags_string=stringify_flags(function.function_flags, FUNCTION_FLAG_NAMES),
    )

    unique_names: dict[str, int] = {}
    parameters: list[tuple[ReflectedObject, Parameter]] = []
    for param in function.children:
        if param.kind is not ObjectKind.PROPERTY or param.element_size == 0:
            continue
        if param.info.type is PropertyType.UNKNOWN:
            continue
        param_type = make_param_type(param.property_flags)
        if param_type is None:
            continue

        cpp_type = policy.override_type("bool") if param.is_bool else param.info.cpp_type
        pass_by_reference = False
        if param_type is ParamType.DEFAULT:
            if param.array_dim > 1:
                cpp_type += "*"
            elif param.info.can_be_reference:
                pass_by_reference = True

        parameters.append(
            (
                param,
                Parameter(
                    name=dedupe_name(resolver.sanitize(param.name), unique_names),
                    cpp_type=cpp_type,
                    param_type=param_type,
                    pass_by_reference=pass_by_reference,
                    flags_string=stringify_flags(param.property_flags, PROPERTY_FLAG_NAMES),
                ),
            )
        )

    parameters.sort(
        key=functools.cmp_to_key(lambda lhs, rhs: compare_properties(lhs[0], rhs[0]))
    )
    method.parameters = [p for _, p in parameters]
    returns = sum(1 for p in method.parameters if p.param_type is ParamType.RETURN)
    method.extra_returns = max(0, returns - 1)
    return method


def generate_methods(
    class_obj: ReflectedObject, policy: GenerationPolicy, resolver: NameResolver
) -> list[MethodDef]:
    """One MethodDef per function child; the first of each full name wins."""
    methods: list[MethodDef] = []
    seen: set[str] = set()
    for child in class_obj.children:
        if child.kind is not ObjectKind.FUNCTION:
            continue
        # the same function can be reachable through several inheritance paths
        if child.full_name in seen:
            continue
        seen.add(child.full_name)
        methods.append(generate_method(child, policy, resolver))
    return methods


def format_parameter(param: Parameter) -> str:
    if param.pass_by_reference:
        return f"const {param.cpp_type}& {param.name}"
    if param.param_type is ParamType.OUT:
        return f"{param.cpp_type}* {param.name}"
    return f"{param.cpp_type} {param.name}"


def build_method_signature(
    method: MethodDef, class_name: str = "", in_header: bool = False
) -> str:
    """Return "<ret> [Class::]Name(<default params>, <out params>)".

    The return type is the first RETURN parameter's type, else void. RETURN
    parameters never appear in the argument list. "static " is prefixed only
    for header declarations of static methods.
    """
    prefix = "static " if method.is_static and in_header else ""
    ret = method.return_parameter
    ret_type = ret.cpp_type if ret is not None else "void"
    qualified = f"{class_name}::{method.name}" if class_name else method.name
    arguments = sorted(
        (p for p in method.parameters if p.param_type is not ParamType.RETURN),
        key=lambda p: p.param_type.value,
    )
    rendered = ", ".join(format_parameter(p) for p in arguments)
    return f"{prefix}{ret_type} {qualified}({rendered})"


def _lookup_literal(full_name: str, policy: GenerationPolicy) -> str:
    if policy.xor_strings:
        return f'_xor_("{full_name}")'
    return f'"{full_name}"'


def build_method_body(method: MethodDef, policy: GenerationPolicy) -> str:
    """Return the C++ call stub that invokes method through ProcessEvent.

    The stub resolves the function once (by name or by object index), fills
    a parameter block laid out like the runtime frame, dispatches, copies
    out-parameters back through their pointers and returns the return value.
    """
    lines = ["{"]
    if policy.use_strings:
        lines.append(
            "\tstatic auto fn = UObject::FindObject<UFunction>("
            f"{_lookup_literal(method.full_name, policy)});"
        )
    else:
        lines.append(
            "\tstatic auto fn = static_cast<UFunction*>("
            f"UObject::GetGlobalObjects().GetByIndex({method.index}));"
        )
    lines.append("")

    lines.append("\tstruct")
    lines.append("\t{")
    for param in method.parameters:
        lines.append(f"\t\t{param.cpp_type:<30} {param.name};")
    lines.append("\t} params;")
    for param in method.parameters:
        if param.param_type is ParamType.DEFAULT:
            lines.append(f"\tparams.{param.name} = {param.name};")
    lines.append("")

    lines.append("\tauto flags = fn->FunctionFlags;")
    if method.is_native:
        lines.append(f"\tfn->FunctionFlags |= 0x{FUNC_NATIVE:X};")
    lines.append("")

    if method.is_static:
        lines.append("\tstatic auto defaultObj = StaticClass()->CreateDefaultObject();")
        lines.append("\tdefaultObj->ProcessEvent(fn, &params);")
    else:
        lines.append("\tUObject::ProcessEvent(fn, &params);")
    lines.append("")
    lines.append("\tfn->FunctionFlags = flags;")

    out_params = [p for p in method.parameters if p.param_type is ParamType.OUT]
    if out_params:
        lines.append("")
        for param in out_params:
            lines.append(f"\tif ({param.name} != nullptr)")
            lines.append(f"\t\t*{param.name} = params.{param.name};")

    ret = method.return_parameter
    if ret is not None:
        lines.append("")
        lines.append(f"\treturn params.{ret.name};")

    lines.append("}")
    return "\n".join(lines) + "\n"


def build_static_class_method(
    class_obj: ReflectedObject, policy: GenerationPolicy
) -> PredefinedMethod:
    if policy.use_strings:
        lookup = f"UObject::FindClass({_lookup_literal(class_obj.full_name, policy)})"
    else:
        lookup = (
            "static_cast<UClass*>("
            f"UObject::GetGlobalObjects().GetByIndex({class_obj.index}))"
        )
    return PredefinedMethod.inline(
        "\tstatic UClass* StaticClass()\n"
        "\t{\n"
        f"\t\tstatic auto ptr = {lookup};\n"
        "\t\treturn ptr;\n"
        "\t}"
    )


# ===--- Virtual slot matching ---=== #


def read_vtable_slots(memory: MemoryImage, vtable: int) -> list[int]:
    """Read slot targets until one is not executable code.

    Raises:
        MemoryReadError: If a table entry itself cannot be read.
    """
    slots: list[int] = []
    while len(slots) < MAX_VTABLE_SLOTS:
        target = memory.read_pointer(vtable + len(slots) * POINTER_SIZE)
        if not memory.is_executable(target):
            break
        slots.append(target)
    return slots


def match_virtual_slot(
    slots: list[int], pattern: VirtualFunctionPattern, memory: MemoryImage
) -> int | None:
    for index, target in enumerate(slots):
        if target == 0:
            continue
        if memory.find_pattern(target, VTABLE_SCAN_WINDOW, pattern.pattern, pattern.mask) != -1:
            return index
    return None


def discover_virtual_methods(
    class_obj: ReflectedObject,
    patterns: tuple[VirtualFunctionPattern, ...],
    memory: MemoryImage,
) -> list[PredefinedMethod]:
    """Bind each pattern to the first matching slot of the class's vtable.

    The table pointer is read from the class's live instance address.
    Unmatched patterns produce nothing.

    Raises:
        MemoryReadError: If the table pointer or a table entry is unreadable.
    """
    vtable = memory.read_pointer(class_obj.address)
    slots = read_vtable_slots(memory, vtable)
    methods: list[PredefinedMethod] = []
    for pattern in patterns:
        index = match_virtual_slot(slots, pattern, memory)
        if index is not None:
            methods.append(PredefinedMethod.inline(pattern.render(index)))
    return methods


# ===--- Package builder ---=== #


@dataclass(frozen=True)
class GenerationContext:
    """Read-only collaborators shared by every builder of a run."""

    store: ReflectionStore
    policy: GenerationPolicy
    resolver: NameResolver
    verbose: bool = False

    @property
    def memory(self) -> MemoryImage:
        return self.store.memory


class PackageBuilder:
    """Accumulates the generated enums, constants, structs and classes of one package."""

    def __init__(
        self,
        package: ReflectedObject,
        state: GenerationState,
        context: GenerationContext,
    ):
        self.package = package
        self.state = state
        self.context = context
        self.enums: list[EnumDef] = []
        self.constants: dict[str, str] = {}
        self.script_structs: list[StructDef] = []
        self.classes: list[ClassDef] = []
        self.warnings: list[str] = []

    @property
    def name(self) -> str:
        return self.package.name

    def process(self) -> None:
        for obj in self.context.store.objects_in(self.package):
            if obj.kind is ObjectKind.ENUM:
                self.generate_enum(obj)
            elif obj.kind is ObjectKind.CONST:
                self.generate_const(obj)
            elif obj.kind in (ObjectKind.CLASS, ObjectKind.SCRIPT_STRUCT):
                self.resolve_prerequisites(obj)

    def has_content(self) -> bool:
        if self.context.policy.emit_empty_files:
            return True
        return (
            any(e.values for e in self.enums)
            or any(s.members or s.predefined_methods for s in self.script_structs)
            or any(c.members or c.predefined_methods or c.methods for c in self.classes)
        )

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        print(f"  Warning: {message}")

    def _log_type(self, label: str, obj: ReflectedObject) -> None:
        if self.context.verbose:
            print(f"    {label + ':':<14}{obj.name:<60} - instance: 0x{obj.address:X}")

    # ---- enums and constants ----

    def generate_enum(self, enum_obj: ReflectedObject) -> None:
        resolver = self.context.resolver
        name = resolver.unique_name(enum_obj)
        if is_placeholder_name(name):
            return
        seen: dict[str, int] = {}
        values = [dedupe_name(resolver.sanitize(v), seen) for v in enum_obj.values]
        self.enums.append(EnumDef(name=name, full_name=enum_obj.full_name, values=values))

    def generate_const(self, const_obj: ReflectedObject) -> None:
        name = self.context.resolver.unique_name(const_obj)
        if is_placeholder_name(name):
            return
        self.constants[name] = const_obj.value

    # ---- prerequisite resolution ----

    def resolve_prerequisites(self, obj: ReflectedObject | None) -> None:
        """Emit obj after everything it depends on, once per run.

        Types owned by another package are not emitted here; instead that
        package is placed before this one in the shared package order.
        """
        if obj is None or not obj.valid:
            return
        if obj.kind not in (ObjectKind.CLASS, ObjectKind.SCRIPT_STRUCT):
            return
        if is_placeholder_name(obj.name):
            return

        self.state.mark_seen(obj)

        owner = obj.package
        if owner is None or not owner.valid:
            return

        self.state.ensure_package(self.package)

        if owner is not self.package:
            self.state.require_package(owner, self.package)
            return

        if self.state.status(obj) is not DefineStatus.NOT_STARTED:
            return
        # marked before recursing so self-referencing types are not re-entered
        self.state.defined[obj] = DefineStatus.IN_PROGRESS

        parent = obj.super
        if parent is not None and parent is not obj:
            self.resolve_prerequisites(parent)

        self.resolve_member_prerequisites(obj)

        if obj.kind is ObjectKind.CLASS:
            self.classes.append(self.generate_class(obj))
        else:
            self.script_structs.append(self.generate_script_struct(obj))
        self.state.defined[obj] = DefineStatus.DONE
        self.state.emitted.append(obj)

    def resolve_member_prerequisites(self, obj: ReflectedObject) -> None:
        for prop in obj.children:
            if prop.kind is not ObjectKind.PROPERTY:
                continue
            if prop.info.type is PropertyType.CUSTOM_STRUCT:
                self.resolve_prerequisites(prop.struct)
            elif prop.info.type is PropertyType.CONTAINER:
                for inner in prop.inner:
                    if inner.info.type is PropertyType.CUSTOM_STRUCT:
                        self.resolve_prerequisites(inner.struct)

    # ---- struct and class assembly ----

    def generate_script_struct(self, struct_obj: ReflectedObject) -> StructDef:
        policy = self.context.policy
        resolver = self.context.resolver
        self._log_type("ScriptStruct", struct_obj)

        cpp_name_full = "struct "
        alignment = policy.class_alignas(struct_obj.full_name)
        if alignment:
            cpp_name_full += f"alignas({alignment}) "
        cpp_name_full += resolver.unique_name(struct_obj)

        offset = 0
        parent = struct_obj.super
        if parent is not None and parent.valid and parent is not struct_obj:
            offset = parent.property_size
            cpp_name_full += f" : public {resolver.unique_name(parent)}"

        properties = sort_properties(
            p for p in struct_obj.children if is_layout_property(p)
        )
        return StructDef(
            name=struct_obj.name,
            full_name=struct_obj.full_name,
            cpp_name=resolver.sanitize(struct_obj.cpp_name),
            cpp_name_full=cpp_name_full,
            size=struct_obj.property_size,
            inherited_size=offset,
            members=generate_members(struct_obj, offset, properties, policy, resolver),
            predefined_methods=list(policy.predefined_methods.get(struct_obj.full_name, ())),
        )

    def generate_class(self, class_obj: ReflectedObject) -> ClassDef:
        policy = self.context.policy
        resolver = self.context.resolver
        full_name = class_obj.full_name
        self._log_type("Class", class_obj)

        cpp_name = resolver.sanitize(class_obj.cpp_name)
        cpp_name_full = f"class {cpp_name}"

        offset = 0
        parent = class_obj.super
        has_parent = parent is not None and parent.valid
        if has_parent and parent is not class_obj:
            offset = parent.property_size
            cpp_name_full += f" : public {resolver.sanitize(parent.cpp_name)}"

        members: list[Member] = []
        for predefined in policy.predefined_static_members.get(full_name, ()):
            members.append(
                Member(
                    name=predefined.name,
                    cpp_type=f"static {predefined.cpp_type}",
                    offset=0,
                    size=0,
                )
            )

        if full_name in policy.predefined_members:
            for predefined in policy.predefined_members[full_name]:
                members.append(
                    Member(
                        name=predefined.name,
                        cpp_type=predefined.cpp_type,
                        offset=0,
                        size=0,
                        comment="NOT AUTO-GENERATED PROPERTY",
                    )
                )
        else:
            properties = sort_properties(
                p
                for p in class_obj.children
                if is_layout_property(p)
                and (
                    not has_parent
                    or (parent is not class_obj and p.offset >= parent.property_size)
                )
            )
            members.extend(
                generate_members(class_obj, offset, properties, policy, resolver)
            )

        predefined_methods = list(policy.predefined_methods.get(full_name, ()))
        predefined_methods.append(build_static_class_method(class_obj, policy))

        methods = generate_methods(class_obj, policy, resolver)
        for method in methods:
            if method.extra_returns:
                self.warn(
                    f"{method.full_name} declares {method.extra_returns + 1} return "
                    "parameters; using the first"
                )

        patterns = policy.virtual_patterns.get(full_name)
        if patterns:
            try:
                predefined_methods.extend(
                    discover_virtual_methods(class_obj, patterns, self.context.memory)
                )
            except MemoryReadError as err:
                self.warn(f"virtual-slot discovery aborted for {full_name}: {err}")

        return ClassDef(
            name=class_obj.name,
            full_name=full_name,
            cpp_name=cpp_name,
            cpp_name_full=cpp_name_full,
            size=class_obj.property_size,
            inherited_size=offset,
            members=members,
            predefined_methods=predefined_methods,
            methods=methods,
        )


# ===--- Package processing ---=== #


@dataclass(frozen=True)
class ProcessedRun:
    """All builders of one run, in emission order, plus the shared state."""

    builders: tuple[PackageBuilder, ...]
    state: GenerationState


def order_builders(
    builders: list[PackageBuilder], package_order: list[ReflectedObject]
) -> list[PackageBuilder]:
    """Sort builders by package_order; packages never placed keep first-seen order after them."""
    position = {package: i for i, package in enumerate(package_order)}
    placed = sorted(
        (b for b in builders if b.package in position),
        key=lambda b: position[b.package],
    )
    unplaced = [b for b in builders if b.package not in position]
    return placed + unplaced


def process_packages(context: GenerationContext) -> ProcessedRun:
    """Run every package's builder against one shared GenerationState.

    All packages are processed before anything is ordered or written, since
    later packages can still move earlier ones in the package order.
    """
    state = GenerationState()
    builders: list[PackageBuilder] = []
    for package in context.store.packages():
        if not package.valid:
            continue
        builder = PackageBuilder(package, state, context)
        builder.process()
        builders.append(builder)
    return ProcessedRun(
        builders=tuple(order_builders(builders, state.package_order)),
        state=state,
    )


# ===--- Discovery commands ---=== #


@dataclass(frozen=True)
class PackageSummary:
    """One row of the --list-packages table.

    Attributes:
        name: Package name as reflected, e.g. "Engine".
        class_count: Classes owned by the package.
        struct_count: Script structs owned by the package.
        enum_count: Enums owned by the package.
        const_count: Constants owned by the package.
        function_count: Functions declared by the package's classes.
    """

    name: str
    class_count: int
    struct_count: int
    enum_count: int
    const_count: int
    function_count: int


@dataclass(frozen=True)
class TypeEntry:
    """A single type of a package, used in --info output.

    Attributes:
        kind: ObjectKind label, e.g. "Class" or "ScriptStruct".
        name: Raw reflected name.
        detail: Kind-specific detail: declared size for structs and classes,
            value count for enums, the value for constants.
    """

    kind: str
    name: str
    detail: str


@dataclass(frozen=True)
class PackageDetail:
    summary: PackageSummary
    types: tuple[TypeEntry, ...]


_DETAIL_KINDS = (
    ObjectKind.CLASS,
    ObjectKind.SCRIPT_STRUCT,
    ObjectKind.ENUM,
    ObjectKind.CONST,
)


def summarize_package(store: ReflectionStore, package: ReflectedObject) -> PackageSummary:
    counts = Counter(obj.kind for obj in store.objects_in(package))
    return PackageSummary(
        name=package.name,
        class_count=counts[ObjectKind.CLASS],
        struct_count=counts[ObjectKind.SCRIPT_STRUCT],
        enum_count=counts[ObjectKind.ENUM],
        const_count=counts[ObjectKind.CONST],
        function_count=counts[ObjectKind.FUNCTION],
    )


def gather_package_summaries(store: ReflectionStore) -> list[PackageSummary]:
    """Return one summary per valid package, sorted by name."""
    summaries = [
        summarize_package(store, package)
        for package in store.packages()
        if package.valid
    ]
    return sorted(summaries, key=lambda s: s.name)


def filter_packages_by_text(
    summaries: list[PackageSummary], text: str
) -> list[PackageSummary]:
    needle = text.lower()
    return [s for s in summaries if needle in s.name.lower()]


def _type_detail(obj: ReflectedObject) -> str:
    if obj.kind is ObjectKind.ENUM:
        return f"{len(obj.values)} values"
    if obj.kind is ObjectKind.CONST:
        return obj.value
    return f"0x{obj.property_size:X} bytes"


def gather_package_detail(store: ReflectionStore, name: str) -> PackageDetail | None:
    """Return the --info detail for the first valid package called name, or None."""
    for package in store.packages():
        if package.valid and package.name == name:
            types = tuple(
                TypeEntry(kind=obj.kind.value, name=obj.name, detail=_type_detail(obj))
                for obj in store.objects_in(package)
                if obj.kind in _DETAIL_KINDS
            )
            return PackageDetail(summary=summarize_package(store, package), types=types)
    return None


def format_packages_table(summaries: list[PackageSummary], source: str) -> str:
    """Return the complete --list-packages output as a string.

    Output format:

        3 packages in reflection.xml:

          CoreUObject    12 classes    30 structs    4 enums    0 consts    88 functions
          ...
    """
    lines = [f"{len(summaries)} packages in {source}:", ""]
    name_width = max((len(s.name) for s in summaries), default=0)
    for s in summaries:
        lines.append(
            f"  {s.name.ljust(name_width)}  "
            f"{f'{s.class_count} classes':<12} {f'{s.struct_count} structs':<12} "
            f"{f'{s.enum_count} enums':<10} {f'{s.const_count} consts':<10} "
            f"{s.function_count} functions"
        )
    lines.append("")
    return "\n".join(lines)


def format_package_detail(detail: PackageDetail) -> str:
    s = detail.summary
    lines = [
        f"{s.name} (package)",
        f"  Classes:   {s.class_count}",
        f"  Structs:   {s.struct_count}",
        f"  Enums:     {s.enum_count}",
        f"  Constants: {s.const_count}",
        f"  Functions: {s.function_count}",
        "",
        f"  Types ({len(detail.types)}):",
    ]
    name_width = max((len(t.name) for t in detail.types), default=0)
    for entry in detail.types:
        lines.append(f"    {entry.kind:<13} {entry.name.ljust(name_width)}  {entry.detail}")
    lines.append("")
    return "\n".join(lines)


def run_discovery(config: DiscoveryConfig) -> None:
    """Execute the discovery command specified in config.

    Raises:
        SystemExit(1): When config.command == "info" and the package is not
            in the dump.
    """
    store = load_reflection(config.dump)
    source = config.dump.name

    if config.command == "list-packages":
        summaries = gather_package_summaries(store)
        if config.filter_text is not None:
            summaries = filter_packages_by_text(summaries, config.filter_text)
        print(format_packages_table(summaries, source), end="")

    elif config.command == "info":
        assert config.info_package is not None
        detail = gather_package_detail(store, config.info_package)
        if detail is None:
            print(
                f"Error: package '{config.info_package}' not found in {source}",
                file=sys.stderr,
            )
            raise SystemExit(1)
        print(format_package_detail(detail), end="")


# ===--- SDK writer ---=== #


SDK_SUBDIR = "SDK"
SDK_HEADER_FILENAME = "SDK.hpp"
SDK_NAMESPACE = "SDK"


@dataclass(frozen=True)
class WriteConfig:
    """Shared generation metadata embedded in every file preamble.

    Attributes:
        product: Short product identifier, also the file name prefix.
        source: Label of the reflection dump the SDK was generated from.
    """

    product: str
    source: str


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing a single generated file.

    Attributes:
        filename: Filename written, e.g. "FN_Engine_classes.hpp".
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int


@dataclass(frozen=True)
class PackageWriteResult:
    """Result of writing a set of generated files.

    Attributes:
        output_dir: Directory the files were written under.
        files: One FileWriteResult per file written, in write order.
    """

    output_dir: Path
    files: tuple[FileWriteResult, ...]

    @property
    def total_lines(self) -> int:
        return sum(f.line_count for f in self.files)


def package_filenames(product: str, package_name: str) -> tuple[str, str, str]:
    """Return the (structs, classes, functions) file names of one package."""
    stem = f"{product}_{package_name}"
    return (
        f"{stem}_structs.hpp",
        f"{stem}_classes.hpp",
        f"{stem}_functions.cpp",
    )


_HEADER_BORDER = "// x-------------------------------------------x //"


def format_file_header(
    config: WriteConfig,
    package_name: str | None = None,
    includes: tuple[str, ...] = (),
    pragma_once: bool = True,
) -> list[str]:
    """Return the preamble lines of a generated C++ file.

    Output format:
        #pragma once

        // x-------------------------------------------x //
        // | FN SDK
        // | Generated by reflection-sdk-gen
        // | Source: reflection.xml
        // | Package: Engine
        // x-------------------------------------------x //

        #ifdef _MSC_VER
            #pragma pack(push, 0x8)
        #endif

        #include "../SDK.hpp"

        namespace SDK
        {

    Raises:
        ValueError: If config.product is empty.
    """
    if not config.product:
        raise ValueError("product must not be empty")

    lines: list[str] = []
    if pragma_once:
        lines.extend(["#pragma once", ""])
    lines.extend(
        [
            _HEADER_BORDER,
            f"// | {config.product} SDK",
            "// | Generated by reflection-sdk-gen",
            f"// | Source: {config.source}",
        ]
    )
    if package_name is not None:
        lines.append(f"// | Package: {package_name}")
    lines.extend(
        [
            _HEADER_BORDER,
            "",
            "#ifdef _MSC_VER",
            f"\t#pragma pack(push, 0x{POINTER_SIZE:X})",
            "#endif",
            "",
        ]
    )
    for include in includes:
        lines.append(f"#include {include}")
    if includes:
        lines.append("")
    lines.extend([f"namespace {SDK_NAMESPACE}", "{"])
    return lines


def format_file_footer() -> list[str]:
    return ["}", "", "#ifdef _MSC_VER", "\t#pragma pack(pop)", "#endif"]


def format_section_header(title: str) -> list[str]:
    rule = "//" + "-" * 75
    return [rule, f"// {title}", rule, ""]


def format_constant(name: str, value: str) -> str:
    return f"#define CONST_{name:<50} {value}"


def format_enum(enum: EnumDef) -> list[str]:
    values = ",\n".join(f"\t{name:<30} = {i}" for i, name in enumerate(enum.values))
    lines = [f"// {enum.full_name}", f"enum class {enum.name}", "{"]
    if values:
        lines.append(values)
    lines.append("};")
    return lines


def format_member(member: Member) -> str:
    line = (
        f"\t{member.cpp_type:<50} {member.name + ';':<50}"
        f"\t\t// 0x{member.offset:04X}(0x{member.size:04X})"
    )
    if member.comment:
        line += f" {member.comment}"
    if member.flags_string:
        line += f" ({member.flags_string})"
    return line


def _format_size_comment(struct: StructDef) -> str:
    if struct.inherited_size:
        return (
            f"// 0x{struct.size - struct.inherited_size:04X} "
            f"(0x{struct.size:04X} - 0x{struct.inherited_size:04X})"
        )
    return f"// 0x{struct.size:04X}"


def _format_predefined_methods(methods: list[PredefinedMethod]) -> list[str]:
    lines: list[str] = []
    for method in methods:
        lines.append("")
        if method.method_type is PredefinedMethodType.INLINE:
            lines.append(method.body)
        else:
            lines.append(f"\t{method.signature};")
    return lines


def format_struct(struct: StructDef) -> list[str]:
    lines = [
        f"// {struct.full_name}",
        _format_size_comment(struct),
        struct.cpp_name_full,
        "{",
    ]
    lines.extend(format_member(m) for m in struct.members)
    lines.extend(_format_predefined_methods(struct.predefined_methods))
    lines.append("};")
    return lines


def format_class(cls: ClassDef) -> list[str]:
    lines = [
        f"// {cls.full_name}",
        _format_size_comment(cls),
        cls.cpp_name_full,
        "{",
        "public:",
    ]
    lines.extend(format_member(m) for m in cls.members)
    lines.extend(_format_predefined_methods(cls.predefined_methods))
    if cls.methods:
        lines.append("")
        for method in cls.methods:
            lines.append(f"\t{build_method_signature(method, in_header=True)};")
    lines.append("};")
    return lines


def format_method_comment(method: MethodDef) -> list[str]:
    lines = [f"// {method.full_name}", f"// ({method.flags_string})"]
    if method.parameters:
        lines.append("// Parameters:")
        for param in method.parameters:
            lines.append(f"// {param.cpp_type:<30} {param.name:<30} ({param.flags_string})")
    return lines


def _join(lines: list[str]) -> str:
    return "\n".join(lines) + "\n"


def assemble_structs_source(config: WriteConfig, builder: PackageBuilder) -> str:
    lines = format_file_header(config, builder.name)
    if builder.script_structs:
        lines.append("")
        lines.extend(format_section_header("Script Structs"))
        for struct in builder.script_structs:
            lines.extend(format_struct(struct))
            lines.append("")
    lines.append("")
    lines.extend(format_file_footer())
    return _join(lines)


def assemble_classes_source(config: WriteConfig, builder: PackageBuilder) -> str:
    lines = format_file_header(config, builder.name)
    if builder.constants:
        lines.append("")
        lines.extend(format_section_header("Constants"))
        lines.extend(format_constant(n, v) for n, v in builder.constants.items())
        lines.append("")
    if builder.enums:
        lines.append("")
        lines.extend(format_section_header("Enums"))
        for enum in builder.enums:
            lines.extend(format_enum(enum))
            lines.append("")
    if builder.classes:
        lines.append("")
        lines.extend(format_section_header("Classes"))
        for cls in builder.classes:
            lines.extend(format_class(cls))
            lines.append("")
    lines.append("")
    lines.extend(format_file_footer())
    return _join(lines)


def assemble_functions_source(
    config: WriteConfig, builder: PackageBuilder, policy: GenerationPolicy
) -> str:
    """Return the functions file: out-of-line predefined bodies, then method stubs."""
    lines = format_file_header(
        config, builder.name, includes=('"../SDK.hpp"',), pragma_once=False
    )
    lines.append("")
    lines.extend(format_section_header("Functions"))

    for struct in [*builder.script_structs, *builder.classes]:
        for method in struct.predefined_methods:
            if method.method_type is not PredefinedMethodType.INLINE:
                lines.extend([method.body, ""])

    for cls in builder.classes:
        for method in cls.methods:
            lines.extend(format_method_comment(method))
            lines.append("")
            lines.append(build_method_signature(method, cls.cpp_name))
            lines.append(build_method_body(method, policy))

    lines.extend(format_file_footer())
    return _join(lines)


def assemble_sdk_header(config: WriteConfig, package_names: list[str]) -> str:
    """Return SDK.hpp, including every package's headers in emission order."""
    lines = ["#pragma once", "", _HEADER_BORDER, f"// | {config.product} SDK"]
    lines.extend(
        [
            "// | Generated by reflection-sdk-gen",
            f"// | Source: {config.source}",
            _HEADER_BORDER,
            "",
        ]
    )
    for name in package_names:
        structs, classes, _functions = package_filenames(config.product, name)
        lines.append(f'#include "{SDK_SUBDIR}/{structs}"')
        lines.append(f'#include "{SDK_SUBDIR}/{classes}"')
    return _join(lines)


def write_source(output_dir: Path, filename: str, content: str) -> FileWriteResult:
    """Write one generated file, creating output_dir if needed.

    Raises:
        OSError: Propagated directly if the filesystem write fails.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    file_path = output_dir / filename
    file_path.write_text(content, encoding="utf-8")
    resolved = file_path.resolve()
    return FileWriteResult(
        filename=filename,
        path=resolved,
        line_count=content.count("\n"),
        byte_count=len(resolved.read_bytes()),
    )


def write_package(
    output_dir: Path,
    config: WriteConfig,
    builder: PackageBuilder,
    policy: GenerationPolicy,
) -> PackageWriteResult:
    """Write the structs, classes and functions files of one package.

    Files go to <output_dir>/SDK. Partial writes are possible on OSError.
    """
    sdk_dir = Path(output_dir) / SDK_SUBDIR
    structs, classes, functions = package_filenames(config.product, builder.name)
    files = (
        write_source(sdk_dir, structs, assemble_structs_source(config, builder)),
        write_source(sdk_dir, classes, assemble_classes_source(config, builder)),
        write_source(
            sdk_dir, functions, assemble_functions_source(config, builder, policy)
        ),
    )
    return PackageWriteResult(output_dir=sdk_dir, files=files)


def write_sdk_header(
    output_dir: Path, config: WriteConfig, package_names: list[str]
) -> FileWriteResult:
    return write_source(
        Path(output_dir), SDK_HEADER_FILENAME, assemble_sdk_header(config, package_names)
    )


# ===--- Generation pipeline ---=== #


def build_context(config: GenerateConfig, store: ReflectionStore) -> GenerationContext:
    policy = load_policy(config.policy) if config.policy is not None else GenerationPolicy()
    policy = apply_policy_overrides(policy, config, store)
    return GenerationContext(
        store=store,
        policy=policy,
        resolver=NameResolver(store),
        verbose=config.verbose,
    )


def save_packages(
    output_dir: Path, config: WriteConfig, run: ProcessedRun, policy: GenerationPolicy
) -> tuple[PackageWriteResult, tuple[PackageBuilder, ...], tuple[str, ...]]:
    """Write every builder with content, then SDK.hpp.

    Returns:
        (result, saved builders, skipped package names).
    """
    files: list[FileWriteResult] = []
    saved: list[PackageBuilder] = []
    skipped: list[str] = []
    for builder in run.builders:
        if not builder.has_content():
            print(f"  Skip empty package: {builder.name}")
            skipped.append(builder.name)
            continue
        files.extend(write_package(output_dir, config, builder, policy).files)
        saved.append(builder)
    files.append(write_sdk_header(output_dir, config, [b.name for b in saved]))
    result = PackageWriteResult(output_dir=Path(output_dir), files=tuple(files))
    return result, tuple(saved), tuple(skipped)


def run_generate(config: GenerateConfig) -> PackageWriteResult:
    """Execute the complete generation pipeline for a GenerateConfig.

    load dump -> load policy -> process every package -> order -> save
    packages with content -> write SDK.hpp -> print summary. Nothing is
    written until every package has been processed.

    Raises:
        OSError: Dump or policy not readable, or filesystem write failure.
        ET.ParseError: Malformed dump XML.
        ReflectionDumpError: Dump XML with invalid structure.
        ConfigError: Invalid policy file.
    """
    print(f"Parsing: {config.dump}")
    store = load_reflection(config.dump)
    print(f"  Reflection: {len(store)} objects, {len(store.packages())} packages")

    context = build_context(config, store)
    if config.policy is not None:
        print(f"  Policy: {config.policy}")

    run = process_packages(context)
    print(
        f"  Processed: {len(run.builders)} packages, "
        f"{len(run.state.emitted)} structs and classes"
    )
    for dependency, referencer in run.state.order_conflicts:
        print(
            f"  Warning: package cycle between {dependency.name} and "
            f"{referencer.name}; {dependency.name} may follow {referencer.name}"
        )

    write_config = WriteConfig(product=context.policy.product_short, source=config.dump.name)
    result, saved, skipped = save_packages(
        config.output_dir, write_config, run, context.policy
    )
    print(
        f"  Written: {len(result.files)} files, "
        f"{result.total_lines} lines to {result.output_dir}"
    )

    summary = build_generation_summary(write_config, run, saved, skipped, result)
    print_generation_summary(summary)
    return result


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationCounts:
    """Item counts over one run.

    Type counts cover saved packages only; package counts cover every
    processed package.

    Attributes:
        packages: Packages processed.
        saved: Packages written to disk.
        skipped: Packages suppressed by the save contract.
        enums: Emitted enums.
        constants: Emitted constants.
        structs: Emitted script structs.
        classes: Emitted classes.
        methods: Synthesized methods.
        filler_members: UnknownData members emitted across structs and classes.
    """

    packages: int
    saved: int
    skipped: int
    enums: int
    constants: int
    structs: int
    classes: int
    methods: int
    filler_members: int


@dataclass(frozen=True)
class GenerationSummary:
    """Complete, immutable data for the post-generation console report.

    Attributes:
        product: Product identifier of the run.
        source_label: Label of the reflection dump.
        output_dir: Output directory as string.
        counts: Per-category counts.
        files: Ordered write results.
        skipped_packages: Names of packages that were not saved.
        order_conflicts: "A <-> B" labels of package cycles.
        warning_count: Builder warnings raised during processing.
    """

    product: str
    source_label: str
    output_dir: str
    counts: GenerationCounts
    files: tuple[FileWriteResult, ...]
    skipped_packages: tuple[str, ...]
    order_conflicts: tuple[str, ...]
    warning_count: int


def build_generation_counts(
    run: ProcessedRun, saved: tuple[PackageBuilder, ...]
) -> GenerationCounts:
    types = [*(s for b in saved for s in b.script_structs), *(c for b in saved for c in b.classes)]
    return GenerationCounts(
        packages=len(run.builders),
        saved=len(saved),
        skipped=len(run.builders) - len(saved),
        enums=sum(len(b.enums) for b in saved),
        constants=sum(len(b.constants) for b in saved),
        structs=sum(len(b.script_structs) for b in saved),
        classes=sum(len(b.classes) for b in saved),
        methods=sum(len(c.methods) for b in saved for c in b.classes),
        filler_members=sum(1 for t in types for m in t.members if m.is_unknown),
    )


def build_generation_summary(
    write_config: WriteConfig,
    run: ProcessedRun,
    saved: tuple[PackageBuilder, ...],
    skipped: tuple[str, ...],
    write_result: PackageWriteResult,
) -> GenerationSummary:
    return GenerationSummary(
        product=write_config.product,
        source_label=write_config.source,
        output_dir=str(write_result.output_dir),
        counts=build_generation_counts(run, saved),
        files=write_result.files,
        skipped_packages=skipped,
        order_conflicts=tuple(
            f"{dep.name} <-> {ref.name}" for dep, ref in run.state.order_conflicts
        ),
        warning_count=sum(len(b.warnings) for b in run.builders),
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render a GenerationSummary as the console report.

    Returns a string with exactly one trailing newline. The skipped,
    conflicts and warnings lines appear only when non-empty.
    """
    c = summary.counts
    lines = [
        f"{summary.product} SDK generated:",
        "",
        f"  Source:     {summary.source_label}",
        f"  Output:     {summary.output_dir}",
        "",
        "  Packages:",
        f"    {'Processed:':<11}{c.packages:>6}",
        f"    {'Saved:':<11}{c.saved:>6}",
    ]
    skipped_row = f"    {'Skipped:':<11}{c.skipped:>6}"
    if summary.skipped_packages:
        skipped_row += f"  ({', '.join(summary.skipped_packages)})"
    lines.append(skipped_row)

    lines.append("")
    lines.append("  Types generated:")
    for label, count in (
        ("Enums:", c.enums),
        ("Constants:", c.constants),
        ("Structs:", c.structs),
        ("Classes:", c.classes),
        ("Methods:", c.methods),
        ("Fillers:", c.filler_members),
    ):
        lines.append(f"    {label:<11}{count:>6}")

    lines.append("")
    lines.append("  Files written:")
    for file_result in summary.files:
        lines.append(f"    {file_result.filename:<40} {file_result.line_count:>6,} lines")

    total_lines = sum(f.line_count for f in summary.files)
    lines.append("")
    lines.append(f"  Total: {total_lines:,} lines across {len(summary.files)} files")

    if summary.order_conflicts:
        lines.append("")
        lines.append("  Package cycles (order is best-effort):")
        for conflict in summary.order_conflicts:
            lines.append(f"    {conflict}")
    if summary.warning_count:
        lines.append("")
        lines.append(f"  Warnings: {summary.warning_count}")

    lines.append("")
    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    print(format_generation_summary(summary), end="")


# ===--- Main generation ---=== #


def _print_config_error(err: ConfigError) -> None:
    print(f"Config error [{err.code}]: {err.message}")
    if err.suggestion:
        print(f"Hint: {err.suggestion}")


def main():
    try:
        config = build_config()
    except ConfigError as err:
        _print_config_error(err)
        raise SystemExit(1) from err

    try:
        if isinstance(config, DiscoveryConfig):
            run_discovery(config)
        else:
            run_generate(config)
    except ConfigError as err:
        _print_config_error(err)
        raise SystemExit(1) from err
    except (OSError, ET.ParseError, ReflectionDumpError) as err:
        print(f"Error: {err}")
        raise SystemExit(1) from err
    except (RuntimeError, ValueError) as err:
        print(f"Internal error: {err}")
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
