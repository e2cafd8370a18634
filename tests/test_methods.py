import pytest

import sdkgen


PARM = sdkgen.CPF_PARM
OUT = sdkgen.CPF_PARM | sdkgen.CPF_OUT_PARM
RET = sdkgen.CPF_PARM | sdkgen.CPF_OUT_PARM | sdkgen.CPF_RETURN_PARM


def _policy(**overrides) -> sdkgen.GenerationPolicy:
    return sdkgen.GenerationPolicy(product_short="TG", **overrides)


def _method(factory, fn, policy=None) -> sdkgen.MethodDef:
    resolver = sdkgen.NameResolver(factory.store())
    return sdkgen.generate_method(fn, policy or _policy(), resolver)


@pytest.fixture
def actor(factory):
    package = factory.package("Engine")
    return factory.klass(package, "Actor", 0x10, cpp_name="AActor")


@pytest.mark.parametrize(
    "flags, expected",
    [
        (sdkgen.CPF_RETURN_PARM, sdkgen.ParamType.RETURN),
        (sdkgen.CPF_OUT_PARM, sdkgen.ParamType.OUT),
        (sdkgen.CPF_OUT_PARM | sdkgen.CPF_CONST_PARM, sdkgen.ParamType.DEFAULT),
        (sdkgen.CPF_PARM, sdkgen.ParamType.DEFAULT),
        (0x1, None),
    ],
)
def test_t_01_make_param_type_classifies_flags(flags: int, expected) -> None:
    assert sdkgen.make_param_type(flags) is expected


def test_t_02_out_and_return_parameters_shape_signature(factory, actor) -> None:
    fn = factory.function(actor, "GetBounds", flags=sdkgen.FUNC_NATIVE)
    factory.prop(fn, "Origin", 0, 12, cpp_type="struct FVector", flags=OUT)
    factory.prop(fn, "Extent", 12, 12, cpp_type="struct FVector", flags=OUT)
    factory.prop(fn, "bOnlyColliding", 24, 1, cpp_type="bool", flags=PARM)
    factory.prop(fn, "ReturnValue", 28, 4, cpp_type="float", flags=RET)

    method = _method(factory, fn)

    assert sdkgen.build_method_signature(method, "AActor") == (
        "float AActor::GetBounds(bool bOnlyColliding, "
        "struct FVector* Origin, struct FVector* Extent)"
    )


def test_t_03_body_copies_out_params_and_returns_value(factory, actor) -> None:
    fn = factory.function(actor, "GetBounds", flags=sdkgen.FUNC_NATIVE)
    factory.prop(fn, "Origin", 0, 12, cpp_type="struct FVector", flags=OUT)
    factory.prop(fn, "Extent", 12, 12, cpp_type="struct FVector", flags=OUT)
    factory.prop(fn, "ReturnValue", 24, 4, cpp_type="float", flags=RET)

    body = sdkgen.build_method_body(_method(factory, fn), _policy())

    assert body.startswith("{\n")
    assert body.endswith("}\n")
    assert f"GetByIndex({fn.index})" in body
    assert "\t} params;" in body
    assert "\tfn->FunctionFlags |= 0x400;" in body
    assert "\tUObject::ProcessEvent(fn, &params);" in body
    assert "\tfn->FunctionFlags = flags;" in body
    assert "\tif (Origin != nullptr)\n\t\t*Origin = params.Origin;" in body
    assert "\tif (Extent != nullptr)\n\t\t*Extent = params.Extent;" in body
    assert body.rstrip().endswith("return params.ReturnValue;\n}")
    assert body.index("ProcessEvent") < body.index("*Origin = params.Origin")


def test_t_04_default_params_are_copied_in(factory, actor) -> None:
    fn = factory.function(actor, "SetHealth")
    factory.prop(fn, "NewHealth", 0, 4, cpp_type="float", flags=PARM)

    method = _method(factory, fn)
    body = sdkgen.build_method_body(method, _policy())

    assert sdkgen.build_method_signature(method) == "void SetHealth(float NewHealth)"
    assert "\tparams.NewHealth = NewHealth;" in body
    assert "FunctionFlags |=" not in body
    assert "return" not in body


def test_t_05_static_method_dispatches_through_default_object(factory, actor) -> None:
    fn = factory.function(actor, "Spawn", flags=sdkgen.FUNC_STATIC | sdkgen.FUNC_NATIVE)

    method = _method(factory, fn)
    body = sdkgen.build_method_body(method, _policy())

    assert sdkgen.build_method_signature(method, in_header=True) == "static void Spawn()"
    assert sdkgen.build_method_signature(method, "AActor") == "void AActor::Spawn()"
    assert "static auto defaultObj = StaticClass()->CreateDefaultObject();" in body
    assert "defaultObj->ProcessEvent(fn, &params);" in body


@pytest.mark.parametrize(
    "xor_strings, expected",
    [
        (False, 'UObject::FindObject<UFunction>("Function Engine.Actor.Jump")'),
        (True, 'UObject::FindObject<UFunction>(_xor_("Function Engine.Actor.Jump"))'),
    ],
)
def test_t_06_name_lookup_in_body(factory, actor, xor_strings: bool, expected: str) -> None:
    fn = factory.function(actor, "Jump")
    policy = _policy(use_strings=True, xor_strings=xor_strings)

    body = sdkgen.build_method_body(_method(factory, fn, policy), policy)

    assert expected in body


def test_t_07_reference_eligible_defaults_pass_by_const_reference(factory, actor) -> None:
    fn = factory.function(actor, "SetName")
    factory.prop(fn, "Name", 0, 16, cpp_type="struct FString", flags=PARM, by_ref=True)

    method = _method(factory, fn)

    assert sdkgen.build_method_signature(method) == "void SetName(const struct FString& Name)"


def test_t_08_const_out_param_is_a_by_reference_input(factory, actor) -> None:
    fn = factory.function(actor, "Apply")
    factory.prop(
        fn, "Settings", 0, 16, cpp_type="struct FSettings",
        flags=OUT | sdkgen.CPF_CONST_PARM, by_ref=True,
    )

    method = _method(factory, fn)

    assert method.parameters[0].param_type is sdkgen.ParamType.DEFAULT
    assert sdkgen.build_method_signature(method) == "void Apply(const struct FSettings& Settings)"


def test_t_09_array_default_param_becomes_pointer(factory, actor) -> None:
    fn = factory.function(actor, "SetSlots")
    factory.prop(fn, "Slots", 0, 4, cpp_type="int", flags=PARM, array_dim=4, by_ref=True)

    method = _method(factory, fn)

    assert method.parameters[0].cpp_type == "int*"
    assert method.parameters[0].pass_by_reference is False


def test_t_10_bool_params_use_override_type(factory, actor) -> None:
    fn = factory.function(actor, "SetVisible")
    factory.prop(fn, "bVisible", 0, 1, cpp_type="unsigned char", flags=PARM, bit_mask=0xFF)

    method = _method(factory, fn, _policy(type_overrides={"bool": "bool"}))
    default = _method(factory, fn)

    assert method.parameters[0].cpp_type == "bool"
    assert default.parameters[0].cpp_type == "bool"


def test_t_11_non_params_zero_size_and_unknown_are_skipped(factory, actor) -> None:
    fn = factory.function(actor, "Mixed")
    factory.prop(fn, "Local", 0, 4, flags=0)
    factory.prop(fn, "Empty", 4, 0, flags=PARM)
    factory.prop(fn, "Odd", 8, 4, flags=PARM, prop_type=sdkgen.PropertyType.UNKNOWN)
    factory.prop(fn, "Kept", 12, 4, flags=PARM)

    method = _method(factory, fn)

    assert [p.name for p in method.parameters] == ["Kept"]


def test_t_12_parameters_follow_frame_offsets_and_dedupe(factory, actor) -> None:
    fn = factory.function(actor, "Swap")
    factory.prop(fn, "Value", 8, 4, flags=PARM)
    factory.prop(fn, "Value", 0, 4, flags=PARM)

    method = _method(factory, fn)

    assert [p.name for p in method.parameters] == ["Value01", "Value"]


def test_t_13_first_return_wins_and_extras_stay_in_frame(factory, actor) -> None:
    fn = factory.function(actor, "Pair")
    factory.prop(fn, "A", 0, 4, cpp_type="int", flags=RET)
    factory.prop(fn, "B", 4, 4, cpp_type="float", flags=RET)

    method = _method(factory, fn)
    body = sdkgen.build_method_body(method, _policy())

    assert method.extra_returns == 1
    assert sdkgen.build_method_signature(method) == "int Pair()"
    assert "return params.A;" in body
    assert "B;" in body


def test_t_14_generate_methods_dedupes_by_full_name(factory, actor) -> None:
    first = factory.function(actor, "Tick")
    actor.children.append(first)
    factory.function(actor, "Jump")
    resolver = sdkgen.NameResolver(factory.store())

    methods = sdkgen.generate_methods(actor, _policy(), resolver)

    assert [m.name for m in methods] == ["Tick", "Jump"]


def test_t_15_flags_strings_are_recorded(factory, actor) -> None:
    fn = factory.function(actor, "Fire", flags=sdkgen.FUNC_NATIVE | 0x20000)
    factory.prop(fn, "Power", 0, 4, flags=PARM)

    method = _method(factory, fn)

    assert method.is_native
    assert method.flags_string == "Native, Public"
    assert method.parameters[0].flags_string == "Parm"
