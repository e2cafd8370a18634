from __future__ import annotations

from pathlib import Path

import sdkgen


def _file(name: str, lines: int) -> sdkgen.FileWriteResult:
    return sdkgen.FileWriteResult(
        filename=name, path=Path("/tmp") / name, line_count=lines, byte_count=lines * 10
    )


def _counts(**overrides) -> sdkgen.GenerationCounts:
    base = {
        "packages": 3,
        "saved": 2,
        "skipped": 1,
        "enums": 1,
        "constants": 1,
        "structs": 1,
        "classes": 2,
        "methods": 1,
        "filler_members": 5,
    }
    base.update(overrides)
    return sdkgen.GenerationCounts(**base)


def _summary(**overrides) -> sdkgen.GenerationSummary:
    base = {
        "product": "TG",
        "source_label": "reflection.xml",
        "output_dir": "/tmp/out",
        "counts": _counts(),
        "files": (_file("TG_Core_classes.hpp", 1200), _file("SDK.hpp", 12)),
        "skipped_packages": ("Empty",),
        "order_conflicts": (),
        "warning_count": 0,
    }
    base.update(overrides)
    return sdkgen.GenerationSummary(**base)


def test_t_01_summary_heading_and_sections() -> None:
    text = sdkgen.format_generation_summary(_summary())
    lines = text.splitlines()

    assert lines[0] == "TG SDK generated:"
    assert "  Source:     reflection.xml" in lines
    assert "  Output:     /tmp/out" in lines
    assert "    Processed:      3" in lines
    assert "    Skipped:        1  (Empty)" in lines
    assert "    Fillers:        5" in lines
    assert text.endswith("\n")
    assert not text.endswith("\n\n")


def test_t_02_summary_lists_files_with_thousands_separator() -> None:
    text = sdkgen.format_generation_summary(_summary())

    assert f"    {'TG_Core_classes.hpp':<40}  1,200 lines" in text
    assert "  Total: 1,212 lines across 2 files" in text


def test_t_03_optional_sections_only_when_present() -> None:
    quiet = sdkgen.format_generation_summary(
        _summary(skipped_packages=(), counts=_counts(skipped=0))
    )
    assert "Package cycles" not in quiet
    assert "Warnings:" not in quiet
    assert "    Skipped:        0" in quiet.splitlines()

    noisy = sdkgen.format_generation_summary(
        _summary(order_conflicts=("Core <-> Engine",), warning_count=2)
    )
    assert "  Package cycles (order is best-effort):\n    Core <-> Engine" in noisy
    assert "  Warnings: 2" in noisy


def test_t_04_counts_cover_saved_packages(factory, make_context) -> None:
    saved_pkg = factory.package("Saved")
    factory.enum(saved_pkg, "EMode", ["A"])
    factory.const(saved_pkg, "Limit", "1")
    s = factory.struct(saved_pkg, "S", 8)
    factory.prop(s, "X", 0, 4)
    actor = factory.klass(saved_pkg, "Actor", 0)
    factory.function(actor, "Jump")
    factory.package("Empty")
    run = sdkgen.process_packages(make_context(factory.store()))
    saved = tuple(b for b in run.builders if b.has_content())

    counts = sdkgen.build_generation_counts(run, saved)

    assert counts.packages == 2
    assert counts.saved == 1
    assert counts.skipped == 1
    assert (counts.enums, counts.constants, counts.structs, counts.classes) == (1, 1, 1, 1)
    assert counts.methods == 1
    assert counts.filler_members == 1


def test_t_05_build_generation_summary_labels_conflicts(factory, make_context) -> None:
    run = sdkgen.process_packages(make_context(factory.store()))
    a = sdkgen.ReflectedObject(0, sdkgen.ObjectKind.PACKAGE, "A", "Package A")
    b = sdkgen.ReflectedObject(1, sdkgen.ObjectKind.PACKAGE, "B", "Package B")
    run.state.order_conflicts.append((a, b))
    result = sdkgen.PackageWriteResult(output_dir=Path("/tmp/out"), files=())

    summary = sdkgen.build_generation_summary(
        sdkgen.WriteConfig(product="TG", source="dump.xml"), run, (), (), result
    )

    assert summary.order_conflicts == ("A <-> B",)
    assert summary.output_dir == "/tmp/out"
    assert summary.source_label == "dump.xml"
