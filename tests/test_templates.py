from __future__ import annotations

from clang_async.completion.candidates import Candidate
from clang_async.completion.templates import (
    KIND_CALL,
    KIND_POINTER,
    KIND_PROPERTY,
    SignatureTemplater,
    TemplateVariant,
    expand_template,
    split_arguments,
)


def _displays(help_text: str) -> list[str]:
    return [variant.display_args for variant in SignatureTemplater().variants(help_text)]


def test_split_arguments_respects_template_brackets() -> None:
    assert split_arguments("map<int, string> a, int b") == ["map<int, string> a", "int b"]


def test_split_arguments_respects_parentheses() -> None:
    assert split_arguments("void (*cb)(int, int), int n") == ["void (*cb)(int, int)", "int n"]


def test_split_arguments_keeps_unterminated_group() -> None:
    assert split_arguments("vector<int a, int b") == ["vector<int a, int b"]
    assert split_arguments("") == []


def test_nullary_call() -> None:
    variants = SignatureTemplater().variants("[#void#]bar()")
    assert variants == [TemplateVariant(display_args="()", return_type="void", raw_args="", kind=KIND_CALL)]
    assert expand_template(variants[0]).snippet == "()"


def test_variadic_call_yields_call_without_tail() -> None:
    variants = SignatureTemplater().variants("[#int#]printf(<#const char *fmt, ...#>)")
    assert [v.display_args for v in variants] == ["(const char *fmt, ...)", "(const char *fmt)"]
    assert all(v.return_type == "int" for v in variants)

    expansion = expand_template(variants[0])
    assert expansion.snippet == "(${1:const char *fmt}, ${2:...})"
    assert expansion.placeholders == ("const char *fmt", "...")
    assert expand_template(variants[1]).snippet == "(${1:const char *fmt})"


def test_optional_chunk_yields_short_variant() -> None:
    help_text = "[#void#]resize(<#size_type n#>{#, <#const T &value#>#})"
    variants = SignatureTemplater().variants(help_text)
    assert [v.display_args for v in variants] == ["(size_type n, const T &value)", "(size_type n)"]
    assert expand_template(variants[0]).snippet == "(${1:size_type n}, ${2:const T &value})"
    assert expand_template(variants[1]).snippet == "(${1:size_type n})"


def test_property_variant() -> None:
    variants = SignatureTemplater().variants("value : int")
    assert variants == [TemplateVariant(display_args="int", return_type="", raw_args="int", kind=KIND_PROPERTY)]
    assert expand_template(variants[0]).snippet == "${1:int}"


def test_plain_variadic_signature_without_markers() -> None:
    variants = SignatureTemplater().variants("foo(int a, int b = 0, ...)")
    assert [v.raw_args for v in variants] == ["(int a, int b = 0, ...)", "(int a, int b = 0)"]
    assert [v.display_args for v in variants] == ["(int a, int b = 0, ...)", "(int a, int b = 0)"]
    assert all(v.kind == KIND_CALL for v in variants)


def test_short_property_signature() -> None:
    variants = SignatureTemplater().variants("x : int")
    assert len(variants) == 1
    assert variants[0].raw_args == "int"
    assert variants[0].kind == KIND_PROPERTY


def test_scope_operator_is_not_a_property() -> None:
    variants = SignatureTemplater().variants("[#void#]ns::fn(<#int#>)")
    assert [v.kind for v in variants] == [KIND_CALL]
    assert expand_template(variants[0]).snippet == "(${1:int})"


def test_function_pointer_variant() -> None:
    variants = SignatureTemplater().variants("[#void (*)(int, char)#]handler")
    assert variants == [
        TemplateVariant(display_args="(int, char)", return_type="void", raw_args="(int, char)", kind=KIND_POINTER)
    ]
    assert expand_template(variants[0]).snippet == "(${1:int}, ${2:char})"


def test_duplicate_display_keeps_later_emission() -> None:
    help_text = "[#int#]f(<#int a#>)\n[#long#]f(<#int a#>)\n[#int#]f()"
    variants = SignatureTemplater().variants(help_text)
    assert [(v.display_args, v.return_type) for v in variants] == [("(int a)", "long"), ("()", "int")]


def test_lines_without_signature_are_ignored() -> None:
    assert _displays("") == []
    assert _displays("int") == []


def test_variants_for_candidate() -> None:
    candidate = Candidate("foo", "[#int#]foo(<#int a#>)\n[#int#]foo(<#double a#>)")
    assert [v.display_args for v in SignatureTemplater().variants_for(candidate)] == ["(int a)", "(double a)"]


def test_expansion_escapes_snippet_syntax() -> None:
    variant = TemplateVariant(display_args="(int $x)", return_type="", raw_args="(<#int $x#>)")
    assert expand_template(variant).snippet == "(${1:int \\$x})"
