"""Turn raw clang signatures into editable argument templates.

Help lines arrive in the worker's raw chunk syntax, for example::

    [#int#]printf(<#const char *restrict, ...#>)
    [#void#]resize(<#size_type n#>{#, <#const T &value#>#})
    [#void (*)(int)#]handler

`[#...#]` carries the return type, `<#...#>` an editable placeholder and
`{#...#}` an optional trailing chunk. One line can yield several variants: the
full call, the call without its optional chunk, and the call without its
variadic tail.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .candidates import Candidate, clean_document

_RETURN_TYPE_RE = re.compile(r"\[#(.*?)#\]")
_PROPERTY_RE = re.compile(r"^(?P<name>[^(<:]+?)\s*:(?!:)\s*(?P<args>.*)$")
_CALL_RE = re.compile(r"^(?P<name>[^(]*)\((?P<args>.*)\)")
_FUNCTION_POINTER_RE = re.compile(r"^(?P<ret>[^(]*)\(\*\)\s*\((?P<args>.*)\)")
_OPTIONAL_RE = re.compile(r"\{#.*#\}")
_PLACEHOLDER_RE = re.compile(r"<#(.*?)#>")

KIND_CALL = "call"
KIND_PROPERTY = "property"
KIND_POINTER = "pointer"


@dataclass(frozen=True)
class TemplateVariant:
    display_args: str
    return_type: str
    raw_args: str
    kind: str = KIND_CALL


@dataclass(frozen=True)
class TemplateExpansion:
    snippet: str
    placeholders: tuple[str, ...] = ()


def split_arguments(text: str) -> list[str]:
    """Split on commas that are not nested inside `<...>` or `(...)`."""
    source = str(text or "").strip()
    if not source:
        return []
    tokens = [token.strip() for token in re.split(r",\s*", source)]
    if "<" not in source and "(" not in source:
        return tokens

    out: list[str] = []
    pending = ""
    for token in tokens:
        if pending:
            token = f"{pending}, {token}"
            pending = ""
        if _balanced(token, "<", ">") and _balanced(token, "(", ")"):
            out.append(token)
        else:
            pending = token
    if pending:
        out.append(pending)
    return out


def _balanced(text: str, opener: str, closer: str) -> bool:
    return text.count(opener) == text.count(closer)


def _is_variadic(raw_args: str) -> bool:
    inner = _strip_parens(clean_document(raw_args))
    args = split_arguments(inner)
    return bool(args) and args[-1].strip() == "..."


def _strip_variadic(raw_args: str) -> str:
    idx = raw_args.rfind("...")
    if idx < 0:
        return raw_args
    head = raw_args[:idx].rstrip()
    if head.endswith(","):
        head = head[:-1].rstrip()
    return head + raw_args[idx + 3 :]


def _strip_parens(text: str) -> str:
    value = str(text or "").strip()
    if value.startswith("(") and value.endswith(")"):
        return value[1:-1]
    return value


def _variant(raw_args: str, return_type: str, kind: str) -> TemplateVariant:
    display = clean_document(raw_args).strip()
    raw = raw_args
    if kind != KIND_PROPERTY and not _strip_parens(raw_args).strip():
        # Nullary call: nothing to edit.
        raw = ""
    return TemplateVariant(display_args=display, return_type=return_type.strip(), raw_args=raw, kind=kind)


class SignatureTemplater:
    def variants(self, help_text: str) -> list[TemplateVariant]:
        emitted: list[TemplateVariant] = []
        for line in str(help_text or "").split("\n"):
            if line.strip():
                emitted.extend(self._line_variants(line))

        # Keep the last emission of each display text, in emission order.
        seen: set[str] = set()
        kept: list[TemplateVariant] = []
        for variant in reversed(emitted):
            if variant.display_args in seen:
                continue
            seen.add(variant.display_args)
            kept.append(variant)
        kept.reverse()
        return kept

    def variants_for(self, candidate: Candidate) -> list[TemplateVariant]:
        return self.variants(candidate.help_text)

    def _line_variants(self, line: str) -> list[TemplateVariant]:
        return_type = ""
        m = _RETURN_TYPE_RE.search(line)
        if m is not None:
            return_type = m.group(1)
        signature = _RETURN_TYPE_RE.sub("", line).strip()

        prop = _PROPERTY_RE.match(signature)
        if prop is not None:
            return [_variant(prop.group("args"), return_type, KIND_PROPERTY)]

        call = _CALL_RE.match(signature)
        if call is not None:
            raw = f"({call.group('args')})"
            out = [_variant(raw, return_type, KIND_CALL)]
            if "{#" in raw:
                raw = _OPTIONAL_RE.sub("", raw)
                out.append(_variant(raw, return_type, KIND_CALL))
            if _is_variadic(raw):
                out.append(_variant(_strip_variadic(raw), return_type, KIND_CALL))
            return out

        pointer = _FUNCTION_POINTER_RE.match(return_type.strip())
        if pointer is not None:
            pointer_ret = pointer.group("ret")
            raw = f"({pointer.group('args')})"
            out = [_variant(raw, pointer_ret, KIND_POINTER)]
            if _is_variadic(raw):
                out.append(_variant(_strip_variadic(raw), pointer_ret, KIND_POINTER))
            return out
        return []


def expand_template(variant: TemplateVariant) -> TemplateExpansion:
    """Snippet text with numbered `${n:...}` fields for one variant."""
    if variant.kind != KIND_PROPERTY and not variant.raw_args:
        return TemplateExpansion(snippet="()")

    raw = variant.raw_args.replace("{#", "").replace("#}", "")
    if variant.kind == KIND_POINTER or "<#" not in raw:
        if variant.kind == KIND_PROPERTY:
            return _fields_snippet([clean_document(raw).strip()], wrap=False)
        return _fields_snippet(split_arguments(_strip_parens(clean_document(raw))), wrap=True)

    placeholders: list[str] = []

    def _field(match: re.Match[str]) -> str:
        parts: list[str] = []
        for piece in split_arguments(match.group(1)):
            placeholders.append(piece)
            parts.append(f"${{{len(placeholders)}:{_escape(piece)}}}")
        return ", ".join(parts)

    snippet = _PLACEHOLDER_RE.sub(_field, _escape_literal(raw))
    return TemplateExpansion(snippet=snippet, placeholders=tuple(placeholders))


def _fields_snippet(args: list[str], *, wrap: bool) -> TemplateExpansion:
    fields = [f"${{{idx}:{_escape(arg)}}}" for idx, arg in enumerate(args, start=1) if arg]
    body = ", ".join(fields)
    snippet = f"({body})" if wrap else body
    return TemplateExpansion(snippet=snippet, placeholders=tuple(arg for arg in args if arg))


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("$", "\\$").replace("}", "\\}")


def _escape_literal(raw: str) -> str:
    # Escape everything outside `<#...#>` so the substitution only adds fields.
    out: list[str] = []
    pos = 0
    for m in _PLACEHOLDER_RE.finditer(raw):
        out.append(_escape(raw[pos : m.start()]))
        out.append(m.group(0))
        pos = m.end()
    out.append(_escape(raw[pos:]))
    return "".join(out)
