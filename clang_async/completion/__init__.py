from .candidates import Candidate, CompletionParser, clean_document
from .diagnostics import Diagnostic, DiagnosticsSink
from .templates import SignatureTemplater, TemplateExpansion, TemplateVariant, expand_template, split_arguments

__all__ = [
    "Candidate",
    "CompletionParser",
    "Diagnostic",
    "DiagnosticsSink",
    "SignatureTemplater",
    "TemplateExpansion",
    "TemplateVariant",
    "clean_document",
    "expand_template",
    "split_arguments",
]
