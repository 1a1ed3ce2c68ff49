"""
`programs.form_schema`

Pure validation and repair of question definitions, plus the published-form update guard.
"""

from programs.form_schema.minor_update import strip_protected_fields, validate_minor_update
from programs.form_schema.repair import repair_question, repair_questions
from programs.form_schema.validation import parse_question, validate_question

__all__ = [
    "parse_question",
    "repair_question",
    "repair_questions",
    "strip_protected_fields",
    "validate_minor_update",
    "validate_question",
]
