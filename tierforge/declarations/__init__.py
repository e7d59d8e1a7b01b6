"""Declaration input: YAML documents, the expression language and variables.

Submodules:
    parser     -- ``${...}`` expression parser producing the expression IR.
    loader     -- YAML documents -> DeclarationSet.
    validation -- schema checks performed at parse time.
    variables  -- variable value resolution and type checking.
    evaluator  -- expression evaluation against variables and outputs.
"""

from tierforge.declarations.evaluator import UNKNOWN, Evaluator, contains_unknown
from tierforge.declarations.loader import load_declarations, parse_document
from tierforge.declarations.parser import parse_expression, parse_string, parse_value
from tierforge.declarations.validation import SchemaValidator
from tierforge.declarations.variables import load_var_file, parse_var_assignments, resolve_variables

__all__ = [
    "UNKNOWN",
    "Evaluator",
    "SchemaValidator",
    "contains_unknown",
    "load_declarations",
    "load_var_file",
    "parse_document",
    "parse_expression",
    "parse_string",
    "parse_value",
    "parse_var_assignments",
    "resolve_variables",
]
