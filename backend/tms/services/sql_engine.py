"""
SQL statement helpers - lexical classification and input hygiene
"""
import re
import enum


class StatementType(str, enum.Enum):
    """Closed set of statement kinds the executor distinguishes."""
    SELECT = "SELECT"
    DML = "DML"
    DDL = "DDL"
    PLSQL = "PLSQL"
    OTHER = "OTHER"


class QueryValidator:
    """
    Classify SQL statements by their leading keyword.

    This is a heuristic, not a parser. Leading whitespace, "--" line comments
    and "/* */" block comments (optimizer hints included) are skipped before
    the keyword is read. A comment that is never closed leaves the statement
    unclassifiable and it falls through to OTHER.
    """

    STATEMENT_PATTERNS = {
        StatementType.SELECT: r'^(SELECT|WITH)\b',
        StatementType.DDL: r'^(CREATE|ALTER|DROP|TRUNCATE|GRANT|REVOKE|RENAME|COMMENT)\b',
        StatementType.DML: r'^(INSERT|UPDATE|DELETE|MERGE)\b',
        StatementType.PLSQL: r'^(BEGIN|DECLARE|CALL)\b',
    }

    LEADING_NOISE = re.compile(r'^(\s+|--[^\n]*(\n|$)|/\*.*?\*/)', re.DOTALL)

    IDENTIFIER = re.compile(r'^[A-Za-z][A-Za-z0-9_$#]{0,127}$')

    @classmethod
    def strip_leading_comments(cls, query: str) -> str:
        text = query
        while True:
            match = cls.LEADING_NOISE.match(text)
            if not match or not match.group(0):
                return text
            text = text[match.end():]

    @classmethod
    def get_statement_type(cls, query: str) -> StatementType:
        """Determine the kind of SQL statement."""
        normalized = cls.strip_leading_comments(query).strip().upper()

        for stype, pattern in cls.STATEMENT_PATTERNS.items():
            if re.match(pattern, normalized):
                return stype

        return StatementType.OTHER

    @staticmethod
    def strip_trailing_semicolons(query: str) -> str:
        """Oracle rejects a terminating ';' on plain SQL sent through the driver."""
        text = query.strip()
        # PL/SQL blocks need their final 'END;'
        if re.search(r'\bEND\s*;\s*$', text, re.IGNORECASE):
            return text
        return re.sub(r'(\s*;)+\s*$', '', text)

    @classmethod
    def is_identifier(cls, name: str) -> bool:
        """Unquoted Oracle identifier (schema, table or user name)."""
        return bool(name) and bool(cls.IDENTIFIER.match(name))


def classify_statement(query: str) -> StatementType:
    return QueryValidator.get_statement_type(query)
