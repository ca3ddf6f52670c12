"""Pattern library for secret detection and hostile-input screening.

Every rule is plain data: a name, a compiled regular expression and, for
token rules, a replacement strategy. The scanner and the redactor only
iterate over these tables, so rules can be added or tested in isolation.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Pattern, Tuple


REDACTION_MARKER = "[REDACTED]"


class RedactionStrategy(Enum):
    """How a matched token span is rewritten."""
    KEEP_PREFIX = "keep-prefix"  # keep the captured field name and separator
    BEARER = "bearer"            # keep the "Bearer " scheme
    FULL = "full"                # replace the whole match


@dataclass(frozen=True)
class TokenRule:
    """A secret-shaped token.

    KEEP_PREFIX patterns must define a ``prefix`` named group.
    """

    name: str
    pattern: Pattern[str]
    strategy: RedactionStrategy = RedactionStrategy.FULL

    def replace(self, match: "re.Match[str]", marker: str = REDACTION_MARKER) -> str:
        if self.strategy is RedactionStrategy.KEEP_PREFIX:
            return f"{match.group('prefix')}{marker}"
        if self.strategy is RedactionStrategy.BEARER:
            return f"Bearer {marker}"
        return marker


@dataclass(frozen=True)
class SuspiciousRule:
    """A hostile-input shape. Any single match rejects the input."""

    name: str
    category: str
    pattern: Pattern[str]


def _token(name: str, regex: str, strategy: RedactionStrategy, flags: int = re.IGNORECASE) -> TokenRule:
    return TokenRule(name=name, pattern=re.compile(regex, flags), strategy=strategy)


def _field_token(name: str, field_regex: str, value_regex: str) -> TokenRule:
    return _token(
        name,
        rf"(?P<prefix>(?:{field_regex})[=:\s]+){value_regex}",
        RedactionStrategy.KEEP_PREFIX,
    )


TOKEN_RULES: Tuple[TokenRule, ...] = (
    # API keys
    _field_token("api_key", r"api[_-]?key|key", r"[a-zA-Z0-9_-]{20,}"),
    # Bearer tokens
    _token("bearer_token", r"Bearer\s+[a-zA-Z0-9_.-]{20,}", RedactionStrategy.BEARER),
    # JWT tokens
    _token("jwt_token", r"eyJ[a-zA-Z0-9_.-]+", RedactionStrategy.FULL, flags=0),
    # OAuth tokens
    _field_token("access_token", r"access[_-]?token", r"[a-zA-Z0-9_-]{20,}"),
    _field_token("refresh_token", r"refresh[_-]?token", r"[a-zA-Z0-9_-]{20,}"),
    # Session tokens
    _field_token("session_token", r"session[_-]?token|sess[_-]?id", r"[a-zA-Z0-9_-]{20,}"),
    # Database URLs with credentials
    _token("mongo_url", r"mongodb(?:\+srv)?://[^:\s/]+:[^@\s]+@[^/\s]+", RedactionStrategy.FULL),
    _token("postgres_url", r"postgres(?:ql)?://[^:\s/]+:[^@\s]+@[^/\s]+", RedactionStrategy.FULL),
    _token("mysql_url", r"mysql://[^:\s/]+:[^@\s]+@[^/\s]+", RedactionStrategy.FULL),
    # AWS credentials
    _token("aws_access_key", r"AKIA[0-9A-Z]{16}", RedactionStrategy.FULL),
    _field_token("aws_secret_key", r"aws[_-]?secret[_-]?access[_-]?key", r"[a-zA-Z0-9/+=]{40}"),
    # GitHub tokens
    _token("github_token", r"ghp_[a-zA-Z0-9]{36}", RedactionStrategy.FULL),
    _field_token("github_token_field", r"github[_-]?token", r"[a-zA-Z0-9_-]{20,}"),
    # Generic secrets and passwords
    _field_token("secret", r"secret|password|pwd|pass", r"[a-zA-Z0-9_!@#$%^&*()+=-]{8,}"),
    # Authorization headers
    _field_token("auth_header", r"authorization", r"[a-zA-Z0-9_.-]{20,}"),
)


def _suspicious(category: str, *entries: Tuple[str, str, int]) -> Tuple[SuspiciousRule, ...]:
    return tuple(
        SuspiciousRule(name=name, category=category, pattern=re.compile(regex, flags))
        for name, regex, flags in entries
    )


_I = re.IGNORECASE

SUSPICIOUS_RULES: Tuple[SuspiciousRule, ...] = (
    _suspicious(
        "privilege",
        ("admin", r"admin", _I),
        ("root", r"root", _I),
        ("system", r"system", _I),
        ("sudo", r"sudo", _I),
        ("superuser", r"superuser", _I),
    )
    + _suspicious(
        "path_traversal",
        ("dot_dot_slash", r"\.\./", 0),
        ("etc_dir", r"/etc/", 0),
        ("var_dir", r"/var/", 0),
        ("usr_dir", r"/usr/", 0),
        ("bin_dir", r"/bin/", 0),
        ("sbin_dir", r"/sbin/", 0),
    )
    + _suspicious(
        "script_injection",
        ("script_tag", r"<script", _I),
        ("javascript_uri", r"javascript:", _I),
        ("data_uri", r"data:", _I),
        ("vbscript_uri", r"vbscript:", _I),
    )
    + _suspicious(
        "sql_injection",
        ("union_select", r"union\s+select", _I),
        ("drop_table", r"drop\s+table", _I),
        ("delete_from", r"delete\s+from", _I),
        ("insert_into", r"insert\s+into", _I),
    )
    + _suspicious(
        "command_injection",
        ("subshell", r"\$\(", 0),
        ("backtick", r"`", 0),
        ("or_chain", r"\|\|", 0),
        ("and_chain", r"&&", 0),
        ("semicolon", r";", 0),
        ("pipe", r"\|", 0),
    )
    + _suspicious(
        "protocol_handler",
        ("file_protocol", r"file://", _I),
        ("ftp_protocol", r"ftp://", _I),
        ("ldap_protocol", r"ldap://", _I),
        ("gopher_protocol", r"gopher://", _I),
    )
    + _suspicious(
        "encoding_evasion",
        ("encoded_dot_dot", r"%2e%2e", _I),
        ("encoded_slash", r"%2f", _I),
        ("encoded_backslash", r"%5c", _I),
        ("hex_escape", r"\\x", 0),
        ("unicode_escape", r"\\u", 0),
        # Characters JSON can only carry as \uXXXX escapes
        ("control_character", r"[\x00-\x07\x0b\x0e-\x1f\ud800-\udfff]", 0),
    )
    + _suspicious(
        "template_injection",
        ("mustache_open", r"\{\{", 0),
        ("mustache_close", r"\}\}", 0),
        ("dollar_brace", r"\$\{", 0),
        ("erb_open", r"<%", 0),
        ("erb_close", r"%>", 0),
    )
)


# Case-insensitive substring match against key names
SENSITIVE_FIELD_NAMES: Tuple[str, ...] = (
    "api_key", "apikey", "api-key",
    "token", "access_token", "accesstoken", "refresh_token", "refreshtoken",
    "secret", "password", "pwd", "pass",
    "authorization", "auth", "credential", "credentials",
    "session_token", "sessiontoken", "sess_id", "sessionid",
    "github_token", "githubtoken",
    "aws_secret_access_key", "awssecretaccesskey",
    "private_key", "privatekey",
    "client_secret", "clientsecret",
)

# Broader key list for the final output pass
OUTPUT_SENSITIVE_KEYS: Tuple[str, ...] = (
    "api_key", "apikey", "token", "password", "secret", "auth",
    "authorization", "credential", "key",
)

PROTOTYPE_POLLUTION_KEYS: FrozenSet[str] = frozenset(
    {"__proto__", "constructor", "prototype"}
)


class PatternLibrary:
    """Bundle of the rule tables used by the scanner and the redactor."""

    def __init__(
        self,
        token_rules: Optional[Iterable[TokenRule]] = None,
        suspicious_rules: Optional[Iterable[SuspiciousRule]] = None,
        sensitive_field_names: Optional[Iterable[str]] = None,
        output_sensitive_keys: Optional[Iterable[str]] = None,
        prototype_keys: Optional[Iterable[str]] = None,
    ):
        self.token_rules: Tuple[TokenRule, ...] = tuple(
            TOKEN_RULES if token_rules is None else token_rules
        )
        self.suspicious_rules: Tuple[SuspiciousRule, ...] = tuple(
            SUSPICIOUS_RULES if suspicious_rules is None else suspicious_rules
        )
        self.sensitive_field_names: Tuple[str, ...] = tuple(
            name.lower()
            for name in (
                SENSITIVE_FIELD_NAMES
                if sensitive_field_names is None
                else sensitive_field_names
            )
        )
        self.output_sensitive_keys: Tuple[str, ...] = tuple(
            name.lower()
            for name in (
                OUTPUT_SENSITIVE_KEYS
                if output_sensitive_keys is None
                else output_sensitive_keys
            )
        )
        self.prototype_keys: FrozenSet[str] = frozenset(
            PROTOTYPE_POLLUTION_KEYS if prototype_keys is None else prototype_keys
        )

    def is_sensitive_field(self, name: str) -> bool:
        """True if ``name`` contains any sensitive field name."""
        lowered = str(name).lower()
        return any(sensitive in lowered for sensitive in self.sensitive_field_names)

    def is_output_sensitive_key(self, name: str) -> bool:
        lowered = str(name).lower()
        return any(sensitive in lowered for sensitive in self.output_sensitive_keys)

    def find_suspicious(self, text: str) -> Optional[SuspiciousRule]:
        """Return the first suspicious rule matching ``text``, if any."""
        for rule in self.suspicious_rules:
            if rule.pattern.search(text):
                return rule
        return None

    def find_tokens(self, text: str) -> list[str]:
        """Return the names of all token rules matching ``text``."""
        return [rule.name for rule in self.token_rules if rule.pattern.search(text)]


DEFAULT_PATTERN_LIBRARY = PatternLibrary()
