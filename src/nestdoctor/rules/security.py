"""Security rules: code execution, leaked credentials, transport and query safety."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from nestdoctor.engine.syntax import (
    descendants_of_type,
    node_text,
    property_name,
    start_line,
    string_value,
)
from nestdoctor.rules.base import rule

if TYPE_CHECKING:
    from tree_sitter import Node as TSNode

    from nestdoctor.engine.runner import FileContext

# (pattern, human-readable name); first match wins.
SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^(?=.*\d)[A-Za-z0-9+/]{40,}={0,2}$"), "Base64 key"),
    (re.compile(r"^sk[-_][a-zA-Z0-9]{20,}$"), "Secret key"),
    (re.compile(r"^pk[-_][a-zA-Z0-9]{20,}$"), "Public key (in source)"),
    (re.compile(r"^ghp_[a-zA-Z0-9]{36,}$"), "GitHub personal access token"),
    (re.compile(r"^github_pat_[a-zA-Z0-9_]{22,}$"), "GitHub fine-grained PAT"),
    (re.compile(r"^gho_[a-zA-Z0-9]{36,}$"), "GitHub OAuth token"),
    (re.compile(r"^xox[bpras]-[a-zA-Z0-9-]+$"), "Slack token"),
    (re.compile(r"^eyJ[a-zA-Z0-9_-]{10,}\.[a-zA-Z0-9_-]{10,}\."), "JWT token"),
    (re.compile(r"^AKIA[0-9A-Z]{16}$"), "AWS Access Key ID"),
    (re.compile(r"^[a-f0-9]{64}$"), "Hex-encoded secret (64 chars)"),
)
MIN_LITERAL_LENGTH = 16

SECRET_NAME_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"secret",
        r"password",
        r"passwd",
        r"api[_-]?key",
        r"auth[_-]?token",
        r"private[_-]?key",
        r"access[_-]?key",
        r"client[_-]?secret",
    )
)
PLACEHOLDER_VALUES: frozenset[str] = frozenset({"your-secret-here", "changeme", "password"})
_DOTTED_CONSTANT_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z][A-Za-z0-9_]*)+$")

_WILDCARD_ORIGINS: frozenset[str] = frozenset({"'*'", '"*"', "true"})
CSRF_KEYS: frozenset[str] = frozenset({"csrf", "csrfProtection"})

WEAK_HASHES: frozenset[str] = frozenset({"md5", "sha1"})
RAW_QUERY_METHODS: frozenset[str] = frozenset(
    {"$executeRaw", "$queryRaw", "$executeRawUnsafe", "$queryRawUnsafe", "query"}
)


# ---------------------------------------------------------------------------
# eval / new Function
# ---------------------------------------------------------------------------


@rule(
    id="security/no-eval",
    category="security",
    severity="error",
    description="Usage of eval() or new Function() is a security risk and should be avoided",
    help=(
        "Refactor to avoid eval() and new Function(). Use safer alternatives like "
        "JSON.parse() or a sandboxed interpreter."
    ),
)
def no_eval(ctx: FileContext) -> None:
    for call in descendants_of_type(ctx.root, "call_expression"):
        if node_text(call.child_by_field_name("function")) == "eval":
            ctx.report(line=start_line(call), message="Usage of eval() is a security risk.")
    for expr in descendants_of_type(ctx.root, "new_expression"):
        if node_text(expr.child_by_field_name("constructor")) == "Function":
            ctx.report(
                line=start_line(expr), message="Usage of new Function() is a security risk."
            )


# ---------------------------------------------------------------------------
# Hardcoded secrets
# ---------------------------------------------------------------------------


def is_suspicious_value(value: str) -> bool:
    """True for a string that could plausibly be a real credential."""
    if len(value) < 8:
        return False
    if "${" in value or value.startswith("process.env"):
        return False
    if value in PLACEHOLDER_VALUES or " " in value:
        return False
    return not _DOTTED_CONSTANT_RE.match(value)


def has_secret_name(name: str) -> bool:
    return any(p.search(name) for p in SECRET_NAME_PATTERNS)


def _named_string(name_node: TSNode | None, value_node: TSNode | None) -> tuple[str, str] | None:
    """``(name, literal)`` for ``name = "literal"`` shaped nodes, else ``None``."""
    if name_node is None or value_node is None:
        return None
    value = string_value(value_node)
    if value is None:
        return None
    return property_name(name_node), value


@rule(
    id="security/no-hardcoded-secrets",
    category="security",
    severity="error",
    description="Detect hardcoded secrets, API keys, and tokens in source code",
    help="Move secrets to environment variables and access them via ConfigService.",
)
def no_hardcoded_secrets(ctx: FileContext) -> None:
    for literal in descendants_of_type(ctx.root, "string"):
        value = string_value(literal) or ""
        if len(value) < MIN_LITERAL_LENGTH:
            continue
        parent = literal.parent
        if parent is not None and parent.type in ("import_statement", "export_statement"):
            continue
        for pattern, name in SECRET_PATTERNS:
            if pattern.search(value):
                ctx.report(
                    line=start_line(literal),
                    message=f"Possible hardcoded {name} detected.",
                )
                break

    for decl in descendants_of_type(ctx.root, "variable_declarator"):
        named = _named_string(decl.child_by_field_name("name"), decl.child_by_field_name("value"))
        if named is not None and has_secret_name(named[0]) and is_suspicious_value(named[1]):
            ctx.report(
                line=start_line(decl),
                message=f"Variable '{named[0]}' appears to contain a hardcoded secret.",
            )

    for pair in descendants_of_type(ctx.root, "pair"):
        named = _named_string(pair.child_by_field_name("key"), pair.child_by_field_name("value"))
        if named is not None and has_secret_name(named[0]) and is_suspicious_value(named[1]):
            ctx.report(
                line=start_line(pair),
                message=f"Property '{named[0]}' appears to contain a hardcoded secret.",
            )


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


@rule(
    id="security/no-wildcard-cors",
    category="security",
    severity="error",
    description=(
        "CORS should not be configured with origin: '*' or origin: true, which allows any domain"
    ),
    help="Specify allowed origins explicitly instead of using wildcard CORS.",
)
def no_wildcard_cors(ctx: FileContext) -> None:
    for pair in descendants_of_type(ctx.root, "pair"):
        if property_name(pair.child_by_field_name("key")) != "origin":
            continue
        text = node_text(pair.child_by_field_name("value"))
        if text in _WILDCARD_ORIGINS:
            ctx.report(
                line=start_line(pair),
                message=f"CORS configured with origin: {text}, allowing requests from any domain.",
            )


@rule(
    id="security/no-csrf-disabled",
    category="security",
    severity="error",
    description="CSRF protection should not be explicitly disabled",
    help="Remove the csrf: false option and keep CSRF protection enabled.",
)
def no_csrf_disabled(ctx: FileContext) -> None:
    for pair in descendants_of_type(ctx.root, "pair"):
        name = property_name(pair.child_by_field_name("key"))
        if name in CSRF_KEYS and node_text(pair.child_by_field_name("value")) == "false":
            ctx.report(
                line=start_line(pair),
                message=f"CSRF protection explicitly disabled ({name}: false).",
            )


# ---------------------------------------------------------------------------
# Crypto, raw SQL, environment
# ---------------------------------------------------------------------------


@rule(
    id="security/no-weak-crypto",
    category="security",
    severity="warning",
    description="MD5 and SHA-1 are broken hash functions",
    help="Use SHA-256 or stronger, and bcrypt or argon2 for passwords.",
)
def no_weak_crypto(ctx: FileContext) -> None:
    for call in descendants_of_type(ctx.root, "call_expression"):
        if not node_text(call.child_by_field_name("function")).endswith("createHash"):
            continue
        args = call.child_by_field_name("arguments")
        first = args.named_children[0] if args is not None and args.named_children else None
        algorithm = string_value(first) if first is not None else None
        if algorithm is not None and algorithm.lower() in WEAK_HASHES:
            ctx.report(
                line=start_line(call),
                message=f"Weak hashing algorithm '{algorithm}' used in createHash().",
            )


@rule(
    id="security/no-unsafe-raw-query",
    category="security",
    severity="error",
    description="Raw SQL built from an interpolated template literal is open to SQL injection",
    help="Use parameterized queries or the tagged-template form of the query API.",
)
def no_unsafe_raw_query(ctx: FileContext) -> None:
    for call in descendants_of_type(ctx.root, "call_expression"):
        method = node_text(call.child_by_field_name("function")).rsplit(".", 1)[-1]
        if method not in RAW_QUERY_METHODS:
            continue
        args = call.child_by_field_name("arguments")
        if args is None or not args.named_children:
            continue
        first = args.named_children[0]
        if first.type != "template_string":
            continue
        if any(c.type == "template_substitution" for c in first.named_children):
            ctx.report(
                line=start_line(call),
                message=(
                    f"Raw SQL query '{method}()' uses template literal interpolation, "
                    "SQL injection risk."
                ),
            )


@rule(
    id="security/no-exposed-env-vars",
    category="security",
    severity="warning",
    description="Providers and controllers should read configuration through ConfigService",
    help="Inject ConfigService and read the value with configService.get().",
)
def no_exposed_env_vars(ctx: FileContext) -> None:
    for cls in ctx.facts.classes:
        if not (cls.has_decorator("Injectable") or cls.has_decorator("Controller")):
            continue
        for member in descendants_of_type(cls.node, "member_expression"):
            if node_text(member.child_by_field_name("object")) != "process.env":
                continue
            name = node_text(member.child_by_field_name("property"))
            ctx.report(
                line=start_line(member),
                message=(
                    f"Direct 'process.env.{name}' access in '{cls.name}'. "
                    "Use ConfigService instead."
                ),
            )


RULES = (
    no_eval,
    no_hardcoded_secrets,
    no_wildcard_cors,
    no_csrf_disabled,
    no_weak_crypto,
    no_unsafe_raw_query,
    no_exposed_env_vars,
)
