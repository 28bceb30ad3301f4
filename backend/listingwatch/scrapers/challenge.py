"""JavaScript cookie-challenge solver for Sucuri/CloudProxy protected sites.

The challenge page embeds ``S='<base64>'``. Decoded, it is a short script of
the form::

    a='4'+'2'.slice(0,1)+String.fromCharCode(49);document.cookie='sucuri_'+'x'+"="+a+';path=/';

The solver evaluates that script with a tiny expression evaluator that only
understands string/number literals, ``+``/``-``, parentheses, previously
assigned variables, ``String.fromCharCode`` and the ``slice``, ``substr``,
``substring`` and ``charAt`` string methods. Anything else makes the
challenge unsolvable; nothing is ever handed to a real JS engine or ``eval``.
"""

import base64
import binascii
import re
import time
from typing import Dict, List, Optional, Tuple, Union

import structlog

from listingwatch.config import settings
from listingwatch.scrapers.utils.normalizer import normalize_domain


logger = structlog.get_logger(__name__)

CHALLENGE_MARKER = "sucuri_cloudproxy_js"

_PAYLOAD_RE = re.compile(r"S\s*=\s*'([A-Za-z0-9+/=]+)'")
_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<number>0[xX][0-9a-fA-F]+|\d+(?:\.\d+)?)
    |(?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    |(?P<ident>[A-Za-z_$][\w$]*)
    |(?P<op>[+\-().,;=\[\]])
    """,
    re.VERBOSE,
)

JSValue = Union[str, float]


class ChallengeSolveError(Exception):
    """The challenge script uses a construct the evaluator does not support."""


def is_challenge_page(html: str) -> bool:
    return CHALLENGE_MARKER in (html or "")


def _unescape(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t", "r": "\r"}.get(m.group(1), m.group(1)), body)


def _tokenize(source: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if not match:
            raise ChallengeSolveError(f"unexpected character {source[pos]!r}")
        pos = match.end()
        kind = match.lastgroup
        if kind == "ws":
            continue
        tokens.append((kind, match.group()))
    return tokens


def _to_str(value: JSValue) -> str:
    if isinstance(value, str):
        return value
    if value == int(value):
        return str(int(value))
    return repr(value)


def _to_int(value: JSValue) -> int:
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return 0
    return int(value)


class _Evaluator:
    """Recursive-descent evaluator over a token list."""

    def __init__(self, tokens: List[Tuple[str, str]], variables: Dict[str, JSValue]):
        self.tokens = tokens
        self.pos = 0
        self.variables = variables

    def peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    def take(self, value: Optional[str] = None) -> Tuple[str, str]:
        token = self.peek()
        if token is None:
            raise ChallengeSolveError("unexpected end of script")
        if value is not None and token[1] != value:
            raise ChallengeSolveError(f"expected {value!r}, got {token[1]!r}")
        self.pos += 1
        return token

    def accept(self, value: str) -> bool:
        token = self.peek()
        if token is not None and token[0] == "op" and token[1] == value:
            self.pos += 1
            return True
        return False

    def expression(self) -> JSValue:
        value = self.unary()
        while True:
            if self.accept("+"):
                right = self.unary()
                if isinstance(value, str) or isinstance(right, str):
                    value = _to_str(value) + _to_str(right)
                else:
                    value = value + right
            elif self.accept("-"):
                right = self.unary()
                value = float(_to_int(value) - _to_int(right))
            else:
                return value

    def unary(self) -> JSValue:
        if self.accept("-"):
            return -float(_to_int(self.unary()))
        if self.accept("+"):
            return float(_to_int(self.unary()))
        return self.postfix(self.primary())

    def primary(self) -> JSValue:
        kind, text = self.take()
        if kind == "number":
            return float(int(text, 16)) if text.lower().startswith("0x") else float(text)
        if kind == "string":
            return _unescape(text)
        if kind == "op" and text == "(":
            value = self.expression()
            self.take(")")
            return value
        if kind == "ident":
            if text == "String" and self.accept("."):
                _, method = self.take()
                if method != "fromCharCode":
                    raise ChallengeSolveError(f"unsupported String.{method}")
                return "".join(chr(_to_int(arg)) for arg in self.arguments())
            if text in self.variables:
                return self.variables[text]
            raise ChallengeSolveError(f"unknown identifier {text!r}")
        raise ChallengeSolveError(f"unexpected token {text!r}")

    def arguments(self) -> List[JSValue]:
        self.take("(")
        args: List[JSValue] = []
        if self.accept(")"):
            return args
        while True:
            args.append(self.expression())
            if self.accept(")"):
                return args
            self.take(",")

    def postfix(self, value: JSValue) -> JSValue:
        while True:
            if self.accept("."):
                _, method = self.take()
                value = self.call_method(_to_str(value), method, self.arguments())
            elif self.accept("["):
                index = _to_int(self.expression())
                self.take("]")
                text = _to_str(value)
                value = text[index] if 0 <= index < len(text) else ""
            else:
                return value

    @staticmethod
    def call_method(text: str, method: str, args: List[JSValue]) -> str:
        ints = [_to_int(a) for a in args]
        length = len(text)
        if method == "charAt":
            index = ints[0] if ints else 0
            return text[index] if 0 <= index < length else ""
        if method == "slice":
            start = ints[0] if ints else 0
            end = ints[1] if len(ints) > 1 else length
            return text[start:end]
        if method == "substr":
            start = ints[0] if ints else 0
            if start < 0:
                start = max(length + start, 0)
            count = ints[1] if len(ints) > 1 else length - start
            return text[start:start + max(count, 0)]
        if method == "substring":
            start = min(max(ints[0] if ints else 0, 0), length)
            end = min(max(ints[1] if len(ints) > 1 else length, 0), length)
            if start > end:
                start, end = end, start
            return text[start:end]
        raise ChallengeSolveError(f"unsupported method {method!r}")


def _run_statements(source: str, variables: Dict[str, JSValue]) -> None:
    """Execute ``name = expr;`` statements, storing results in ``variables``."""
    evaluator = _Evaluator(_tokenize(source), variables)
    while not evaluator.at_end():
        if evaluator.accept(";"):
            continue
        kind, name = evaluator.take()
        if kind != "ident":
            raise ChallengeSolveError(f"expected assignment, got {name!r}")
        if name == "var":
            kind, name = evaluator.take()
        evaluator.take("=")
        variables[name] = evaluator.expression()


def solve_challenge(html: str) -> Optional[str]:
    """Compute the ``name=value`` cookie a challenge page asks the browser to set.

    Args:
        html: Challenge page body

    Returns:
        Cookie pair, or None when the payload is missing or unsupported
    """
    match = _PAYLOAD_RE.search(html or "")
    if not match:
        return None

    try:
        script = base64.b64decode(match.group(1)).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    parts = script.split("document.cookie")
    if len(parts) < 2:
        return None

    variables: Dict[str, JSValue] = {}
    try:
        _run_statements(parts[0], variables)

        evaluator = _Evaluator(_tokenize(parts[1]), variables)
        evaluator.take("=")
        cookie_expr = _to_str(evaluator.expression())
    except (ChallengeSolveError, IndexError, ValueError, OverflowError) as e:
        logger.debug("challenge_eval_failed", error=str(e))
        return None

    cookie = cookie_expr.split(";", 1)[0].strip()
    name, sep, value = cookie.partition("=")
    if not sep or not name or not value:
        return None
    return cookie


class ChallengeCookieCache:
    """Solved challenge cookies per domain.

    Entries are stored under both the normalized domain and the raw
    hostname, and expire after CHALLENGE_COOKIE_TTL_HOURS.
    """

    def __init__(self, ttl_seconds: Optional[float] = None):
        self.ttl_seconds = (
            settings.CHALLENGE_COOKIE_TTL_HOURS * 3600 if ttl_seconds is None else ttl_seconds
        )
        self._entries: Dict[str, Tuple[str, float]] = {}

    def get(self, hostname: str) -> Optional[str]:
        now = time.time()
        for key in (normalize_domain(hostname), hostname):
            entry = self._entries.get(key)
            if entry and entry[1] > now:
                return entry[0]
        return None

    def set(self, hostname: str, cookie: str) -> None:
        entry = (cookie, time.time() + self.ttl_seconds)
        domain = normalize_domain(hostname)
        self._entries[domain] = entry
        if hostname != domain:
            self._entries[hostname] = entry

    def clear(self) -> None:
        self._entries.clear()


# Global cache shared by every fetch client in the process
challenge_cookie_cache = ChallengeCookieCache()


def get_challenge_cookie_cache() -> ChallengeCookieCache:
    """Get the global challenge cookie cache.

    Returns:
        ChallengeCookieCache instance
    """
    return challenge_cookie_cache
