"""JSON repair cascade for model output.

Models asked for JSON frequently return almost-JSON: fenced blocks, periods
where commas belong, unescaped quotes inside Arabic or Hebrew prose, strings
broken across raw line breaks. This module applies an ordered series of pure
text fixes and reparses after each pass:

1. ``strip_code_fences``
2. ``repair_rtl_strings``
3. ``fix_common_mistakes``  -> parse attempt 1
4. ``aggressive_repair``    -> parse attempt 2
5. greedy ``{...}`` substring rescue -> parse attempt 3

Text that already parses after fence stripping is returned untouched.

Example:
    >>> outcome = repair_json('```json\\n{"a": 1}\\n```')
    >>> outcome.stage, outcome.value
    ('direct', {'a': 1})
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

logger = logging.getLogger(__name__)

RepairStage = Literal["direct", "first_pass", "aggressive", "substring", "failed"]

# Right-to-left script ranges
ARABIC_CHARS = "\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF"
HEBREW_CHARS = "\u0590-\u05FF"
RTL_CHARS = HEBREW_CHARS + ARABIC_CHARS

_RTL_RE = re.compile(f"[{RTL_CHARS}]")

# =============================================================================
# Patterns
# =============================================================================

_FENCE_OPEN = re.compile(r"^```[\w-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?[ \t]*```$")

_STRING_LITERAL = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)

# "text"). or "text") before the next element: pull the paren into the string
_PAREN_AFTER_STRING = re.compile(r'"[ \t]*\)[ \t]*\.?[ \t]*(\r?\n\s*)(?=["\]}])')
# "text".<newline>"next"
_PERIOD_BEFORE_ELEMENT = re.compile(r'"[ \t]*\.[ \t]*(\r?\n\s*)(?=["{])')
# "text".<newline>]
_PERIOD_BEFORE_CLOSE = re.compile(r'"[ \t]*\.[ \t]*(\r?\n\s*)(?=[\]}])')
# value<newline>value with no separator
_MISSING_COMMA = re.compile(r'("|\}|\]|\d|\btrue|\bfalse|\bnull)([ \t]*\r?\n\s*)(?=["{\[])')
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_DOUBLED_COMMA = re.compile(r",(?:\s*,)+")
_KEY_COLON = re.compile(r'"[ \t]*:[ \t]*')

_RTL_INNER_QUOTE = re.compile(f'(?<=[{RTL_CHARS}])([ \\t]*)"(?=[ \\t]*[{RTL_CHARS}])')
_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*):")
_LEADING_COMMA = re.compile(r"([\[{]\s*),")
_UNESCAPED_QUOTE = re.compile(r'(?<!\\)"')

_OBJECT_SUBSTRING = re.compile(r"\{[\s\S]*\}")


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ParseAttempt:
    """Result of one strict JSON parse.

    Attributes:
        ok: Whether the text parsed.
        value: Parsed value when ok.
        error: Parser message when not ok.
        position: Character offset of the failure.
    """

    ok: bool
    value: Any = None
    error: str | None = None
    position: int | None = None

    def describe(self) -> str:
        if self.ok:
            return "ok"
        return f"{self.error} (char {self.position})"


@dataclass
class RepairOutcome:
    """Result of running the full cascade.

    Attributes:
        success: Whether any stage produced parseable text.
        value: Parsed JSON value on success.
        text: The text that parsed, or the fence-stripped input on failure.
        stage: Which stage produced the value.
        errors: Parse error descriptions, one per failed attempt.
    """

    success: bool
    value: Any = None
    text: str = ""
    stage: RepairStage = "failed"
    errors: list[str] = field(default_factory=list)


def parse_attempt(text: str) -> ParseAttempt:
    """Strictly parse ``text`` as JSON without raising."""
    try:
        return ParseAttempt(ok=True, value=json.loads(text))
    except json.JSONDecodeError as e:
        return ParseAttempt(ok=False, error=e.msg, position=e.pos)
    except (ValueError, RecursionError) as e:
        return ParseAttempt(ok=False, error=str(e))


# =============================================================================
# Helpers
# =============================================================================


def _has_rtl(text: str) -> bool:
    return bool(_RTL_RE.search(text))


def _outside_strings(text: str, func: Callable[[str], str]) -> str:
    """Apply ``func`` to every segment of ``text`` that is not a string literal."""
    parts: list[str] = []
    last = 0
    for match in _STRING_LITERAL.finditer(text):
        parts.append(func(text[last : match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(func(text[last:]))
    return "".join(parts)


def _skip_blank(text: str, pos: int) -> tuple[int, bool]:
    """Advance past whitespace; report whether a line break was crossed."""
    crossed_newline = False
    while pos < len(text) and text[pos] in " \t\r\n":
        if text[pos] in "\r\n":
            crossed_newline = True
        pos += 1
    return pos, crossed_newline


def _is_structural_quote(text: str, pos: int) -> bool:
    """Whether a quote ending just before ``pos`` closes its string.

    A closing quote is followed by ``, : } ]`` or end of text, or by a line
    break and the start of the next element. A stray period or parenthesis
    before that line break is tolerated.
    """
    j, crossed_newline = _skip_blank(text, pos)
    if j >= len(text):
        return True
    nxt = text[j]
    if nxt in ",:}]":
        return True
    if crossed_newline:
        return nxt in '"{['

    if nxt in ".)":
        k = j
        while k < len(text) and text[k] in ".) \t":
            k += 1
        k, crossed_newline = _skip_blank(text, k)
        return crossed_newline and (k >= len(text) or text[k] in '"]}')
    return False


def _string_has_rtl(current: list[str], text: str, pos: int) -> bool:
    """RTL check over the string read so far plus text up to the next quote."""
    if _has_rtl("".join(current)):
        return True
    end = text.find('"', pos + 1)
    return _has_rtl(text[pos + 1 : end if end != -1 else len(text)])


def _trim_trailing_blanks(out: list[str]) -> None:
    while out and out[-1] in (" ", "\t"):
        out.pop()


# =============================================================================
# Stages
# =============================================================================


def strip_code_fences(text: str) -> str:
    """Remove a leading and trailing markdown code fence.

    Handles fences with or without a language tag (```json, ```JSON, ```).
    Text without fences is only trimmed.
    """
    stripped = text.strip()
    stripped = _FENCE_OPEN.sub("", stripped, count=1)
    stripped = _FENCE_CLOSE.sub("", stripped, count=1)
    return stripped.strip()


def repair_rtl_strings(text: str) -> str:
    """Fix string literals that contain right-to-left script.

    Within such strings, quote characters that are not structural delimiters
    are escaped, and a raw line break is replaced by a single space. A string
    that runs into the start of the next element on the following line is
    closed before the line break. Strings without RTL characters are copied
    as-is, so valid JSON passes through unchanged.
    """
    out: list[str] = []
    current: list[str] = []
    in_string = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if not in_string:
            out.append(ch)
            if ch == '"':
                in_string = True
                current = []
            i += 1
            continue

        if ch == "\\" and i + 1 < n:
            out.append(text[i : i + 2])
            current.append(text[i : i + 2])
            i += 2
            continue

        if ch == '"':
            if _is_structural_quote(text, i + 1) or not _string_has_rtl(current, text, i):
                out.append(ch)
                in_string = False
            else:
                out.append('\\"')
                current.append('\\"')
            i += 1
            continue

        if ch in "\r\n" and _string_has_rtl(current, text, i):
            k, _ = _skip_blank(text, i)
            nxt = text[k] if k < n else ""
            _trim_trailing_blanks(out)
            if not nxt or nxt in "{}[]" or (nxt == '"' and not _is_structural_quote(text, k + 1)):
                # Truncated before the next element
                out.append('"')
                out.append(text[i:k])
                in_string = False
            else:
                out.append(" ")
                current.append(" ")
            i = k
            continue

        out.append(ch)
        current.append(ch)
        i += 1

    return "".join(out)


def fix_common_mistakes(text: str) -> str:
    """Apply the targeted structural fixes models most often need.

    - period used instead of a comma between array elements
    - stray parenthesis after a string element
    - missing comma between adjacent values on separate lines
    - trailing and doubled commas
    - structural colon spacing
    """
    fixed = _PAREN_AFTER_STRING.sub(r')"\1', text)
    fixed = _PERIOD_BEFORE_ELEMENT.sub(r'",\1', fixed)
    fixed = _PERIOD_BEFORE_CLOSE.sub(r'"\1', fixed)
    fixed = _MISSING_COMMA.sub(r"\1,\2", fixed)
    fixed = _TRAILING_COMMA.sub(r"\1", fixed)
    fixed = _DOUBLED_COMMA.sub(",", fixed)
    fixed = _TRAILING_COMMA.sub(r"\1", fixed)
    fixed = _KEY_COLON.sub('": ', fixed)
    return fixed


def _count_quotes(line: str) -> int:
    return len(_UNESCAPED_QUOTE.findall(line))


def _close_truncated_rtl_strings(text: str) -> str:
    """Join RTL strings that run into unquoted text on later lines, then close them."""
    lines = text.split("\n")
    out: list[str] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if _has_rtl(line) and _count_quotes(line) % 2 == 1:
            while i + 1 < len(lines):
                following = lines[i + 1].strip()
                if not following or following[0] in '"{}[]':
                    break
                i += 1
                line = f"{line.rstrip()} {following}"
                if _count_quotes(line) % 2 == 0:
                    break
            if _count_quotes(line) % 2 == 1:
                body = line.rstrip()
                if body.endswith(","):
                    line = body[:-1].rstrip() + '",'
                else:
                    line = body + '"'
        out.append(line)
        i += 1
    return "\n".join(out)


def _escape_control_chars(text: str) -> str:
    """Escape raw newlines, carriage returns and tabs inside string literals."""
    out: list[str] = []
    in_string = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if in_string:
            if ch == "\\" and i + 1 < n:
                out.append(text[i : i + 2])
                i += 2
                continue
            if ch == '"':
                in_string = False
            elif ch == "\n":
                ch = "\\n"
            elif ch == "\r":
                ch = "\\r"
            elif ch == "\t":
                ch = "\\t"
        elif ch == '"':
            in_string = True
        out.append(ch)
        i += 1
    return "".join(out)


def _fix_structure_segment(segment: str) -> str:
    segment = _UNQUOTED_KEY.sub(r'\1"\2"\3:', segment)
    segment = _LEADING_COMMA.sub(r"\1", segment)
    segment = _DOUBLED_COMMA.sub(",", segment)
    return _TRAILING_COMMA.sub(r"\1", segment)


def aggressive_repair(text: str) -> str:
    """Wider, riskier fixes tried after the first pass fails.

    - escape quotes sitting between RTL characters
    - rejoin and close RTL strings truncated by a line break
    - escape raw control characters inside strings
    - quote bare object keys
    - drop leading, doubled and trailing commas
    """
    fixed = _RTL_INNER_QUOTE.sub(r'\1\\"', text)
    fixed = _close_truncated_rtl_strings(fixed)
    fixed = _escape_control_chars(fixed)
    fixed = _outside_strings(fixed, _fix_structure_segment)
    return _TRAILING_COMMA.sub(r"\1", fixed)


# =============================================================================
# Cascade
# =============================================================================


def repair_json(text: str) -> RepairOutcome:
    """Run the full repair cascade over raw model output.

    Args:
        text: Raw generated text.

    Returns:
        RepairOutcome describing which stage, if any, produced parseable JSON.
        Never raises.
    """
    text = text or ""
    errors: list[str] = []

    # Valid documents come back byte-for-byte, surrounding whitespace included
    attempt = parse_attempt(text)
    if attempt.ok:
        return RepairOutcome(success=True, value=attempt.value, text=text, stage="direct")

    stripped = strip_code_fences(text)
    attempt = parse_attempt(stripped)
    if attempt.ok:
        return RepairOutcome(success=True, value=attempt.value, text=stripped, stage="direct")
    errors.append(f"direct: {attempt.describe()}")

    first_pass = fix_common_mistakes(repair_rtl_strings(stripped))
    attempt = parse_attempt(first_pass)
    if attempt.ok:
        logger.debug("JSON repaired by first pass")
        return RepairOutcome(True, attempt.value, first_pass, "first_pass", errors)
    errors.append(f"first_pass: {attempt.describe()}")

    aggressive = aggressive_repair(first_pass)
    attempt = parse_attempt(aggressive)
    if attempt.ok:
        logger.debug("JSON repaired by aggressive pass")
        return RepairOutcome(True, attempt.value, aggressive, "aggressive", errors)
    errors.append(f"aggressive: {attempt.describe()}")

    match = _OBJECT_SUBSTRING.search(stripped)
    if match:
        candidate = match.group(0)
        for variant in (candidate, fix_common_mistakes(repair_rtl_strings(candidate))):
            attempt = parse_attempt(variant)
            if attempt.ok:
                logger.debug("JSON recovered from object substring")
                return RepairOutcome(True, attempt.value, variant, "substring", errors)
        errors.append(f"substring: {attempt.describe()}")
    else:
        errors.append("substring: no object found")

    logger.debug(f"JSON repair failed after {len(errors)} attempts")
    return RepairOutcome(False, None, stripped, "failed", errors)
