"""Shell command splitting and normalization.

Turns a raw ``Bash`` tool command into an ordered list of ``Segment``
objects that the permission classifier can pattern-match one by one:

1. Heredoc bodies are cut out first (``extract_heredocs``) so their text is
   never mistaken for shell syntax.
2. The remaining command line is split on top-level control operators
   (``split_segments``), honouring quotes, escapes and substitutions.
3. Each slice has its redirections removed (``strip_redirections``) and its
   program path reduced to a bare name (``normalize_program``).
4. Interpreter invocations get their script body attached, from either an
   inline-execute flag or a heredoc.  Bodies fed to a POSIX shell, and the
   bodies of command and process substitutions, are parsed again and
   appended as nested segments.

This is not a shell parser.  Anything it does not understand degrades to
"segment is the raw text, no script attached".
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

from permission_hook.hooks.models import InlineScript, Segment

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_NESTING_DEPTH: int = 3
"""How many levels of ``bash -c`` / shell heredoc bodies are expanded."""

EXECUTABLE_SUFFIXES: tuple[str, ...] = (".exe", ".cmd", ".bat", ".com")

INTERPRETER_ALIASES: dict[str, str] = {
    "python": "python",
    "python2": "python",
    "python3": "python",
    "py": "python",
    "node": "node",
    "nodejs": "node",
    "powershell": "powershell",
    "pwsh": "powershell",
    "cmd": "cmd",
}

SHELL_PROGRAMS: frozenset[str] = frozenset({"sh", "bash", "zsh", "dash"})

_INLINE_FLAGS: dict[str, tuple[str, ...]] = {
    "python": ("-c",),
    "node": ("-e", "--eval", "-p", "--print"),
    "powershell": ("-command", "-c"),
    "cmd": ("/c", "/k"),
    "shell": ("-c",),
}

_CASE_INSENSITIVE_FLAGS = frozenset({"powershell", "cmd"})

_SHELL_COMBINED_C_RE = re.compile(r"^-[a-zA-Z]*c$")  # bash -lc, sh -ec

_VERSIONED_PYTHON_RE = re.compile(r"^python\d+(\.\d+)*$")

_HEREDOC_OP_RE = re.compile(r"<<(?P<dash>-)?[ \t]*(?P<q>['\"]?)(?P<delim>\w+)(?P=q)")

_REDIRECT_OP_RE = re.compile(r"(?P<fd>\d+|&)?(?P<op>>>|>\||>&|<&|<>|>(?!\()|<(?![<(]))")

_FD_TARGET_RE = re.compile(r"^(\d+-?|-)$")


@dataclass(frozen=True)
class Heredoc:
    """A heredoc body cut out of a command line."""

    delimiter: str
    body: str
    offset: int  # position of ``<<`` in the heredoc-free command text
    strip_tabs: bool = False


# ---------------------------------------------------------------------------
# Word helpers
# ---------------------------------------------------------------------------


def _iter_words(text: str) -> Iterator[tuple[str, int, int]]:
    """Yield ``(raw_word, start, end)`` for whitespace-separated words.

    Quotes group words; backslashes outside quotes are kept literally so
    Windows paths survive.
    """
    i, n = 0, len(text)
    while i < n:
        while i < n and text[i].isspace():
            i += 1
        if i >= n:
            break
        start = i
        quote: str | None = None
        while i < n:
            ch = text[i]
            if quote:
                if ch == quote:
                    quote = None
                elif ch == "\\" and quote == '"' and i + 1 < n:
                    i += 1
            elif ch in "'\"":
                quote = ch
            elif ch.isspace():
                break
            i += 1
        yield text[start:i], start, i


def unquote(word: str) -> str:
    """Remove shell quoting from one word (``"a b"'c'`` -> ``a bc``)."""
    out: list[str] = []
    quote: str | None = None
    i, n = 0, len(word)
    while i < n:
        ch = word[i]
        if quote == "'":
            if ch == "'":
                quote = None
            else:
                out.append(ch)
        elif quote == '"':
            if ch == '"':
                quote = None
            elif ch == "\\" and i + 1 < n and word[i + 1] in '"\\$`':
                i += 1
                out.append(word[i])
            else:
                out.append(ch)
        elif ch in "'\"":
            quote = ch
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def split_words(text: str) -> list[str]:
    """Unquoted words of *text*."""
    return [unquote(raw) for raw, _, _ in _iter_words(text)]


def _opens_process_substitution(text: str, i: int, quote: str | None) -> bool:
    return quote is None and text.startswith(("<(", ">("), i)


def has_command_substitution(text: str) -> bool:
    """True if *text* runs a command of its own before the program starts.

    Covers ``$(...)`` and backticks outside single quotes, and unquoted
    ``<(...)`` / ``>(...)`` process substitution.
    """
    quote: str | None = None
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if quote == "'":
            if ch == "'":
                quote = None
        elif ch == "\\":
            i += 1
        elif ch == "`" or text.startswith("$(", i) or _opens_process_substitution(text, i, quote):
            return True
        elif ch == '"':
            quote = None if quote == '"' else '"'
        elif ch == "'" and quote is None:
            quote = "'"
        i += 1
    return False


def _closing_paren(text: str, start: int) -> int:
    """Index of the ``)`` closing a group whose body begins at *start*.

    Returns ``len(text)`` for an unterminated group.
    """
    depth = 1
    quote: str | None = None
    i, n = start, len(text)
    while i < n:
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
            elif ch == "\\" and quote == '"':
                i += 1
        elif ch == "\\":
            i += 1
        elif ch in "'\"":
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return n


def substitution_bodies(text: str) -> list[str]:
    """Bodies of the outermost substitutions in *text*, in order.

    Substitutions nested inside a body are left in that body.

    Example:
        >>> substitution_bodies("diff <(ls a) <(ls b) && echo `date`")
        ['ls a', 'ls b', 'date']
    """
    bodies: list[str] = []
    quote: str | None = None
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if quote == "'":
            if ch == "'":
                quote = None
            i += 1
            continue
        if ch == "\\":
            i += 2
            continue
        if text.startswith("$(", i) or _opens_process_substitution(text, i, quote):
            close = _closing_paren(text, i + 2)
            bodies.append(text[i + 2 : close])
            i = close + 1
            continue
        if ch == "`":
            close = text.find("`", i + 1)
            if close == -1:
                close = n
            bodies.append(text[i + 1 : close])
            i = close + 1
            continue
        if ch == '"':
            quote = None if quote == '"' else '"'
        elif ch == "'" and quote is None:
            quote = "'"
        i += 1
    return [body.strip() for body in bodies if body.strip()]


def join_continuations(text: str) -> str:
    """Remove backslash-newline line continuations outside single quotes."""
    out: list[str] = []
    quote: str | None = None
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if quote == "'":
            if ch == "'":
                quote = None
            out.append(ch)
            i += 1
            continue
        if ch == "\\" and i + 1 < n:
            if text[i + 1] != "\n":
                out.append(text[i : i + 2])
            i += 2
            continue
        if ch == '"':
            quote = None if quote == '"' else '"'
        elif ch == "'" and quote is None:
            quote = "'"
        out.append(ch)
        i += 1
    return "".join(out)


# ---------------------------------------------------------------------------
# normalize_program
# ---------------------------------------------------------------------------


def normalize_program(token: str) -> str:
    """Reduce a program token to its bare name.

    Strips quotes, any directory prefix (``/`` or ``\\``) and executable
    suffixes until nothing changes, so the function is idempotent.

    Example:
        >>> normalize_program('"C:\\\\sdk\\\\adb.exe"')
        'adb'
    """
    name = token.strip()
    while True:
        previous = name
        name = unquote(name).strip()
        name = re.split(r"[\\/]", name)[-1]
        lower = name.lower()
        for suffix in EXECUTABLE_SUFFIXES:
            if lower.endswith(suffix) and len(name) > len(suffix):
                name = name[: -len(suffix)]
                break
        if name == previous:
            return name


def interpreter_for(program: str) -> str | None:
    """Map a normalized program name to a script interpreter tag."""
    lower = program.lower()
    if lower in INTERPRETER_ALIASES:
        return INTERPRETER_ALIASES[lower]
    if lower in SHELL_PROGRAMS:
        return "shell"
    if _VERSIONED_PYTHON_RE.match(lower):
        return "python"
    return None


# ---------------------------------------------------------------------------
# extract_heredocs
# ---------------------------------------------------------------------------


def _scan_heredoc_operators(
    line: str, quote: str | None
) -> tuple[list[tuple[int, str, bool]], str | None]:
    """Find unquoted ``<<DELIM`` operators on one command line.

    Returns the ``(position, delimiter, strip_tabs)`` list and the quote
    state carried into the next line.
    """
    ops: list[tuple[int, str, bool]] = []
    i, n = 0, len(line)
    while i < n:
        ch = line[i]
        if quote == "'":
            if ch == "'":
                quote = None
            i += 1
            continue
        if ch == "\\":
            i += 2
            continue
        if quote == '"':
            if ch == '"':
                quote = None
            i += 1
            continue
        if ch in "'\"":
            quote = ch
            i += 1
            continue
        if line.startswith("<<<", i):
            i += 3
            continue
        if line.startswith("<<", i):
            match = _HEREDOC_OP_RE.match(line, i)
            if match:
                ops.append((i, match.group("delim"), bool(match.group("dash"))))
                i = match.end()
                continue
            i += 2
            continue
        i += 1
    return ops, quote


def extract_heredocs(command: str) -> tuple[str, list[Heredoc]]:
    """Cut heredoc bodies out of *command*.

    The body is every line after the operator's line up to (not including)
    a line equal to the delimiter (leading tabs ignored for ``<<-``).  Body
    and delimiter lines are removed from the returned command text.  An
    unterminated heredoc is left in place.

    Returns:
        ``(command_without_bodies, heredocs)`` with heredocs in source order.
    """
    lines = command.split("\n")
    kept: list[str] = []
    heredocs: list[Heredoc] = []
    kept_length = 0
    quote: str | None = None
    idx = 0

    while idx < len(lines):
        line = lines[idx]
        ops, quote = _scan_heredoc_operators(line, quote)
        line_offset = kept_length
        kept.append(line)
        kept_length += len(line) + 1
        idx += 1

        for position, delimiter, strip_tabs in ops:
            body_lines: list[str] = []
            end = idx
            terminated = False
            while end < len(lines):
                candidate = lines[end].rstrip("\r")
                if strip_tabs:
                    candidate = candidate.lstrip("\t")
                if candidate == delimiter:
                    terminated = True
                    break
                body_lines.append(lines[end].lstrip("\t") if strip_tabs else lines[end])
                end += 1
            if not terminated:
                continue
            heredocs.append(
                Heredoc(
                    delimiter=delimiter,
                    body="\n".join(body_lines),
                    offset=line_offset + position,
                    strip_tabs=strip_tabs,
                )
            )
            idx = end + 1

    return "\n".join(kept), heredocs


# ---------------------------------------------------------------------------
# split_segments
# ---------------------------------------------------------------------------


def _split_spans(command: str) -> list[tuple[int, int]]:
    """Split on top-level control operators, returning ``(start, end)`` spans.

    Split points: ``|``, ``|&``, ``||``, ``&&``, ``;``, ``;;``, a lone
    background ``&`` and newlines.  Nothing inside quotes, backticks,
    ``$( )``, ``<( )`` or ``>( )`` is a split point; neither is the ``&`` of
    ``2>&1`` / ``&>``.
    A backslash-newline is a line continuation.
    """
    spans: list[tuple[int, int]] = []
    start = 0
    quote: str | None = None
    depth = 0
    i, n = 0, len(command)

    while i < n:
        ch = command[i]
        nxt = command[i + 1] if i + 1 < n else ""

        if quote == "'":
            if ch == "'":
                quote = None
            i += 1
            continue
        if ch == "\\":
            i += 2
            continue
        if quote == '"':
            if ch == '"':
                quote = None
            i += 1
            continue
        if quote == "`":
            if ch == "`":
                quote = None
            i += 1
            continue
        if ch in "'\"`":
            quote = ch
            i += 1
            continue
        if command.startswith(("$(", "<(", ">("), i):
            depth += 1
            i += 2
            continue
        if depth > 0:
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
            i += 1
            continue

        width = 0
        if ch == "|":
            width = 2 if nxt in ("|", "&") else 1
        elif ch == "&":
            if nxt == "&":
                width = 2
            elif nxt == ">" or (i > 0 and command[i - 1] in "<>"):
                width = 0
            else:
                width = 1
        elif ch == ";":
            width = 2 if nxt == ";" else 1
        elif ch == "\n":
            width = 1

        if width:
            spans.append((start, i))
            i += width
            start = i
        else:
            i += 1

    spans.append((start, n))
    return spans


def split_segments(command: str) -> list[str]:
    """Split *command* into its operator-delimited slices, in order.

    Whitespace-only slices (``a && `` trailing operators) are dropped.

    Example:
        >>> split_segments("git status && echo 'a | b'")
        ['git status', "echo 'a | b'"]
    """
    texts = (command[s:e].strip() for s, e in _split_spans(command))
    return [t for t in texts if t]


# ---------------------------------------------------------------------------
# strip_redirections
# ---------------------------------------------------------------------------


def _at_word_start(text: str, i: int) -> bool:
    return i == 0 or text[i - 1].isspace()


def strip_redirections(segment: str) -> tuple[str, list[str]]:
    """Remove redirection operators and their targets from a segment.

    Handles ``>``, ``>>``, ``>|``, ``<``, ``<>``, ``N>``, ``N>&M``, ``>&N``,
    ``&>``, ``&>>``, ``<<<`` and leftover heredoc operators.  Quoted text is
    never touched.

    Returns:
        ``(remaining_text, targets)``.  Targets are unquoted file names
        (file-descriptor duplications and here-strings are not targets).
    """
    out: list[str] = []
    targets: list[str] = []
    quote: str | None = None
    i, n = 0, len(segment)

    while i < n:
        ch = segment[i]
        if quote:
            if ch == quote:
                quote = None
            elif ch == "\\" and quote == '"' and i + 1 < n:
                out.append(ch)
                i += 1
                ch = segment[i]
            out.append(ch)
            i += 1
            continue
        if ch in "'\"":
            quote = ch
            out.append(ch)
            i += 1
            continue

        if segment.startswith("<<<", i):
            i = _skip_word(segment, i + 3)
            out.append(" ")
            continue
        if segment.startswith("<<", i):
            match = _HEREDOC_OP_RE.match(segment, i)
            if match:
                i = match.end()
                out.append(" ")
                continue

        match = _REDIRECT_OP_RE.match(segment, i)
        if match and (
            match.group("fd") is None
            or match.group("fd") == "&"
            or _at_word_start(segment, i)
        ):
            if match.group("fd") is None and ch not in "<>":
                match = None
        else:
            match = None

        if match is None:
            out.append(ch)
            i += 1
            continue

        word_start = match.end()
        while word_start < n and segment[word_start] in " \t":
            word_start += 1
        word_end = _skip_word(segment, word_start)
        target = unquote(segment[word_start:word_end])
        if target and not (match.group("op") in (">&", "<&") and _FD_TARGET_RE.match(target)):
            targets.append(target)
        out.append(" ")
        i = word_end

    remaining = re.sub(r"[ \t]{2,}", " ", "".join(out)).strip()
    return remaining, targets


def _skip_word(text: str, i: int) -> int:
    """Index just past the (quote-aware) word starting at *i*."""
    n = len(text)
    while i < n and text[i] in " \t":
        i += 1
    for _, _, end in _iter_words(text[i:]):
        return i + end
    return n


# ---------------------------------------------------------------------------
# extract_inline_flag_script
# ---------------------------------------------------------------------------


def _script_argument(args: str, start: int) -> str:
    """Script body for the argument beginning at *start*.

    A quoted argument is unquoted; an unquoted one runs to the end of the
    argument text.
    """
    rest = args[start:].lstrip()
    if not rest or rest[0] not in "'\"":
        return rest
    first = next(_iter_words(rest), None)
    if first is not None and len(first[0]) >= 2 and first[0][-1] == rest[0]:
        return unquote(first[0])
    # unterminated quote: take everything after it
    return rest[1:]


def extract_inline_flag_script(program: str, args: str) -> InlineScript | None:
    """Find ``python -c``, ``node -e``, ``powershell -Command``, ``cmd /c`` bodies.

    Only leading options are inspected; once a non-option word appears (a
    script file) later words belong to that script, not the interpreter.
    """
    interpreter = interpreter_for(program)
    if interpreter is None:
        return None
    flags = _INLINE_FLAGS[interpreter]
    fold = interpreter in _CASE_INSENSITIVE_FLAGS

    for raw, _, end in _iter_words(args):
        word = raw.lower() if fold else raw
        if word in flags or (interpreter == "shell" and _SHELL_COMBINED_C_RE.match(raw)):
            body = _script_argument(args, end)
            if not body:
                return None
            return InlineScript(interpreter=interpreter, body=body, origin="inline-flag")
        if not raw.startswith(("-", "/")):
            return None
    return None


# ---------------------------------------------------------------------------
# parse_command
# ---------------------------------------------------------------------------


def _strip_grouping(text: str) -> str:
    """Drop subshell / brace-group punctuation around a slice."""
    text = text.strip()
    while text[:1] in ("(", "{") and not text.startswith("$("):
        text = text[1:].lstrip()
    while (text.endswith(")") and text.count("(") < text.count(")")) or (
        text.endswith("}") and text.count("{") < text.count("}")
    ):
        text = text[:-1].rstrip()
    return text


def _build_segment(
    raw: str,
    heredocs: list[Heredoc],
    depth: int,
    nested: bool,
) -> list[Segment]:
    """Build one slice's Segment, plus nested segments for shell bodies and substitutions."""
    raw = join_continuations(raw)
    remaining, targets = strip_redirections(raw)
    remaining = _strip_grouping(remaining)

    program = ""
    args = ""
    for first, _, end in _iter_words(remaining):
        program = normalize_program(first)
        args = remaining[end:].strip()
        break

    interpreter = interpreter_for(program) if program else None
    script = extract_inline_flag_script(program, args) if interpreter else None
    if script is None and heredocs and interpreter:
        # Bash feeds stdin from the last heredoc; every body is scanned.
        body = "\n".join(h.body for h in heredocs)
        script = InlineScript(interpreter=interpreter, body=body, origin="heredoc")

    # Shell bodies are shell syntax: expand them into nested segments.
    extra: list[Segment] = []
    if script is not None and script.interpreter == "shell":
        if depth < MAX_NESTING_DEPTH:
            extra = _parse(script.body, depth + 1)
        script = None

    has_substitution = has_command_substitution(raw)
    if has_substitution and depth < MAX_NESTING_DEPTH:
        for body in substitution_bodies(raw):
            extra.extend(_parse(body, depth + 1))

    segment = Segment(
        program=program,
        args=args,
        raw=raw,
        redirect_targets=tuple(targets),
        script=script,
        nested=nested,
        has_substitution=has_substitution,
    )
    return [segment, *extra]


def _parse(command: str, depth: int) -> list[Segment]:
    shell_text, heredocs = extract_heredocs(command)
    segments: list[Segment] = []
    pending = list(heredocs)

    for start, end in _split_spans(shell_text):
        raw = shell_text[start:end].strip()
        attached = [h for h in pending if start <= h.offset < end]
        for h in attached:
            pending.remove(h)
        if not raw:
            continue
        segments.extend(_build_segment(raw, attached, depth, depth > 0))

    return segments


def parse_command(command: str) -> list[Segment]:
    """Parse a raw command into ordered, normalized segments.

    Example:
        >>> [s.text for s in parse_command('"C:\\\\sdk\\\\adb.exe" logcat | grep error')]
        ['adb logcat', 'grep error']
    """
    if not command or not command.strip():
        return []
    return _parse(command, depth=0)


def strip_heredoc_bodies(command: str) -> str:
    """Command text with heredoc bodies removed (for whole-line pattern checks)."""
    return join_continuations(extract_heredocs(command)[0])
