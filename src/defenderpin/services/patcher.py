"""Text patches applied to the vendor defender.sh before it is launched.

Every rule targets text the console's installer is expected to contain. A rule
whose anchor is missing raises AnchorNotFound instead of leaving the script
unmodified, so an operator never runs the stock installer believing it is
pinned.
"""

import difflib
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from defenderpin.errors import AnchorNotFound
from defenderpin.errors_catalog import actionable_error
from defenderpin.models import InstallRequest
from defenderpin.services.image_resolver import local_image_name


@dataclass(frozen=True)
class PatchValues:
    """Request values substituted into the rule templates."""

    tag: Optional[str]
    local_image: Optional[str]
    runtime: str
    cpu_set: Optional[str]
    memory_limit: Optional[str]

    @classmethod
    def from_request(cls, request: InstallRequest) -> "PatchValues":
        return cls(
            tag=request.version_tag,
            local_image=local_image_name(request.version_tag) if request.version_tag else None,
            runtime=request.runtime,
            cpu_set=request.cpu_set,
            memory_limit=request.memory_limit,
        )


# (values, anchor line without its line ending) -> lines to emit
Renderer = Callable[[PatchValues, str], List[str]]


@dataclass(frozen=True)
class InsertAfter:
    render: Renderer


@dataclass(frozen=True)
class InsertBefore:
    render: Renderer


@dataclass(frozen=True)
class ReplaceLine:
    render: Renderer


@dataclass(frozen=True)
class ReplaceAllOccurrences:
    replacement: Callable[[PatchValues, re.Match], str]


@dataclass(frozen=True)
class WrapBlock:
    """Wraps each anchor line up to the next end_anchor line."""

    end_anchor: re.Pattern
    before: Renderer
    after: Renderer


@dataclass(frozen=True)
class EnsureCommandFlag:
    """Puts exactly one `flag=value` right after every anchored command."""

    flag: str
    value: Callable[[PatchValues], Optional[str]]


PatchAction = Union[InsertAfter, InsertBefore, ReplaceLine, ReplaceAllOccurrences, WrapBlock, EnsureCommandFlag]


@dataclass(frozen=True)
class PatchRule:
    rule_id: str
    anchor: re.Pattern
    action: PatchAction
    applies_when: Callable[[InstallRequest], bool]


@dataclass(frozen=True)
class PatchOutcome:
    body: str
    applied: Tuple[str, ...]


_DOCKER_FORMAT = '--format "{{.Repository}}:{{.Tag}}"'
_LAUNCH_COMMAND = re.compile(r"\b(?:docker|podman)[ \t]+run\b")


def _indent(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def _split_ending(line: str) -> Tuple[str, str]:
    content = line.rstrip("\r\n")
    return content, line[len(content):]


def _emit(block: Sequence[str], ending: str) -> List[str]:
    eol = ending or "\n"
    lines = [text + eol for text in block[:-1]]
    lines.append(block[-1] + ending)
    return lines


def _render_tag_override(values: PatchValues, line: str) -> List[str]:
    indent = _indent(line)
    return [
        f"{indent}# Custom tag modification",
        f'{indent}sed -i "s/^DOCKER_TWISTLOCK_TAG=.*/DOCKER_TWISTLOCK_TAG={values.tag}/" twistlock.cfg',
        f'{indent}print_info "Applied custom tag: {values.tag}"',
    ]


def _render_keep_files(values: PatchValues, line: str) -> List[str]:
    return [f"{_indent(line)}# KEEP_FILES: {line.lstrip()}"]


def _render_download_guard(values: PatchValues, line: str) -> List[str]:
    indent = _indent(line)
    check = (
        f"{values.runtime} images " + _DOCKER_FORMAT + f' 2>/dev/null | grep -qxF "{values.local_image}"'
    )
    return [
        f"{indent}# Skip download if image already exists locally",
        f"{indent}if {check}; then",
        f'{indent}\tprint_info "Image already exists locally, skipping download"',
        f"{indent}\ttouch ${{image_name}}",
        f"{indent}else",
    ]


def _render_download_guard_end(values: PatchValues, line: str) -> List[str]:
    return [f"{_indent(line)}fi"]


DEFAULT_RULES: Tuple[PatchRule, ...] = (
    PatchRule(
        rule_id="inject-tag",
        anchor=re.compile(r"scripts/twistlock\.cfg\s+-o\s+twistlock\.cfg"),
        action=InsertAfter(_render_tag_override),
        applies_when=lambda request: request.version_tag is not None,
    ),
    PatchRule(
        rule_id="keep-work-files",
        anchor=re.compile(r'^\s*rm\s+"\$\{working_folder\}"/\*\s+&&\s+rmdir\s+"\$\{working_folder\}"'),
        action=ReplaceLine(_render_keep_files),
        applies_when=lambda request: request.keep_work_files,
    ),
    PatchRule(
        rule_id="skip-image-download",
        anchor=re.compile(r"\$\{curl\}.*\$\{image_path\}/\$\{image_name\}"),
        action=WrapBlock(
            end_anchor=re.compile(r'exit_on_failure\s+\$\?\s+"Failed to download Defender image from Console"'),
            before=_render_download_guard,
            after=_render_download_guard_end,
        ),
        applies_when=lambda request: request.version_tag is not None,
    ),
    PatchRule(
        rule_id="cpu-limit",
        anchor=_LAUNCH_COMMAND,
        action=EnsureCommandFlag("--cpuset-cpus", lambda values: values.cpu_set),
        applies_when=lambda request: bool(request.cpu_set),
    ),
    PatchRule(
        rule_id="memory-limit",
        anchor=_LAUNCH_COMMAND,
        action=EnsureCommandFlag("--memory", lambda values: values.memory_limit),
        applies_when=lambda request: bool(request.memory_limit),
    ),
)


def _not_found(rule: PatchRule) -> AnchorNotFound:
    return AnchorNotFound(rule.rule_id, actionable_error("anchor_not_found", rule_id=rule.rule_id))


def _apply_line_action(rule: PatchRule, body: str, values: PatchValues) -> str:
    action = rule.action
    output: List[str] = []
    matched = False

    for line in body.splitlines(keepends=True):
        content, ending = _split_ending(line)
        if not rule.anchor.search(content):
            output.append(line)
            continue

        matched = True
        if isinstance(action, InsertBefore):
            block = action.render(values, content) + [content]
        elif isinstance(action, InsertAfter):
            block = [content] + action.render(values, content)
        else:
            block = action.render(values, content)
        output.extend(_emit(block, ending))

    if not matched:
        raise _not_found(rule)
    return "".join(output)


def _apply_wrap_block(rule: PatchRule, body: str, values: PatchValues) -> str:
    action = rule.action
    lines = body.splitlines(keepends=True)
    output: List[str] = []
    matched = False
    index = 0

    while index < len(lines):
        content, ending = _split_ending(lines[index])
        if not rule.anchor.search(content):
            output.append(lines[index])
            index += 1
            continue

        end_index = next(
            (
                candidate
                for candidate in range(index + 1, len(lines))
                if action.end_anchor.search(_split_ending(lines[candidate])[0])
            ),
            None,
        )
        if end_index is None:
            raise _not_found(rule)

        matched = True
        output.extend(text + (ending or "\n") for text in action.before(values, content))
        output.extend(lines[index:end_index])

        end_content, end_ending = _split_ending(lines[end_index])
        output.extend(_emit([end_content] + action.after(values, end_content), end_ending))
        index = end_index + 1

    if not matched:
        raise _not_found(rule)
    return "".join(output)


def _apply_command_flag(rule: PatchRule, body: str, values: PatchValues) -> str:
    action = rule.action
    setting = f"{action.flag}={action.value(values)}"
    # both `--flag=value` and `--flag value`; `--memory-swap` is a different flag
    existing = re.compile(rf"[ \t]+{re.escape(action.flag)}(?:=\S*|[ \t]+(?!-)\S+)(?=\s|$)")
    output: List[str] = []
    matched = False

    for line in body.splitlines(keepends=True):
        content, ending = _split_ending(line)
        ends = [match.end() for match in rule.anchor.finditer(content)]
        if not ends:
            output.append(line)
            continue

        matched = True
        # each command owns the text up to the next launch on the same line
        pieces = [content[: ends[0]]]
        for start, stop in zip(ends, ends[1:] + [len(content)]):
            pieces.append(f" {setting}" + existing.sub("", content[start:stop]))
        output.append("".join(pieces) + ending)

    if not matched:
        raise _not_found(rule)
    return "".join(output)


def _apply_replace_all(rule: PatchRule, body: str, values: PatchValues) -> str:
    patched, count = rule.anchor.subn(lambda match: rule.action.replacement(values, match), body)
    if not count:
        raise _not_found(rule)
    return patched


def patch_script(body: str, request: InstallRequest, rules: Sequence[PatchRule] = DEFAULT_RULES) -> PatchOutcome:
    """Applies every rule whose predicate holds for the request, in order."""
    values = PatchValues.from_request(request)
    applied = []

    for rule in rules:
        if not rule.applies_when(request):
            continue

        if isinstance(rule.action, WrapBlock):
            body = _apply_wrap_block(rule, body, values)
        elif isinstance(rule.action, EnsureCommandFlag):
            body = _apply_command_flag(rule, body, values)
        elif isinstance(rule.action, ReplaceAllOccurrences):
            body = _apply_replace_all(rule, body, values)
        else:
            body = _apply_line_action(rule, body, values)
        applied.append(rule.rule_id)

    return PatchOutcome(body=body, applied=tuple(applied))


def render_diff(original: str, patched: str, name: str = "defender.sh") -> str:
    return "".join(
        difflib.unified_diff(
            original.splitlines(keepends=True),
            patched.splitlines(keepends=True),
            fromfile=f"a/{name}",
            tofile=f"b/{name}",
        )
    )


class ScriptPatcher:
    """Applies the patch rule table and reports what changed."""

    def __init__(self, logger, console, rules: Sequence[PatchRule] = DEFAULT_RULES):
        self.logger = logger
        self.console = console
        self.rules = tuple(rules)

    def apply(self, body: str, request: InstallRequest) -> PatchOutcome:
        self.console.print("[blue]Applying custom modifications...[/blue]")
        outcome = patch_script(body, request, self.rules)

        for rule_id in outcome.applied:
            self.logger.info("Applied patch rule: %s", rule_id)
        if not outcome.applied:
            self.logger.info("No patch rules apply; defender.sh runs unmodified.")
        return outcome
