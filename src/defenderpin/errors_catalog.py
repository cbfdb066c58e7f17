"""Actionable error catalog for defenderpin."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "missing_env": {
        "what": "Missing required environment variables: {names}.",
        "next": "Export {names} (see `--help`) and try again.",
    },
    "tag_requires_source": {
        "what": "--tag requires one of --image, --source-image or --registry.",
        "next": "Use `--tag TAG --image /path/to/defender.tar.gz` or "
        "`--tag TAG --source-image registry.example.com/twistlock/defender:TAG`.",
    },
    "source_requires_tag": {
        "what": "{option} was given without --tag.",
        "next": "Add `--tag TAG` naming the Defender version contained in the image.",
    },
    "conflicting_sources": {
        "what": "Only one image source may be used, got: {options}.",
        "next": "Choose exactly one of --image, --source-image or --registry.",
    },
    "invalid_tag": {
        "what": "Invalid version tag '{tag}'.",
        "next": "Use a tag such as `_34_01_132` made of letters, digits, `_`, `.` and `-`.",
    },
    "invalid_resource_limit": {
        "what": "Invalid {option} value '{value}'.",
        "next": "Use CPU sets like `0-3` or `0,2` and memory sizes like `512m` or `2g`.",
    },
    "insecure_http": {
        "what": "{label} uses insecure HTTP.",
        "next": "Switch to HTTPS or use `--allow-insecure-http` only for trusted endpoints.",
    },
    "archive_not_found": {
        "what": "Image file not found or not readable: {path}",
        "next": "Check the path, or create a backup with "
        "`docker save twistlock/private:defender<TAG> | gzip > defender.tar.gz`.",
    },
    "artifact_mismatch": {
        "what": "Archive {path} did not provide {image} (loaded: {loaded}).",
        "next": "Make sure --tag matches the Defender version stored in the archive.",
    },
    "fetch_failed": {
        "what": "Failed to download defender.sh (HTTP {status}).",
        "next": "Tokens typically expire after ~10 minutes: copy a fresh token from the "
        "console's Defender install command, then check PRISMA_API_URL and connectivity.",
    },
    "anchor_not_found": {
        "what": "defender.sh does not contain the expected text for '{rule_id}'.",
        "next": "The console's installer changed shape. Run without the related option "
        "or update defenderpin before pinning a version.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
