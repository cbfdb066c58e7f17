import logging
import os

import click
from rich.logging import RichHandler

from .constants import DEFAULT_CONFIG_FILE, DEFAULT_FETCH_TIMEOUT, DEFAULT_RUNTIME
from .core import DefenderInstaller, console
from .errors import InstallerError
from .services.config_loader import ConfigLoader
from .services.validation import ValidationService

EPILOG = """
\b
Required environment variables:
  PRISMA_API_URL   Prisma Cloud API URL, e.g. https://us-east1.cloud.twistlock.com/us-2-XXXXXX
  PRISMA_TOKEN     Prisma Cloud bearer token
  PRISMA_CONSOLE   Console address, e.g. us-east1.cloud.twistlock.com

\b
Any other option or argument is passed to defender.sh unchanged, e.g.:
  -v -m -n -u -z -r --install-host --install-podman --ws-port PORT

\b
Examples:
  defenderpin -v -m -n
  defenderpin --tag _34_01_132 --image ./defender_backup.tar.gz -v -m -n
  defenderpin --tag _34_01_132 --source-image registry.example.com/twistlock/defender:_34_01_132 -v
  defenderpin --cpu-limit 0-3 --memory-limit 2g -v -m -n
"""


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command(
    epilog=EPILOG,
    context_settings={
        "ignore_unknown_options": True,
        "allow_interspersed_args": True,
        "help_option_names": ["-h", "--help"],
    },
)
@click.option("--tag", required=False, help="Defender version tag to install, e.g. _34_01_132.")
@click.option("--image", required=False, type=click.Path(), help="Load the image from a local tar.gz file.")
@click.option(
    "--source-image",
    required=False,
    help="Re-tag an existing local image to the name defender.sh expects.",
)
@click.option(
    "--registry",
    required=False,
    help="Pull twistlock/private:defender<TAG> from this registry prefix.",
)
@click.option(
    "--keep-files",
    is_flag=True,
    default=None,
    help="Preserve the .twistlock working folder after installation.",
)
@click.option("--cpu-limit", required=False, help="Restrict the container to CPU cores (--cpuset-cpus), e.g. 0-3.")
@click.option("--memory-limit", required=False, help="Limit the container memory (--memory), e.g. 2g.")
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--runtime", required=False, help="Container runtime CLI used for images (default: docker).")
@click.option(
    "--backup-archive",
    required=False,
    type=click.Path(),
    help="After a pinned install, save the image to this gzip archive.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=None,
    help="Fetch and patch defender.sh, print the changes, and stop before running it.",
)
@click.option(
    "--fetch-timeout",
    required=False,
    type=float,
    default=None,
    help="HTTP timeout in seconds for downloading defender.sh.",
)
@click.option(
    "--allow-insecure-http",
    is_flag=True,
    default=None,
    help="Allow an HTTP console URL (insecure). By default only HTTPS is accepted.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.argument("installer_args", nargs=-1, type=click.UNPROCESSED)
def main(
    tag,
    image,
    source_image,
    registry,
    keep_files,
    cpu_limit,
    memory_limit,
    config,
    runtime,
    backup_archive,
    dry_run,
    fetch_timeout,
    allow_insecure_http,
    verbose,
    log_file,
    installer_args,
):
    """Install a Prisma Cloud Defender, optionally pinned to a specific image tag."""
    logger = logging.getLogger("defenderpin")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except InstallerError as exc:
        raise click.ClickException(str(exc)) from exc

    tag = _resolve_option(tag, config_values, "tag")
    image = _resolve_option(image, config_values, "image")
    source_image = _resolve_option(source_image, config_values, "source_image")
    registry = _resolve_option(registry, config_values, "registry")
    keep_files = bool(_resolve_option(keep_files, config_values, "keep_files", default=False))
    cpu_limit = _resolve_option(cpu_limit, config_values, "cpu_limit")
    memory_limit = _resolve_option(memory_limit, config_values, "memory_limit")
    runtime = str(_resolve_option(runtime, config_values, "runtime", default=DEFAULT_RUNTIME))
    backup_archive = _resolve_option(backup_archive, config_values, "backup_archive")
    dry_run = bool(_resolve_option(dry_run, config_values, "dry_run", default=False))
    fetch_timeout = float(
        _resolve_option(fetch_timeout, config_values, "fetch_timeout", default=DEFAULT_FETCH_TIMEOUT)
    )
    allow_insecure_http = bool(
        _resolve_option(allow_insecure_http, config_values, "allow_insecure_http", default=False)
    )
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    try:
        request = ValidationService(allow_insecure_http=allow_insecure_http).build_request(
            os.environ,
            logger=logger,
            console=console,
            tag=None if tag is None else str(tag),
            image=image,
            source_image=source_image,
            registry=registry,
            keep_files=keep_files,
            cpu_limit=None if cpu_limit is None else str(cpu_limit),
            memory_limit=None if memory_limit is None else str(memory_limit),
            passthrough_args=installer_args,
            runtime=runtime,
            dry_run=dry_run,
            backup_archive=backup_archive,
        )
    except InstallerError as exc:
        raise click.ClickException(str(exc)) from exc

    installer = DefenderInstaller(
        request=request,
        allow_insecure_http=allow_insecure_http,
        fetch_timeout=fetch_timeout,
    )
    raise SystemExit(installer.run())


if __name__ == "__main__":
    main()
