"""Fetches the vendor installer script from the console."""

from defenderpin.constants import DEFAULT_FETCH_TIMEOUT, SCRIPT_RESOURCE_PATH
from defenderpin.errors import FetchError
from defenderpin.errors_catalog import actionable_error
from defenderpin.models import InstallRequest


class ScriptFetchService:
    """Downloads defender.sh with a single bearer-authenticated POST."""

    def __init__(self, validation_service, logger, console, requests_module, timeout: float = DEFAULT_FETCH_TIMEOUT):
        self.validation_service = validation_service
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout

    def script_url(self, api_base: str) -> str:
        return f"{self.validation_service.normalize_api_base(api_base)}{SCRIPT_RESOURCE_PATH}"

    def fetch(self, request: InstallRequest) -> str:
        url = self.script_url(request.api_base)
        self.validation_service.enforce_https_policy(url, "Console API URL", self.logger, self.console)

        self.console.print("[blue]Downloading defender.sh from Prisma Cloud...[/blue]")
        self.logger.info("API URL: %s", url)

        try:
            response = self.requests.post(
                url,
                headers={"authorization": f"Bearer {request.auth_token}"},
                timeout=self.timeout,
            )
        except self.requests.RequestException as exc:
            raise FetchError(f"Failed to download defender.sh: {exc}") from exc

        if response.status_code != 200:
            raise FetchError(actionable_error("fetch_failed", status=str(response.status_code)))

        body = response.text
        if not body.strip():
            raise FetchError("The console returned an empty defender.sh.")

        self.console.print("[green]Downloaded defender.sh successfully.[/green]")
        self.logger.debug("defender.sh is %d bytes", len(body))
        return body
