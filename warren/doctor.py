"""Runtime dependency verification (docker, agent CLI, credentials).

Used by ``warren doctor`` CLI command.
"""

import os
import shlex
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path

import click

from warren import fmt
from warren.config import SECRET_KEYS, Settings, read_secrets


@dataclass
class CheckResult:
    name: str
    passed: bool
    message: str = ""


def check_python_version() -> CheckResult:
    """Check if Python version is 3.11 or higher."""
    if sys.version_info >= (3, 11):
        return CheckResult("Python Version", True, f"Python {sys.version.split()[0]} is installed.")
    return CheckResult(
        "Python Version",
        False,
        f"Python 3.11 or higher is required. Found {sys.version.split()[0]}.",
    )


def check_docker(settings: Settings) -> CheckResult:
    """Docker is only required for the docker runtime."""
    if settings.runtime != "docker":
        return CheckResult("Docker", True, f"Not required (runtime={settings.runtime}).")
    if shutil.which("docker"):
        return CheckResult("Docker", True, f"docker is installed (image {settings.image}).")
    return CheckResult("Docker", False, "docker not found in PATH but runtime is 'docker'.")


def check_agent_cli(settings: Settings) -> CheckResult:
    """The agent CLI runs inside the container in docker mode."""
    if settings.runtime == "docker":
        return CheckResult("Agent CLI", True, "Provided by the container image.")
    cli = shlex.split(os.environ.get("WARREN_AGENT_CLI") or "kiro-cli")[0]
    if shutil.which(cli):
        return CheckResult("Agent CLI", True, f"{cli} is installed.")
    return CheckResult("Agent CLI", False, f"{cli} not found in PATH. Set WARREN_AGENT_CLI or install it.")


def check_credentials(hc_home: Path) -> CheckResult:
    """Check for agent credentials.

    Looks for:
    1. Forwarded secrets in ``<home>/.env``
    2. Agent CLI credential dirs (~/.kiro, ~/.aws)
    """
    secrets = read_secrets(hc_home)
    if secrets:
        return CheckResult("Credentials", True, f"Found {', '.join(sorted(secrets))} in .env.")

    home = Path.home()
    for cred_dir in (home / ".kiro", home / ".aws"):
        if cred_dir.is_dir():
            return CheckResult("Credentials", True, f"Agent CLI credentials found at {cred_dir}.")

    return CheckResult(
        "Credentials",
        False,
        f"No credentials found. Add {' or '.join(SECRET_KEYS)} to {hc_home / '.env'} "
        "or log in with the agent CLI.",
    )


def run_all_checks(hc_home: Path, settings: Settings) -> list[CheckResult]:
    """Run all dependency checks."""
    return [
        check_python_version(),
        check_docker(settings),
        check_agent_cli(settings),
        check_credentials(hc_home),
    ]


# Aliases used by the CLI
run_doctor = run_all_checks


def print_doctor_report(checks: list[CheckResult], hc_home: Path, settings: Settings) -> bool:
    """Print the resolved setup, then one line per check.

    Failed checks are repeated at the end so the fixes are easy to find.
    Returns True if all checks passed.
    """
    fmt.dim(f"home: {hc_home}")
    fmt.dim(f"runtime: {settings.runtime}")
    if settings.runtime == "docker":
        fmt.dim(f"image: {settings.image}")
    else:
        fmt.dim(f"host command: {' '.join(settings.host_command)}")
    click.echo()

    for result in checks:
        tag = click.style("[PASS]", fg="green") if result.passed else click.style("[FAIL]", fg="red")
        click.echo(f"  {tag} {result.name}: {result.message}")
    click.echo()

    failed = [r for r in checks if not r.passed]
    if not failed:
        fmt.success(f"{len(checks)}/{len(checks)} checks passed; warren can run agents.")
        return True
    fmt.error(f"{len(checks) - len(failed)}/{len(checks)} checks passed.")
    for result in failed:
        fmt.error(f"{result.name}: {result.message}")
    return False
