"""
Docker and git CLI wrapper.

Image build and publish shell out to the docker CLI; the image tag comes
from git. Every command goes through run_command() so failures surface as
CommandError with the captured output.

Usage:
    from cloudship.runner import build_image, push_image, docker_login

    docker_login("123456789012.dkr.ecr.us-east-1.amazonaws.com", "AWS", token)
    build_image(image_uri, dockerfile, context)
    push_image(image_uri)
"""

import logging
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from . import constants as CONSTANTS
from .core.exceptions import BuildError

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when an external command fails."""

    def __init__(self, command: str, return_code: int, stderr: str):
        self.command = command
        self.return_code = return_code
        self.stderr = stderr
        super().__init__(f"{command} failed (exit {return_code}): {stderr}")


def run_command(
    args: List[str],
    input_text: Optional[str] = None,
    check: bool = True,
    log_command: bool = True
) -> subprocess.CompletedProcess:
    """
    Run a command and capture its output.

    Args:
        args: Full argument vector, executable first
        input_text: Text written to the command's stdin
        check: Whether to raise on non-zero exit
        log_command: Log the command line (disable when args carry secrets)

    Returns:
        CompletedProcess with command results

    Raises:
        CommandError: If the command fails and check=True, or cannot be started
    """
    if log_command:
        logger.info(f"Running: {' '.join(args)}")

    try:
        result = subprocess.run(
            args,
            input=input_text,
            capture_output=True,
            text=True,
            check=False
        )
    except FileNotFoundError as e:
        raise CommandError(args[0], 127, f"{args[0]} not found on PATH") from e

    if check and result.returncode != 0:
        # Combine stdout and stderr for full error context
        error_output = ""
        if result.stdout:
            error_output += result.stdout
        if result.stderr:
            error_output += "\n" + result.stderr if error_output else result.stderr
        if not error_output:
            error_output = "No output captured"
        raise CommandError(" ".join(args[:2]), result.returncode, error_output.strip())

    return result


def build_image_tag(now: Optional[float] = None) -> str:
    """
    Build a unique image tag: `<git short hash>-<unix ts>`.

    Falls back to `build-<unix ts>` outside a git checkout or without git.
    """
    timestamp = int(now if now is not None else time.time())
    try:
        result = run_command(["git", "rev-parse", "--short", "HEAD"], log_command=False)
        short_hash = result.stdout.strip()
    except CommandError:
        short_hash = ""
    if not short_hash:
        return f"build-{timestamp}"
    return f"{short_hash}-{timestamp}"


def docker_login(registry: str, username: str, password: str) -> None:
    """
    Log the docker CLI into a registry. The password is passed on stdin.

    Raises:
        BuildError: If docker rejects the credentials
    """
    logger.info(f"Logging in to {registry}")
    try:
        run_command(
            ["docker", "login", "--username", username, "--password-stdin", registry],
            input_text=password,
        )
    except CommandError as e:
        raise BuildError(f"Docker login to {registry} failed: {e.stderr}") from e


def build_image(image_uri: str, dockerfile: Path, context: Path) -> None:
    """
    Build an image for linux/amd64.

    buildx is tried first with provenance attestation disabled, so the
    registry receives a single image manifest. Plain `docker build` is the
    fallback when buildx is unavailable.

    Raises:
        BuildError: If both builds fail
    """
    if not Path(dockerfile).is_file():
        raise BuildError(f"Dockerfile not found: {dockerfile}")

    buildx = [
        "docker", "buildx", "build",
        "--platform", CONSTANTS.BUILD_PLATFORM,
        "--provenance=false",
        "--load",
        "-t", image_uri,
        "-f", str(dockerfile),
        str(context),
    ]
    try:
        run_command(buildx)
        logger.info(f"✓ Built {image_uri}")
        return
    except CommandError as e:
        logger.warning(f"docker buildx failed, falling back to docker build: {e.stderr.splitlines()[-1] if e.stderr else e}")

    plain = [
        "docker", "build",
        "--platform", CONSTANTS.BUILD_PLATFORM,
        "-t", image_uri,
        "-f", str(dockerfile),
        str(context),
    ]
    try:
        run_command(plain)
    except CommandError as e:
        raise BuildError(f"Image build failed: {e.stderr}") from e
    logger.info(f"✓ Built {image_uri}")


def push_image(image_uri: str) -> None:
    """
    Push an image to its registry.

    Raises:
        BuildError: If the push fails
    """
    try:
        run_command(["docker", "push", image_uri])
    except CommandError as e:
        raise BuildError(f"Image push failed: {e.stderr}") from e
    logger.info(f"✓ Pushed {image_uri}")
