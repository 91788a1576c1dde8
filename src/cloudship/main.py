"""
cloudship - CLI Entry Point.

    cloudship [-v] <backend> <setup|deploy|destroy|logs> <config-path>

Exit codes:
    0   success (destroy always exits 0; failures are reported in the log)
    1   deployment, configuration or credential error
    130 interrupted
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from . import constants as CONSTANTS
from .logger import logger, setup_logger
from . import providers  # noqa: F401  registers every backend
from .core.deployer import Deployer
from .core.exceptions import DeploymentError, OperationInterruptedError
from .core.registry import ProviderRegistry

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloudship",
        description="Deploy a containerized service to AWS Fargate, Google Cloud Run or Azure Container Apps.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("backend", choices=ProviderRegistry.list_providers(), help="Target backend")
    parser.add_argument("action", choices=CONSTANTS.ACTIONS, help="Operation to run")
    parser.add_argument("config_path", type=Path, help="Path to the deployment YAML file")
    return parser


def _run_action(deployer: Deployer, action: str) -> int:
    if action == "setup":
        deployer.setup()
    elif action == "deploy":
        deployer.deploy()
    elif action == "logs":
        deployer.logs()
    elif action == "destroy":
        deployer.destroy()
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logger(debug_mode=args.verbose)

    config_path = args.config_path.expanduser().resolve()
    is_destroy = args.action == "destroy"

    try:
        deployer = Deployer().init(config_path, backend=args.backend)
        return _run_action(deployer, args.action)
    except (OperationInterruptedError, KeyboardInterrupt):
        logger.warning("Interrupted.")
        return EXIT_OK if is_destroy else EXIT_INTERRUPTED
    except DeploymentError as e:
        logger.error(f"{args.action} failed: {e}")
        if args.verbose:
            logger.exception("Stack trace:")
        return EXIT_OK if is_destroy else EXIT_FAILURE
    except Exception as e:
        # destroy always exits 0
        if not is_destroy:
            raise
        logger.error(f"destroy failed unexpectedly: {e}")
        if args.verbose:
            logger.exception("Stack trace:")
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
